from anyapi.interfaces.auth_strategy import AuthStrategy
from anyapi.invocation.request_synthesizer import SynthesizedRequest


class NoAuthStrategy(AuthStrategy):
    """REQUIRED
    Leaves requests untouched."""

    async def apply(self, request: SynthesizedRequest) -> None:
        return None
