"""Abstract interface for applying credentials to outbound requests."""

from abc import ABC, abstractmethod

from anyapi.invocation.request_synthesizer import SynthesizedRequest


class AuthStrategy(ABC):
    """REQUIRED
    Applies one authentication scheme to synthesized requests.

    Implementations resolve their secrets at call time. A strategy that
    cannot produce credentials raises AuthResolutionError; it never lets the
    request go out unauthenticated.
    """

    @abstractmethod
    async def apply(self, request: SynthesizedRequest) -> None:
        """REQUIRED
        Add credentials to the request in place.

        Args:
            request: The request to authenticate.
        """
        pass

    async def refresh_if_needed(self) -> bool:
        """Refresh cached credentials that are missing or about to expire.

        Returns:
            True if a refresh happened. Stateless strategies never refresh.
        """
        return False
