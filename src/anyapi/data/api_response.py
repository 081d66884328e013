from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, computed_field


class ApiResponse(BaseModel):
    """REQUIRED
    Response of one dynamic invocation.

    Non-2xx responses are returned as-is rather than raised.

    Attributes:
        status_code: HTTP status code.
        reason: HTTP reason phrase.
        headers: Response headers. Repeated headers are joined with ", ".
        body: Decoded JSON when the response declares JSON, text otherwise.
    """
    status_code: int
    reason: Optional[str] = None
    headers: Dict[str, str] = Field(default_factory=dict)
    body: Any = None

    @computed_field
    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300
