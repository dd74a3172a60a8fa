from typing import Any

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """에러 본문"""

    error: str
    message: str
    details: dict[str, Any] | list[Any] | None = None


class HTTPErrorResponse(BaseModel):
    """HTTPException 응답 (detail에 에러 본문이 담김)"""

    detail: ErrorResponse
