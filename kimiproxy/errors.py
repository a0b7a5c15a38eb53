from typing import Any, Dict, Optional

from fastapi import HTTPException, status
from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """
    Error payload returned under ``detail`` when a chat request is
    rejected before streaming starts:
    {
        "error": "bad_request",
        "message": "Unsupported model: 'gpt-4o'",
        "code": 400,
        "details": {"known_models": ["kimi-k2-instruct-0905", ...]}
    }
    """

    error: str = Field(..., description="Machine-readable error type")
    message: str = Field(..., description="Human-readable error message")
    code: int = Field(..., description="HTTP status code for this error")
    details: Optional[Dict[str, Any]] = Field(
        default=None, description="Optional structured error details"
    )


def bad_request(message: str, *, details: Optional[Dict[str, Any]] = None) -> HTTPException:
    payload = ErrorResponse(
        error="bad_request",
        message=message,
        code=status.HTTP_400_BAD_REQUEST,
        details=details,
    )
    return HTTPException(status_code=payload.code, detail=payload.model_dump())


__all__ = ["ErrorResponse", "bad_request"]
