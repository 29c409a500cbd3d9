"""Response envelopes shared by every router."""

from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, Field

DataT = TypeVar("DataT")


class ApiResponse(BaseModel, Generic[DataT]):
    """Success envelope: ``{success, data|message}``."""

    success: bool = Field(True, description="Whether the request succeeded")
    data: Optional[DataT] = Field(None, description="Response payload")
    message: Optional[str] = Field(None, description="Human readable message")


class ErrorResponse(BaseModel):
    """Error envelope: ``{success: false, message, error?}``."""

    success: bool = Field(False, description="Always false for errors")
    message: str = Field(..., description="Human readable error message")
    error: Optional[str] = Field(None, description="Stable error code")
