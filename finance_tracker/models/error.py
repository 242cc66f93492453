from pydantic import BaseModel, Field
from enum import Enum


class ErrorKind(str, Enum):
    VALIDATION_ERROR = "ValidationError"
    NOT_FOUND = "NotFound"
    FORBIDDEN = "Forbidden"
    CONFLICT = "Conflict"
    INTERNAL = "Internal"


class ErrorResponse(BaseModel):
    """Error envelope returned for every failed request"""
    kind: ErrorKind = Field(..., description="Error category")
    message: str = Field(..., description="Human readable explanation")
