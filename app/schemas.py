"""
Pydantic schemas for request/response validation.

This module contains:
- Request models for incoming data validation
- Response models for API responses
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator


BCRYPT_MAX_PASSWORD_BYTES = 72


# =============================================================================
# Pydantic Request Models
# =============================================================================

class SendMessageRequest(BaseModel):
    """
    Body of POST /messages.

    The sender is always the logged-in user; a from_username sent in the
    body is ignored.
    """
    to_username: str = Field(
        ...,
        min_length=1,
        description="Recipient username"
    )
    body: str = Field(
        ...,
        min_length=1,
        description="Message text"
    )

    model_config = {
        "json_schema_extra": {
            "examples": [{"to_username": "bob", "body": "hi"}]
        }
    }


class RegisterRequest(BaseModel):
    """Body of POST /auth/register."""
    username: str = Field(..., min_length=1, max_length=50)
    password: str = Field(..., min_length=1)
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=1)

    @field_validator("password")
    @classmethod
    def validate_password_length(cls, v: str) -> str:
        """bcrypt only hashes the first 72 bytes and rejects longer input."""
        if len(v.encode("utf-8")) > BCRYPT_MAX_PASSWORD_BYTES:
            raise ValueError(f"password must be at most {BCRYPT_MAX_PASSWORD_BYTES} bytes")
        return v


class LoginRequest(BaseModel):
    """Body of POST /auth/login."""
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


# =============================================================================
# Pydantic Response Models
# =============================================================================

class UserSummary(BaseModel):
    """Public fields of a message's sender or recipient."""
    username: str
    first_name: str
    last_name: str
    phone: str

    model_config = {"from_attributes": True}


class MessageDetail(BaseModel):
    """Full message as returned by GET /messages/{id}."""
    id: int
    body: str
    sent_at: datetime
    read_at: Optional[datetime] = None
    from_user: UserSummary
    to_user: UserSummary

    model_config = {"from_attributes": True}


class MessageDetailResponse(BaseModel):
    message: MessageDetail


class SentMessage(BaseModel):
    """Message as returned right after it is sent."""
    id: int
    from_username: str
    to_username: str
    body: str
    sent_at: datetime

    model_config = {"from_attributes": True}


class SentMessageResponse(BaseModel):
    message: SentMessage


class ReadReceipt(BaseModel):
    id: int
    read_at: Optional[datetime] = Field(None, description="When the recipient read the message")

    model_config = {"from_attributes": True}


class ReadReceiptResponse(BaseModel):
    message: ReadReceipt


class TokenResponse(BaseModel):
    """Session token returned by the auth routes."""
    token: str


class ErrorDetail(BaseModel):
    message: str = Field(..., description="Error description")
    status: int = Field(..., description="HTTP status code")


class ErrorResponse(BaseModel):
    """Response model for error responses."""
    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response model for health check endpoints."""
    status: str = Field(..., description="Health status")
    reason: Optional[str] = Field(None, description="Reason if not ready")
