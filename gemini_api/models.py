"""
Pydantic models for request/response validation.
"""

from typing import List, Optional
from datetime import datetime
from pydantic import BaseModel, Field


class HistoryPart(BaseModel):
    """A single redacted part of a conversation turn."""
    text: str = Field(..., description="Text content, or a placeholder for binary data")


class HistoryEntry(BaseModel):
    """One conversation turn as exposed to clients."""
    role: str = Field(..., description="'user' or 'model'")
    parts: List[HistoryPart] = Field(default_factory=list, description="Redacted turn parts")


class SessionSnapshot(BaseModel):
    """Externally visible state of a chat session."""
    session_id: str = Field(..., description="Session ID")
    model: str = Field(..., description="Model used by this session")
    client_identity: str = Field(..., description="Network identity of the client owning the session")
    history: List[HistoryEntry] = Field(default_factory=list, description="Redacted conversation history")
    created_at: datetime = Field(..., description="Session creation timestamp")
    last_accessed: datetime = Field(..., description="Last successful access timestamp")
    expires_at: datetime = Field(..., description="Expiry timestamp")
    total_tokens: int = Field(default=0, ge=0, description="Tokens used across all turns")


class SessionCreateRequest(BaseModel):
    """Request model for starting a chat session."""
    model: Optional[str] = Field(default=None, description="Model to use, the default model when omitted")
    preprompt: Optional[str] = Field(default=None, description="System instruction for the conversation")


class TokenCount(BaseModel):
    """Token usage of a single turn."""
    prompt_tokens: int = Field(..., ge=0, description="Tokens in the prompt")
    response_tokens: int = Field(..., ge=0, description="Tokens in the response")
    total_tokens: int = Field(..., ge=0, description="Prompt plus response tokens")


class MessageResponse(BaseModel):
    """Response model for a chat turn."""
    response: str = Field(..., description="Generated text")
    session_data: SessionSnapshot = Field(..., description="Updated session snapshot")
    token_count: TokenCount = Field(..., description="Token usage of this turn")


class GenerateResponse(BaseModel):
    """Response model for one-shot generation."""
    result: str = Field(..., description="Generated text")


class ModelInfo(BaseModel):
    """A supported model and where it is served."""
    model: str = Field(..., description="Model identifier")
    location: str = Field(..., description="Serving region")


class ModelsResponse(BaseModel):
    """Response model for listing supported models."""
    models: List[ModelInfo] = Field(..., description="Supported models")


class MessageResult(BaseModel):
    """Plain confirmation message."""
    message: str = Field(..., description="Result message")


class HealthResponse(BaseModel):
    """Response model for health check."""
    status: str = Field(..., description="Health status")
    message: str = Field(..., description="Status message")
    version: str = Field(..., description="Application version")
    timestamp: str = Field(..., description="Current timestamp")
    active_sessions: int = Field(default=0, description="Number of live chat sessions")


class ErrorResponse(BaseModel):
    """Response model for errors."""
    error: str = Field(..., description="Error message")
    kind: Optional[str] = Field(default=None, description="Machine-checkable error kind")
    detail: Optional[str] = Field(default=None, description="Detailed error information")
    status_code: int = Field(..., description="HTTP status code")
