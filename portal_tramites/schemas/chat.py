"""Pydantic v2 schemas for the chat assistant proxy and its configuration."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ChatMessage(BaseModel):
    role: str = Field(..., description="'user' o 'assistant'")
    content: str


class ChatSendRequest(BaseModel):
    """Body of ``POST /api/chat/send``.

    ``session_id`` identifies one browser widget; a newer message with the
    same id cancels the request still in flight for it.
    """

    message: str = Field(..., min_length=1, max_length=2000)
    history: list[ChatMessage] = Field(default_factory=list)
    session_id: str | None = Field(default=None, max_length=100)


class ChatSendResponse(BaseModel):
    """Assistant reply.

    Attributes:
        response: Text to show in the widget.
        source: ``"webhook"`` for a live answer, ``"fallback"`` when the
            webhook failed or the circuit breaker is open.
    """

    response: str
    source: str = "webhook"


class ChatConfigResponse(BaseModel):
    is_active: bool
    greeting: str


class N8nConfigUpdate(BaseModel):
    webhook_url: str = Field(..., min_length=1, max_length=500)
    api_key: str | None = None
    timeout_seconds: int = Field(default=30, ge=1, le=300)
    max_retries: int = Field(default=3, ge=0, le=10)
    is_active: bool = True
    custom_prompts: dict[str, Any] | None = None


class N8nConfigResponse(BaseModel):
    id: int
    webhook_url: str
    api_key: str | None = None
    timeout_seconds: int
    max_retries: int
    is_active: bool
    custom_prompts: dict[str, Any] | None = None
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class N8nTestResponse(BaseModel):
    success: bool
    status_code: int | None = None
    response: str | None = None
    error: str | None = None


class N8nTestRequest(BaseModel):
    """Body of ``POST /api/admin/n8n-config/test``; empty fields use the stored config."""

    webhook_url: str | None = None
    api_key: str | None = None
