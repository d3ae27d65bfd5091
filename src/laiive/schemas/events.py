"""Pydantic models for extraction, transcription and moderation endpoints."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class ExtractImageRequest(BaseModel):
    image_base64: Optional[str] = Field(default=None, alias="imageBase64")

    model_config = ConfigDict(populate_by_name=True)


class ExtractTextRequest(BaseModel):
    text: Optional[str] = None


class ExtractUrlRequest(BaseModel):
    url: Optional[str] = None
    language: Optional[str] = None


class TranscribeRequest(BaseModel):
    audio: Optional[str] = None


class ValidateConversationRequest(BaseModel):
    """A conversation turn to moderate and log."""

    session_id: Optional[str] = None
    conversation_type: Optional[str] = None
    message_role: Optional[str] = None
    message_content: Optional[str] = None
    device_type: Optional[str] = None
    user_agent: Optional[str] = None
    language: Optional[str] = None

    def missing_fields(self) -> List[str]:
        required = ("session_id", "conversation_type", "message_role", "message_content")
        return [name for name in required if not getattr(self, name)]


class EventPayload(BaseModel):
    """Event fields as submitted by the promoter confirmation form."""

    name: Optional[str] = None
    artist: Optional[str] = None
    description: Optional[str] = None
    event_date: Optional[str] = None
    venue: Optional[str] = None
    city: Optional[str] = None
    price: Optional[Union[float, str]] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    ticket_url: Optional[str] = None
    tags: Optional[List[str]] = None

    model_config = ConfigDict(extra="ignore")

    def fields(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class ValidateEventRequest(BaseModel):
    event: Optional[EventPayload] = None
    session_id: Optional[str] = None
