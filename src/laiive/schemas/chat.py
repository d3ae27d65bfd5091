"""Pydantic models for the streaming chat endpoints."""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class ChatMessage(BaseModel):
    """A single turn of the client-held conversation history."""

    role: Literal["user", "assistant"]
    content: str

    model_config = ConfigDict(extra="ignore")


class Location(BaseModel):
    city: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    model_config = ConfigDict(extra="ignore")


class ChatSearchRequest(BaseModel):
    """Incoming event-search chat request."""

    messages: List[ChatMessage]
    location: Optional[Location] = None
    search_mode: Literal["database", "internet"] = Field(
        default="database", alias="searchMode"
    )

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def location_context(self) -> Optional[Dict[str, Any]]:
        if self.location is None:
            return None
        return self.location.model_dump(exclude_none=True) or None


class PromoterCreateRequest(BaseModel):
    """Incoming promoter chat request."""

    messages: List[ChatMessage]
    language: str = "en"

    model_config = ConfigDict(extra="ignore")
