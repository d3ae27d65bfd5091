"""Server-side tools the chat assistants can call while streaming."""

from __future__ import annotations

import datetime
import logging
import math
from typing import Any, Awaitable, Callable, Mapping

import httpx

from .repository import EVENT_FIELDS, REQUIRED_EVENT_FIELDS, EventStore, RepositoryError
from .services.web_search import WebEventSearch
from .streaming.types import CompletedToolCall, ToolOutcome
from .utils.dates import day_bounds, format_event_when, parse_date, standardize_city

logger = logging.getLogger(__name__)

QUERY_DATABASE_EVENTS = "query_database_events"
SEARCH_INTERNET_EVENTS = "search_internet_events"
CREATE_EVENT = "create_event"
EXTRACT_EVENT = "extract_event"

KM_PER_DEGREE = 111.0
DEFAULT_RADIUS_KM = 10.0
DESCRIPTION_PREVIEW_CHARS = 100

QUERY_FAILED_MESSAGE = "Sorry, I couldn't search the database. "
INSERT_FAILED_MESSAGE = "Sorry, I couldn't publish your event right now. Please try again later."
WEB_SEARCH_FAILED_MESSAGE = (
    "⚠️ I encountered an issue searching the web. "
    "Please try the laiive database search instead."
)

TOOL_DEFINITIONS: dict[str, dict[str, Any]] = {
    QUERY_DATABASE_EVENTS: {
        "type": "function",
        "function": {
            "name": QUERY_DATABASE_EVENTS,
            "description": (
                "Query the laiive database for live music events. Parse dates like "
                "'tomorrow', 'this weekend' to ISO format yourself. Standardize city "
                "names yourself. Use city filter if user specifies a city, otherwise "
                "use lat/long."
            ),
            "parameters": {
                "type": "object",
                "properties": {
                    "latitude": {"type": "number", "description": "User latitude for proximity search"},
                    "longitude": {"type": "number", "description": "User longitude for proximity search"},
                    "startDate": {"type": "string", "description": "Start date ISO format (YYYY-MM-DD)"},
                    "endDate": {"type": "string", "description": "End date ISO format (YYYY-MM-DD)"},
                    "city": {
                        "type": "string",
                        "description": "City name filter (optional, use instead of lat/long if specified)",
                    },
                },
                "required": ["startDate", "endDate"],
            },
        },
    },
    SEARCH_INTERNET_EVENTS: {
        "type": "function",
        "function": {
            "name": SEARCH_INTERNET_EVENTS,
            "description": (
                "Search the internet for live music events. Parse dates like "
                "'tomorrow', 'this weekend' to ISO format yourself. Standardize city "
                "names yourself."
            ),
            "parameters": {
                "type": "object",
                "properties": {
                    "city": {"type": "string", "description": "City name (standardized)"},
                    "startDate": {"type": "string", "description": "Start date in ISO format (YYYY-MM-DD)"},
                    "endDate": {"type": "string", "description": "End date in ISO format (YYYY-MM-DD)"},
                },
                "required": ["city", "startDate", "endDate"],
            },
        },
    },
    EXTRACT_EVENT: {
        "type": "function",
        "function": {
            "name": EXTRACT_EVENT,
            "description": "Extract event details from conversation to show in confirmation form",
            "parameters": {
                "type": "object",
                "properties": {
                    "name": {"type": "string", "description": "Event name"},
                    "artist": {"type": "string", "description": "Artist name"},
                    "description": {"type": ["string", "null"], "description": "Event description (optional)"},
                    "venue": {"type": "string", "description": "Venue name"},
                    "city": {"type": "string", "description": "City name"},
                    "event_date": {"type": "string", "description": "Event date and time in ISO format"},
                    "price": {"type": ["number", "null"], "description": "Ticket price (null if unknown)"},
                    "ticket_url": {"type": ["string", "null"], "description": "Ticket URL (optional)"},
                    "tags": {
                        "type": "array",
                        "items": {"type": "string"},
                        "description": (
                            "3-5 keywords describing the event atmosphere, style, and type "
                            "(e.g. punk, intimate, energetic, rock, jazz, electronic, acoustic, outdoor)"
                        ),
                    },
                },
                "required": ["name", "artist", "venue", "city", "event_date", "tags"],
            },
        },
    },
    CREATE_EVENT: {
        "type": "function",
        "function": {
            "name": CREATE_EVENT,
            "description": (
                "Publish one event directly. Only call this after the promoter has "
                "explicitly confirmed every detail in the conversation."
            ),
            "parameters": {
                "type": "object",
                "properties": {
                    "name": {"type": "string", "description": "Event name"},
                    "artist": {"type": ["string", "null"], "description": "Artist name"},
                    "description": {"type": ["string", "null"], "description": "Event description"},
                    "venue": {"type": "string", "description": "Venue name"},
                    "city": {"type": "string", "description": "City name"},
                    "event_date": {"type": "string", "description": "Event date and time in ISO format"},
                    "price": {"type": ["number", "null"], "description": "Ticket price"},
                    "latitude": {"type": ["number", "null"], "description": "Venue latitude"},
                    "longitude": {"type": ["number", "null"], "description": "Venue longitude"},
                    "ticket_url": {"type": ["string", "null"], "description": "Ticket URL"},
                    "tags": {"type": "array", "items": {"type": "string"}, "description": "Style keywords"},
                },
                "required": ["name", "venue", "city", "event_date"],
            },
        },
    },
}


def tool_definitions(*names: str) -> list[dict[str, Any]]:
    return [TOOL_DEFINITIONS[name] for name in names]


def planar_distance_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Flat-earth distance: degree deltas scaled by ~111 km.

    Only a regional approximation; east-west distances are overstated away
    from the equator.
    """

    return math.hypot(lat2 - lat1, lon2 - lon1) * KM_PER_DEGREE


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _format_price(value: Any) -> str:
    if not _is_number(value) or not value:
        return "Free"
    if float(value).is_integer():
        return f"€{int(value)}"
    return f"€{value:.2f}"


def format_event_block(event: Mapping[str, Any]) -> str:
    """Render one event as the compact markdown block shown in chat."""

    headline = event.get("artist") or event.get("name")
    place = f"{event['venue']}, {event['city']}" if event.get("city") else event.get("venue")
    lines = [f"🎵 **{headline}** at {place}"]

    description = event.get("description")
    if description:
        preview = description[:DESCRIPTION_PREVIEW_CHARS]
        if len(description) > DESCRIPTION_PREVIEW_CHARS:
            preview += "..."
        lines.append(f"📝 {preview}")

    lines.append(f"📅 {format_event_when(str(event.get('event_date', '')))}")
    lines.append(f"💰 {_format_price(event.get('price'))}")

    links: list[str] = []
    if event.get("ticket_url"):
        links.append(f"🎫 [Tickets]({event['ticket_url']})")
    latitude, longitude = event.get("latitude"), event.get("longitude")
    if _is_number(latitude) and _is_number(longitude):
        links.append(f"📍 [Map](https://maps.google.com/?q={latitude},{longitude})")
    if links:
        lines.append(" | ".join(links))
    return "\n".join(lines)


def format_search_results(events: list[Mapping[str, Any]]) -> str:
    body = "\n\n".join(format_event_block(event) for event in events) or "No events found."
    return f"Found {len(events)} events near you:\n\n{body}"


def _clean_tags(value: Any) -> list[str]:
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple)):
        logger.debug("Dropping non-list tags=%r", value)
        return []
    return [tag.strip() for tag in value if isinstance(tag, str) and tag.strip()]


def clean_event_fields(arguments: Mapping[str, Any]) -> dict[str, Any]:
    """Keep known event fields, dropping optional ones that carry no value."""

    fields: dict[str, Any] = {}
    for key in EVENT_FIELDS:
        if key not in arguments:
            continue
        value = arguments[key]
        if isinstance(value, str):
            value = value.strip()
            if value.lower() == "null":
                value = ""
        if key == "tags":
            value = _clean_tags(value)
        if value is None or value == "" or value == []:
            continue
        if key in {"price", "latitude", "longitude"} and not _is_number(value):
            try:
                value = float(value)
            except (TypeError, ValueError):
                logger.debug("Dropping non-numeric %s=%r", key, value)
                continue
        fields[key] = value
    return fields


Handler = Callable[[dict[str, Any]], Awaitable[ToolOutcome]]


class UnknownToolError(KeyError):
    pass


class EventToolExecutor:
    """Execute event tools against the datastore and the web."""

    def __init__(
        self,
        store: EventStore,
        *,
        radius_km: float = DEFAULT_RADIUS_KM,
        web_search: WebEventSearch | None = None,
        today: Callable[[], datetime.date] | None = None,
    ) -> None:
        self._store = store
        self._radius_km = radius_km
        self._web_search = web_search
        self._today = today or (lambda: datetime.datetime.now(datetime.timezone.utc).date())
        self._handlers: dict[str, Handler] = {
            QUERY_DATABASE_EVENTS: self._query_events,
            SEARCH_INTERNET_EVENTS: self._search_internet,
            CREATE_EVENT: self._create_event,
            EXTRACT_EVENT: self._extract_event,
        }

    def handles(self, name: str) -> bool:
        return name in self._handlers

    async def execute(self, call: CompletedToolCall) -> ToolOutcome:
        handler = self._handlers.get(call.tool_name)
        if handler is None:
            raise UnknownToolError(call.tool_name)
        return await handler(call.arguments)

    async def _query_events(self, arguments: dict[str, Any]) -> ToolOutcome:
        today = self._today()
        try:
            start = parse_date(str(arguments.get("startDate") or ""), today)
            end = parse_date(str(arguments.get("endDate") or arguments.get("startDate") or ""), today, end=True)
        except ValueError as exc:
            logger.info("Rejecting event query with bad dates %s: %s", arguments, exc)
            return ToolOutcome(
                content="Sorry, I couldn't understand the dates for that search. "
            )
        if end < start:
            start, end = end, start
        lower, upper = day_bounds(start, end)

        city = arguments.get("city")
        city = standardize_city(city) if isinstance(city, str) and city.strip() else None

        try:
            events = await self._store.find_events(lower, upper, city=city)
        except RepositoryError as exc:
            logger.error("Database query error: %s", exc)
            return ToolOutcome(content=QUERY_FAILED_MESSAGE)

        latitude, longitude = arguments.get("latitude"), arguments.get("longitude")
        if city is None and _is_number(latitude) and _is_number(longitude):
            events = [
                event
                for event in events
                if _is_number(event.get("latitude"))
                and _is_number(event.get("longitude"))
                and planar_distance_km(latitude, longitude, event["latitude"], event["longitude"])
                <= self._radius_km
            ]

        logger.info("Event query %s matched %d events", arguments, len(events))
        return ToolOutcome(content=format_search_results(events))

    async def _search_internet(self, arguments: dict[str, Any]) -> ToolOutcome:
        city = str(arguments.get("city") or "").strip()
        not_found = (
            f"I searched for events in {city or 'that area'} but couldn't find any results. "
            "The internet search feature is still in development - try the laiive "
            "database search instead."
        )
        if self._web_search is None:
            logger.info("Internet search requested without a configured provider")
            return ToolOutcome(content=not_found)

        query = (
            f"live music events {city} {arguments.get('startDate', '')} "
            f"{arguments.get('endDate', '')} tickets"
        )
        try:
            results = await self._web_search.search(" ".join(query.split()), 5)
        except httpx.HTTPError as exc:
            logger.error("Web search error: %s", exc)
            return ToolOutcome(content=WEB_SEARCH_FAILED_MESSAGE)

        if not results:
            return ToolOutcome(content=not_found)

        blocks = []
        for result in results:
            lines = [f"🎵 **{result.title}**"]
            if result.description:
                lines.append(f"📝 {result.description}")
            if result.url:
                lines.append(f"🎫 [Details]({result.url})")
            blocks.append("\n".join(lines))
        suffix = "s" if len(results) > 1 else ""
        return ToolOutcome(
            content=f"I found {len(results)} result{suffix}:\n\n" + "\n\n".join(blocks)
        )

    async def _create_event(self, arguments: dict[str, Any]) -> ToolOutcome:
        fields = clean_event_fields(arguments)
        missing = [key for key in REQUIRED_EVENT_FIELDS if key not in fields]
        if missing:
            return ToolOutcome(
                content=(
                    "Sorry, I couldn't publish the event because these details are "
                    f"missing: {', '.join(missing)}."
                )
            )

        try:
            record = await self._store.insert_event(fields)
        except RepositoryError as exc:
            logger.error("Event insert failed: %s", exc)
            return ToolOutcome(content=INSERT_FAILED_MESSAGE)

        logger.info("Published event %s", record.get("id"))
        return ToolOutcome(
            content=f'✅ Your event "{fields["name"]}" in {fields["city"]} has been published!'
        )

    async def _extract_event(self, arguments: dict[str, Any]) -> ToolOutcome:
        logger.info("Extracted event details: %s", arguments)
        return ToolOutcome(extracted_event=dict(arguments))


__all__ = [
    "CREATE_EVENT",
    "EXTRACT_EVENT",
    "EventToolExecutor",
    "QUERY_DATABASE_EVENTS",
    "SEARCH_INTERNET_EVENTS",
    "TOOL_DEFINITIONS",
    "UnknownToolError",
    "clean_event_fields",
    "format_event_block",
    "format_search_results",
    "planar_distance_km",
    "tool_definitions",
]
