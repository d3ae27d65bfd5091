"""Tests for the event tools executed from inside the chat stream."""

from __future__ import annotations

import datetime
from typing import Any, Mapping

import httpx
import pytest

from laiive.repository import EventRepository, RepositoryError
from laiive.services.web_search import SearchResult
from laiive.streaming import CompletedToolCall
from laiive.tools import (
    INSERT_FAILED_MESSAGE,
    QUERY_FAILED_MESSAGE,
    WEB_SEARCH_FAILED_MESSAGE,
    EventToolExecutor,
    UnknownToolError,
    clean_event_fields,
    format_event_block,
    planar_distance_km,
)

TODAY = datetime.date(2025, 5, 28)


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
async def repository(tmp_path):
    repo = EventRepository(tmp_path / "events.db")
    await repo.initialize()
    try:
        yield repo
    finally:
        await repo.close()


def make_executor(store: Any, **kwargs: Any) -> EventToolExecutor:
    return EventToolExecutor(store, radius_km=10, today=lambda: TODAY, **kwargs)


class BrokenStore:
    async def find_events(self, *args: Any, **kwargs: Any):
        raise RepositoryError("database is locked")

    async def insert_event(self, fields: Mapping[str, Any]):
        raise RepositoryError("database is locked")


class StaticSearch:
    def __init__(self, results: list[SearchResult] | None = None, error: Exception | None = None):
        self._results = results or []
        self._error = error
        self.queries: list[str] = []

    async def search(self, query: str, count: int) -> list[SearchResult]:
        self.queries.append(query)
        if self._error is not None:
            raise self._error
        return self._results


async def all_events(repository: EventRepository) -> list[dict[str, Any]]:
    return await repository.find_events(
        datetime.datetime(2000, 1, 1, tzinfo=datetime.timezone.utc),
        datetime.datetime(2100, 1, 1, tzinfo=datetime.timezone.utc),
    )


@pytest.mark.anyio
async def test_proximity_query_keeps_only_nearby_events(repository):
    await repository.insert_event(
        {
            "name": "Rumba Night",
            "artist": "Gipsy Band",
            "venue": "Sala Apolo",
            "city": "Barcelona",
            "event_date": "2025-06-01T20:00:00Z",
            "latitude": 41.39,
            "longitude": 2.18,
            "price": 15,
        }
    )
    await repository.insert_event(
        {
            "name": "Far Away Fest",
            "venue": "Field",
            "city": "Girona",
            "event_date": "2025-06-01T18:00:00Z",
            "latitude": 42.5,
            "longitude": 3.5,
        }
    )
    executor = make_executor(repository)

    outcome = await executor.execute(
        CompletedToolCall(
            "query_database_events",
            {
                "startDate": "2025-06-01",
                "endDate": "2025-06-01",
                "latitude": 41.3851,
                "longitude": 2.1734,
            },
        )
    )

    assert outcome.content.startswith("Found 1 events near you:\n\n")
    assert "🎵 **Gipsy Band** at Sala Apolo, Barcelona" in outcome.content
    assert "💰 €15" in outcome.content
    assert "Far Away Fest" not in outcome.content
    assert outcome.extracted_event is None


@pytest.mark.anyio
async def test_city_query_is_case_insensitive_and_standardized(repository):
    await repository.insert_event(
        {"name": "Opera", "venue": "La Scala", "city": "Milan", "event_date": "2025-05-29T19:00:00"}
    )
    executor = make_executor(repository)

    outcome = await executor.execute(
        CompletedToolCall(
            "query_database_events",
            {"startDate": "tomorrow", "endDate": "tomorrow", "city": "milano"},
        )
    )

    assert outcome.content.startswith("Found 1 events near you:")
    assert "La Scala, Milan" in outcome.content


@pytest.mark.anyio
async def test_query_without_matches(repository):
    outcome = await make_executor(repository).execute(
        CompletedToolCall(
            "query_database_events", {"startDate": "2025-06-01", "endDate": "2025-06-02"}
        )
    )

    assert outcome.content == "Found 0 events near you:\n\nNo events found."


@pytest.mark.anyio
async def test_query_with_unreadable_dates_apologises(repository):
    outcome = await make_executor(repository).execute(
        CompletedToolCall("query_database_events", {"startDate": "", "endDate": ""})
    )

    assert outcome.content.startswith("Sorry")


@pytest.mark.anyio
async def test_create_event_writes_only_supplied_fields(repository):
    executor = make_executor(repository)

    outcome = await executor.execute(
        CompletedToolCall(
            "create_event",
            {
                "name": "Jazz Night",
                "venue": "Blue Note",
                "city": "Milan",
                "event_date": "2025-06-01T21:00:00Z",
                "artist": None,
                "ticket_url": "null",
            },
        )
    )

    assert outcome.content == '✅ Your event "Jazz Night" in Milan has been published!'
    [stored] = await all_events(repository)
    assert stored["name"] == "Jazz Night"
    assert "artist" not in stored
    assert "ticket_url" not in stored
    assert "price" not in stored


@pytest.mark.anyio
async def test_create_event_wraps_a_single_tag(repository):
    executor = make_executor(repository)

    await executor.execute(
        CompletedToolCall(
            "create_event",
            {
                "name": "Gig",
                "venue": "Bar",
                "city": "Rome",
                "event_date": "2025-06-01T21:00:00Z",
                "tags": "rock",
            },
        )
    )

    [stored] = await all_events(repository)
    assert stored["tags"] == ["rock"]


@pytest.mark.anyio
async def test_repeated_create_inserts_twice(repository):
    executor = make_executor(repository)
    call = CompletedToolCall(
        "create_event",
        {"name": "Gig", "venue": "Bar", "city": "Rome", "event_date": "2025-06-01T21:00:00Z"},
    )

    await executor.execute(call)
    await executor.execute(call)

    assert len(await all_events(repository)) == 2


@pytest.mark.anyio
async def test_create_event_missing_required_field(repository):
    outcome = await make_executor(repository).execute(
        CompletedToolCall("create_event", {"name": "Gig", "city": "Rome"})
    )

    assert "venue" in outcome.content
    assert "event_date" in outcome.content
    assert await all_events(repository) == []


@pytest.mark.anyio
async def test_datastore_errors_become_apologies():
    executor = make_executor(BrokenStore())

    query = await executor.execute(
        CompletedToolCall(
            "query_database_events", {"startDate": "2025-06-01", "endDate": "2025-06-01"}
        )
    )
    insert = await executor.execute(
        CompletedToolCall(
            "create_event",
            {"name": "Gig", "venue": "Bar", "city": "Rome", "event_date": "2025-06-01"},
        )
    )

    assert query.content == QUERY_FAILED_MESSAGE
    assert insert.content == INSERT_FAILED_MESSAGE


@pytest.mark.anyio
async def test_extract_event_produces_extracted_event(repository):
    details = {"name": "Jazz Night", "tags": ["jazz", "intimate"]}

    outcome = await make_executor(repository).execute(
        CompletedToolCall("extract_event", details)
    )

    assert outcome.extracted_event == details
    assert outcome.content is None
    assert await all_events(repository) == []


@pytest.mark.anyio
async def test_internet_search_without_provider(repository):
    outcome = await make_executor(repository).execute(
        CompletedToolCall("search_internet_events", {"city": "Bergamo"})
    )

    assert "couldn't find any results" in outcome.content
    assert "Bergamo" in outcome.content


@pytest.mark.anyio
async def test_internet_search_formats_results(repository):
    search = StaticSearch(
        [
            SearchResult("Jazz in Bergamo", "https://example.com/jazz", "Saturday jam"),
            SearchResult("Rock Night", "https://example.com/rock", ""),
        ]
    )

    outcome = await make_executor(repository, web_search=search).execute(
        CompletedToolCall(
            "search_internet_events",
            {"city": "Bergamo", "startDate": "2025-06-01", "endDate": "2025-06-02"},
        )
    )

    assert search.queries == ["live music events Bergamo 2025-06-01 2025-06-02 tickets"]
    assert outcome.content.startswith("I found 2 results:")
    assert "🎫 [Details](https://example.com/jazz)" in outcome.content


@pytest.mark.anyio
async def test_internet_search_errors(repository):
    search = StaticSearch(error=httpx.ConnectError("offline"))

    outcome = await make_executor(repository, web_search=search).execute(
        CompletedToolCall("search_internet_events", {"city": "Bergamo"})
    )

    assert outcome.content == WEB_SEARCH_FAILED_MESSAGE


@pytest.mark.anyio
async def test_unknown_tool_raises(repository):
    with pytest.raises(UnknownToolError):
        await make_executor(repository).execute(CompletedToolCall("drop_table", {}))


def test_planar_distance_is_degree_scaled():
    assert planar_distance_km(0, 0, 0, 1) == pytest.approx(111)
    assert planar_distance_km(41.3851, 2.1734, 41.39, 2.18) < 10
    assert planar_distance_km(41.3851, 2.1734, 42.5, 3.5) > 10


def test_clean_event_fields_coerces_and_drops():
    fields = clean_event_fields(
        {
            "name": "  Gig ",
            "price": "12.5",
            "latitude": "north",
            "description": "",
            "tags": [],
            "unknown": "x",
        }
    )

    assert fields == {"name": "Gig", "price": 12.5}


def test_clean_event_fields_normalizes_tags():
    assert clean_event_fields({"tags": " jazz "}) == {"tags": ["jazz"]}
    assert clean_event_fields({"tags": ["rock", 3, " ", "blues"]}) == {"tags": ["rock", "blues"]}
    assert clean_event_fields({"tags": {"genre": "rock"}}) == {}
    assert clean_event_fields({"tags": "null"}) == {}


def test_event_block_rendering():
    block = format_event_block(
        {
            "name": "Jazz Night",
            "venue": "Blue Note",
            "city": "Milan",
            "description": "x" * 120,
            "event_date": "2025-06-01T20:00:00+00:00",
            "price": 12.5,
            "ticket_url": "https://tickets.example.com",
            "latitude": 45.48,
            "longitude": 9.18,
        }
    )

    assert block.splitlines() == [
        "🎵 **Jazz Night** at Blue Note, Milan",
        "📝 " + "x" * 100 + "...",
        "📅 Sun, Jun 1, 2025 at 08:00 PM",
        "💰 €12.50",
        "🎫 [Tickets](https://tickets.example.com) | 📍 [Map](https://maps.google.com/?q=45.48,9.18)",
    ]
