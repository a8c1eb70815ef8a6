"""
Tests for the endpoint fetcher and raw entity extraction.
"""

from datetime import UTC, datetime

import pytest

from highrise_poller.config import DEFAULT_ENDPOINT_SINGULARS
from highrise_poller.exceptions import FetchError
from highrise_poller.polling.fetcher import (
    EndpointFetcher,
    RawEntity,
    singularize,
    unwrap_field,
)


class TestFieldHelpers:
    """Test field unwrapping and singularisation."""

    def test_unwrap_wrapper_list(self):
        assert unwrap_field([{"_": "42", "$": {"type": "integer"}}]) == "42"

    def test_unwrap_plain_value(self):
        assert unwrap_field("42") == "42"

    def test_unwrap_empty_values(self):
        assert unwrap_field(None) is None
        assert unwrap_field([]) is None
        assert unwrap_field([{"_": "", "$": {"nil": "true"}}]) is None

    @pytest.mark.parametrize(
        "endpoint,expected",
        [("people", "person"), ("companies", "company"), ("deals", "deal")],
    )
    def test_singularize_known_endpoints(self, endpoint, expected):
        assert singularize(endpoint, DEFAULT_ENDPOINT_SINGULARS) == expected

    def test_singularize_fallback(self):
        assert singularize("categories") == "category"
        assert singularize("tags") == "tag"
        assert singularize("staff") == "staff"


class TestRawEntity:
    """Test RawEntity construction."""

    def test_from_wrapped_record(self, record_factory):
        created = datetime(2024, 1, 15, 10, 0, tzinfo=UTC)
        record = record_factory("42", created, first_name="Ada")

        entity = RawEntity.from_record(record)

        assert entity.entity_id == "42"
        assert entity.created_at == created
        assert entity.payload is record

    def test_from_flat_record(self):
        entity = RawEntity.from_record(
            {"id": 7, "created-at": "2024-01-15T10:00:00Z"}
        )

        assert entity.entity_id == "7"
        assert entity.created_at == datetime(2024, 1, 15, 10, 0, tzinfo=UTC)

    def test_missing_fields(self):
        entity = RawEntity.from_record({"name": [{"_": "Acme"}]})

        assert entity.entity_id is None
        assert entity.created_at is None


class TestEndpointFetcher:
    """Test EndpointFetcher."""

    def test_full_fetch_request(self, client_factory):
        fetcher = EndpointFetcher(client_factory())

        path, params = fetcher.build_request("people", None)

        assert path == "/people.xml"
        assert params == {}

    def test_incremental_fetch_request(self, client_factory):
        fetcher = EndpointFetcher(client_factory())
        last_polled = datetime(2024, 1, 15, 10, 30, 5, tzinfo=UTC)

        path, params = fetcher.build_request("companies", last_polled)

        assert path == "/companies.xml"
        assert params == {"since": "20240115103005"}

    @pytest.mark.asyncio
    async def test_fetch_extracts_entities(self, client_factory, record_factory):
        client = client_factory(
            responses={
                "/people.xml": {
                    "people": {
                        "$": {"type": "array"},
                        "person": [record_factory("1"), record_factory("2")],
                    }
                }
            }
        )
        fetcher = EndpointFetcher(client, DEFAULT_ENDPOINT_SINGULARS)
        before = datetime.now(UTC)

        result = await fetcher.fetch("people", None)

        assert result.endpoint == "people"
        assert result.entity_kind == "person"
        assert [e.entity_id for e in result.entities] == ["1", "2"]
        assert result.fetched_at >= before
        assert result.last_polled is None
        assert client.calls == [("/people.xml", {})]

    @pytest.mark.asyncio
    async def test_empty_collection_yields_no_entities(self, client_factory):
        client = client_factory(
            responses={"/people.xml": {"people": {"$": {"type": "array"}}}}
        )
        fetcher = EndpointFetcher(client, DEFAULT_ENDPOINT_SINGULARS)

        result = await fetcher.fetch("people", None)

        assert result.entities == []

    @pytest.mark.asyncio
    async def test_missing_collection_is_fetch_error(self, client_factory):
        client = client_factory(responses={"/people.xml": {"error": {}}})
        fetcher = EndpointFetcher(client, DEFAULT_ENDPOINT_SINGULARS)

        with pytest.raises(FetchError) as exc_info:
            await fetcher.fetch("people", None)

        assert exc_info.value.endpoint == "people"

    @pytest.mark.asyncio
    async def test_client_errors_become_fetch_errors(self, client_factory):
        client = client_factory(
            failures={"/people.xml": ConnectionError("connection reset")}
        )
        fetcher = EndpointFetcher(client)

        with pytest.raises(FetchError, match="connection reset") as exc_info:
            await fetcher.fetch("people", None)

        assert exc_info.value.endpoint == "people"

    @pytest.mark.asyncio
    async def test_fetch_error_gets_endpoint(self, client_factory):
        client = client_factory(
            failures={"/people.xml": FetchError("boom", status_code=500)}
        )
        fetcher = EndpointFetcher(client)

        with pytest.raises(FetchError) as exc_info:
            await fetcher.fetch("people", None)

        assert exc_info.value.endpoint == "people"
        assert exc_info.value.status_code == 500
