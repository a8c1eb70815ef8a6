"""
Endpoint fetcher for the Highrise poller.

This module performs one incremental fetch of a single endpoint and turns
the response into raw entity records.
"""

from datetime import UTC, datetime
from typing import Any, Protocol

import structlog

from ..exceptions import FetchError
from ..state.manager import parse_timestamp

logger = structlog.get_logger(__name__)

SINCE_FORMAT = "%Y%m%d%H%M%S"
ID_FIELD = "id"
CREATED_AT_FIELD = "created-at"


class FetchClient(Protocol):
    """Interface the fetcher needs from an API client."""

    async def get(
        self, path: str, params: dict[str, str] | None = None
    ) -> dict[str, Any]: ...


def unwrap_field(value: Any) -> Any:
    """
    Unwrap a field that may be encoded as ``[{"_": value, "$": {...}}]``.

    Plain values are returned unchanged; empty strings become None.
    """
    if isinstance(value, list):
        if not value:
            return None
        value = value[0]
    if isinstance(value, dict):
        value = value.get("_")
    if isinstance(value, str) and not value.strip():
        return None
    return value


def singularize(endpoint: str, singulars: dict[str, str] | None = None) -> str:
    """Get the singular entity kind for an endpoint name."""
    if singulars and endpoint in singulars:
        return singulars[endpoint]
    if endpoint.endswith("ies"):
        return endpoint[:-3] + "y"
    if endpoint.endswith("s"):
        return endpoint[:-1]
    return endpoint


class RawEntity:
    """One record returned by the API for an endpoint."""

    def __init__(
        self,
        entity_id: str | None,
        created_at: datetime | None,
        payload: dict[str, Any],
    ):
        self.entity_id = entity_id
        self.created_at = created_at
        self.payload = payload

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "RawEntity":
        """Create RawEntity from a response record."""
        entity_id = unwrap_field(record.get(ID_FIELD))
        return cls(
            entity_id=str(entity_id) if entity_id is not None else None,
            created_at=parse_timestamp(unwrap_field(record.get(CREATED_AT_FIELD))),
            payload=record,
        )


class FetchResult:
    """Entities fetched for one endpoint in one cycle."""

    def __init__(
        self,
        endpoint: str,
        entity_kind: str,
        entities: list[RawEntity],
        fetched_at: datetime,
        last_polled: datetime | None,
    ):
        self.endpoint = endpoint
        self.entity_kind = entity_kind
        self.entities = entities
        self.fetched_at = fetched_at
        self.last_polled = last_polled


class EndpointFetcher:
    """Fetches a single endpoint incrementally."""

    def __init__(
        self, client: FetchClient, singulars: dict[str, str] | None = None
    ) -> None:
        """
        Initialize the endpoint fetcher.

        Args:
            client: API client providing ``get(path, params)``
            singulars: Endpoint name to singular entity kind
        """
        self.client = client
        self.singulars = singulars or {}

    def build_request(
        self, endpoint: str, last_polled: datetime | None
    ) -> tuple[str, dict[str, str]]:
        """Build the request path and query parameters for an endpoint."""
        path = f"/{endpoint}.xml"
        params: dict[str, str] = {}
        if last_polled is not None:
            params["since"] = last_polled.astimezone(UTC).strftime(SINCE_FORMAT)
        return path, params

    async def fetch(self, endpoint: str, last_polled: datetime | None) -> FetchResult:
        """
        Fetch changes for an endpoint since its last poll.

        Args:
            endpoint: Endpoint name, e.g. 'people'
            last_polled: Endpoint last poll time, None for a full fetch

        Returns:
            Fetched entities and the fetch start time

        Raises:
            FetchError: If the endpoint could not be fetched
        """
        entity_kind = singularize(endpoint, self.singulars)
        path, params = self.build_request(endpoint, last_polled)
        fetched_at = datetime.now(UTC)

        logger.info(
            "Polling endpoint",
            endpoint=endpoint,
            path=path,
            params=params,
            last_polled=last_polled.isoformat() if last_polled else None,
        )

        try:
            response = await self.client.get(path, params)
        except FetchError as e:
            e.endpoint = e.endpoint or endpoint
            raise
        except Exception as e:
            raise FetchError(
                f"Failed to fetch {endpoint}: {e}", endpoint=endpoint
            ) from e

        collection = response.get(endpoint) if isinstance(response, dict) else None
        if not isinstance(collection, dict):
            raise FetchError(
                f"Response for {endpoint} has no '{endpoint}' collection",
                endpoint=endpoint,
            )

        records = collection.get(entity_kind) or []
        if not records:
            logger.warning("No results", endpoint=endpoint, entity_kind=entity_kind)

        entities = [RawEntity.from_record(record) for record in records]

        logger.debug(
            "Got results from endpoint",
            endpoint=endpoint,
            entity_count=len(entities),
        )

        return FetchResult(
            endpoint=endpoint,
            entity_kind=entity_kind,
            entities=entities,
            fetched_at=fetched_at,
            last_polled=last_polled,
        )
