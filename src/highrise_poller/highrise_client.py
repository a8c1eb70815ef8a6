"""
Highrise API client for the Highrise poller.

This module provides an async HTTP client for the Highrise XML API with
authentication, error handling, and XML-to-mapping conversion.
"""

import xml.etree.ElementTree as ET
from typing import Any

import httpx
import structlog

from .config import ClientConfig
from .exceptions import FetchError

logger = structlog.get_logger(__name__)

TEXT_KEY = "_"
ATTRIBUTES_KEY = "$"


def element_to_value(element: ET.Element) -> Any:
    """
    Convert an XML element into nested mappings.

    Child elements are grouped by tag into lists, in document order. Leaf
    elements become single wrapper mappings holding the text under ``_`` and
    any attributes under ``$``.
    """
    children = list(element)
    if not children:
        leaf: dict[str, Any] = {TEXT_KEY: (element.text or "").strip()}
        if element.attrib:
            leaf[ATTRIBUTES_KEY] = dict(element.attrib)
        return leaf

    value: dict[str, Any] = {}
    if element.attrib:
        value[ATTRIBUTES_KEY] = dict(element.attrib)
    for child in children:
        value.setdefault(child.tag, []).append(element_to_value(child))
    return value


def parse_xml(content: bytes | str) -> dict[str, Any]:
    """Parse an XML document into ``{root_tag: value}``."""
    root = ET.fromstring(content)
    value = element_to_value(root)
    # A collection root with no records still maps to a dict
    if TEXT_KEY in value and len(value) <= 2 and not value[TEXT_KEY]:
        value = {k: v for k, v in value.items() if k != TEXT_KEY}
    return {root.tag: value}


class HighriseClient:
    """
    Highrise API client with authentication.

    In Private mode requests use HTTP basic auth with the account API token.
    When a credential is attached through ``authorize`` it is sent as a
    bearer token instead.
    """

    def __init__(
        self,
        config: ClientConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the Highrise client.

        Args:
            config: Client configuration
            transport: Optional httpx transport (used by tests)
        """
        self.config = config
        self._transport = transport
        self._authorization: str | None = None

    @property
    def is_authorized(self) -> bool:
        """Check if an OAuth credential is attached."""
        return self._authorization is not None

    def authorize(self, authorization: str) -> None:
        """Attach an OAuth credential for subsequent requests."""
        self._authorization = authorization
        logger.debug("Authorization attached to Highrise client")

    def _build_headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/xml",
            "User-Agent": self.config.user_agent,
        }
        if self._authorization:
            headers["Authorization"] = f"Bearer {self._authorization}"
        return headers

    def _build_auth(self) -> httpx.BasicAuth | None:
        if self._authorization or not self.config.api_token:
            return None
        return httpx.BasicAuth(self.config.api_token, "X")

    async def get(
        self, path: str, params: dict[str, str] | None = None
    ) -> dict[str, Any]:
        """
        Get a Highrise resource.

        Args:
            path: Resource path, e.g. '/people.xml'
            params: Query parameters

        Returns:
            Parsed response document

        Raises:
            FetchError: On transport, HTTP status or parse failure
        """
        url = f"{self.config.base_url.rstrip('/')}{path}"

        try:
            async with httpx.AsyncClient(
                timeout=self.config.timeout_seconds,
                transport=self._transport,
            ) as client:
                response = await client.get(
                    url,
                    params=params or {},
                    headers=self._build_headers(),
                    auth=self._build_auth(),
                )
        except httpx.HTTPError as e:
            logger.error("Highrise request failed", path=path, error=str(e))
            raise FetchError(f"Request to {path} failed: {e}") from e

        if response.status_code != 200:
            logger.error(
                "Highrise returned an error status",
                path=path,
                status_code=response.status_code,
            )
            raise FetchError(
                f"Request to {path} returned {response.status_code}",
                status_code=response.status_code,
                context={"body": response.text[:500]},
            )

        try:
            return parse_xml(response.content)
        except ET.ParseError as e:
            logger.error("Failed to parse Highrise response", path=path, error=str(e))
            raise FetchError(f"Invalid XML from {path}: {e}") from e
