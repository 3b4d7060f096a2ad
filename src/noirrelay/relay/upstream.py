"""
Upstream Connector

Opens the WebSocket connection to the generative-AI live endpoint using the
server-held API key.
"""

from typing import Any
from urllib.parse import urlencode, urlsplit, urlunsplit

import structlog
import websockets

from noirrelay.config import Settings

logger = structlog.get_logger()


class UpstreamConfigError(RuntimeError):
    """The server is missing configuration needed to reach upstream."""


class UpstreamConnector:
    """Builds the upstream URL and opens connections to it."""

    def __init__(
        self,
        api_key: str | None,
        url: str,
        max_message_bytes: int | None = None,
    ) -> None:
        self._api_key = api_key
        self._url = url
        self._max_message_bytes = max_message_bytes

    @classmethod
    def from_settings(cls, settings: Settings) -> "UpstreamConnector":
        return cls(
            api_key=settings.gemini_api_key,
            url=settings.upstream_url,
            max_message_bytes=settings.upstream_max_message_bytes,
        )

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    def build_url(self) -> str:
        """
        Return the endpoint URL with the API key in its query string.

        Raises:
            UpstreamConfigError: If no API key is configured
        """
        if not self._api_key:
            raise UpstreamConfigError("GEMINI_API_KEY is not configured")

        parts = urlsplit(self._url)
        query = urlencode({"key": self._api_key})
        if parts.query:
            query = f"{parts.query}&{query}"
        return urlunsplit(parts._replace(query=query))

    def redacted_url(self) -> str:
        """Endpoint URL safe for logs."""
        parts = urlsplit(self._url)
        return urlunsplit(parts._replace(query=""))

    async def open(self, url: str) -> Any:
        """Open the upstream connection; resolves once the handshake completes."""
        logger.debug("Opening upstream connection", url=self.redacted_url())
        return await websockets.connect(
            url,
            max_size=self._max_message_bytes,
            open_timeout=None,
        )
