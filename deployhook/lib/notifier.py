"""
Chat webhook notifier.

Forwards plain text and code-block messages to a Discord-style webhook
(``{"content": ...}``). Without a URL every call is a no-op.
"""

import logging
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

# Discord rejects message content longer than this
MAX_CONTENT_LENGTH = 2000


def _trim(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    marker = "\n…(truncated)"
    return text[: limit - len(marker)] + marker


def format_code_block(text: str, limit: int = MAX_CONTENT_LENGTH) -> str:
    """Wrap text in a fenced block that fits in one message."""
    fence_len = len("```\n\n```")
    # Break nested fences so the block cannot close early
    body = _trim(text.replace("```", "`\u200b``"), limit - fence_len)
    return f"```\n{body}\n```"


class WebhookNotifier:
    """Posts deploy notifications to an optional webhook."""

    def __init__(
        self,
        url: Optional[str],
        name: str = "deployhook",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url or None
        self.name = name
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def enabled(self) -> bool:
        return self.url is not None

    async def send_text(self, text: str) -> bool:
        """Send a plain message. Returns True when the sink accepted it."""
        return await self._post(_trim(f"[{self.name}] {text}", MAX_CONTENT_LENGTH))

    async def send_code(self, text: str) -> bool:
        """Send pre-formatted output as a code block."""
        return await self._post(format_code_block(text))

    async def aclose(self) -> None:
        """Close the pooled HTTP client, if one was opened."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(transport=self._transport, timeout=self.timeout)
        return self._client

    async def _post(self, content: str) -> bool:
        if not self.enabled:
            return False

        try:
            response = await self._get_client().post(self.url, json={"content": content})
            response.raise_for_status()
            return True
        # InvalidURL is not an HTTPError subclass
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.warning(f"Failed to deliver notification: {e}")
            return False
