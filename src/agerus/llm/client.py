"""Client for the Ollama-style streaming chat endpoint."""

import logging
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional

import httpx
import requests

from ..errors import BackendConnectionError, BackendError

logger = logging.getLogger(__name__)

FallbackCallback = Callable[[str], Awaitable[None]]


class OllamaClient:
    """Streams chat responses from the backend.

    A 400-class rejection of a request carrying tool specifications usually
    means the model does not support tools, so the request is sent once more
    without them. Every other failure ends the request, including a 400-class
    rejection of a request that had no tools.
    """

    def __init__(
        self,
        chat_url: str,
        model: str,
        timeout: float = 300.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.chat_url = chat_url
        self.model = model
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def tags_url(self) -> str:
        """Model listing endpoint next to the chat endpoint."""
        if self.chat_url.endswith("/api/chat"):
            return self.chat_url[: -len("/api/chat")] + "/api/tags"
        return self.chat_url.rstrip("/") + "/api/tags"

    async def initialize(self) -> None:
        """Create the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout, connect=10.0),
                transport=self._transport,
            )

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def build_request(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = {"model": self.model, "messages": messages}
        if tools is not None:
            body["tools"] = tools
        body["stream"] = True
        return body

    async def stream_chat(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
        on_fallback: Optional[FallbackCallback] = None,
    ) -> AsyncIterator[bytes]:
        """Yield raw response bytes for one chat request.

        Raises:
            BackendError: the backend rejected the request (after at most one
                fallback retry).
            BackendConnectionError: the backend could not be reached or the
                stream broke off.
        """
        await self.initialize()

        body = self.build_request(messages, tools)
        try:
            async with self._client.stream("POST", self.chat_url, json=body) as response:
                if tools is None or not _is_client_error(response.status_code):
                    await _raise_for_status(response)
                    async for chunk in response.aiter_bytes():
                        yield chunk
                    return
                detail = await _read_detail(response)
                logger.info("Backend rejected request (%s): %s", response.status_code, detail)

            notice = f"Model '{self.model}' rejected tools. Falling back to text-only mode."
            if on_fallback is not None:
                await on_fallback(notice)

            body = self.build_request(messages, None)
            async with self._client.stream("POST", self.chat_url, json=body) as response:
                await _raise_for_status(response)
                async for chunk in response.aiter_bytes():
                    yield chunk
        except httpx.TimeoutException as e:
            raise BackendConnectionError(f"Backend request timed out: {e}") from e
        except httpx.TransportError as e:
            raise BackendConnectionError(f"Backend connection error: {e}") from e

    def list_models(self, timeout: float = 5.0) -> List[str]:
        """Return the names of the models the backend has available."""
        try:
            response = requests.get(self.tags_url, timeout=timeout)
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            raise BackendConnectionError(f"Failed to fetch models: {e}") from e

        models = data.get("models") if isinstance(data, dict) else None
        return [m["name"] for m in models or [] if isinstance(m, dict) and isinstance(m.get("name"), str)]


def _is_client_error(status: int) -> bool:
    return 400 <= status < 500


async def _read_detail(response: httpx.Response) -> str:
    try:
        raw = await response.aread()
    except httpx.HTTPError:
        return ""
    return raw.decode("utf-8", errors="replace").strip()


async def _raise_for_status(response: httpx.Response) -> None:
    if response.is_success:
        return
    detail = await _read_detail(response)
    raise BackendError(response.status_code, detail)
