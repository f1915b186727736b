# teamchat/client/http.py
from typing import Any, Optional
import logging

import httpx

from teamchat.config import settings

logger = logging.getLogger(__name__)


class ChatApiError(Exception):
    """A failed chat API call.

    `message` is the server's `error` string when the server answered, None
    for transport failures (connection refused, timeout, unreadable body).
    """

    def __init__(self, message: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message or "Request failed")
        self.message = message
        self.status_code = status_code


class ChatApiClient:
    """Cookie-authenticated JSON client for the chat service."""

    def __init__(
        self,
        base_url: str = settings.CLIENT_BASE_URL,
        session_token: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: Optional[httpx.Timeout] = None,
    ):
        cookies = {settings.SESSION_COOKIE_NAME: session_token} if session_token else None
        self._client = httpx.AsyncClient(
            base_url=base_url,
            cookies=cookies,
            transport=transport,
            timeout=timeout or httpx.Timeout(settings.CLIENT_READ_TIMEOUT, connect=settings.CLIENT_CONNECT_TIMEOUT),
        )

    async def request(self, method: str, path: str, json: Any = None) -> Any:
        try:
            response = await self._client.request(method, path, json=json)
        except httpx.HTTPError as e:
            logger.warning(f"{method} {path} failed: {e}")
            raise ChatApiError() from e

        if response.is_success:
            return response.json() if response.content else None

        try:
            body = response.json()
        except ValueError:
            body = None
        error = body.get("error") if isinstance(body, dict) else None
        logger.info(f"{method} {path} -> {response.status_code}: {error}")
        raise ChatApiError(error, status_code=response.status_code)

    async def get(self, path: str) -> Any:
        return await self.request("GET", path)

    async def post(self, path: str, json: Any = None) -> Any:
        return await self.request("POST", path, json=json)

    async def patch(self, path: str, json: Any = None) -> Any:
        return await self.request("PATCH", path, json=json)

    async def delete(self, path: str) -> Any:
        return await self.request("DELETE", path)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()
