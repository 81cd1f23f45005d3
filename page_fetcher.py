"""
Page fetcher - the only network primitive used by the bot.

Wraps a shared ``requests.Session`` (cookies, browser headers) and runs each
blocking call in its own thread, so every entity chain of a cycle has its
request in flight at the same time. There is no pool and no worker cap.
``fetch`` never raises: transport failures come back as a ``FetchResult``
carrying a ``NetworkError``.
"""

import asyncio
import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, Optional
from urllib.parse import urljoin

import requests

from errors import NetworkError

logger = logging.getLogger(__name__)

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


@dataclass(frozen=True)
class Request:
    method: str
    url: str
    data: Optional[Dict[str, str]] = None
    params: Optional[Dict[str, str]] = None
    headers: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class RawResponse:
    status: int
    text: str
    url: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 400


@dataclass(frozen=True)
class FetchResult:
    response: Optional[RawResponse] = None
    error: Optional[NetworkError] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.response is not None


class PageFetcher:
    """Authenticated GET/POST against the game server"""

    def __init__(self, session: requests.Session, base_url: str,
                 timeout: Optional[float] = None, max_retries: int = 0):
        self.session = session
        self.base_url = base_url if base_url.endswith("/") else base_url + "/"
        self.timeout = timeout
        self.max_retries = max(0, int(max_retries))

    def resolve(self, url: str) -> str:
        """Resolve an endpoint path against the base URL"""
        return urljoin(self.base_url, url)

    def _send(self, request: Request) -> RawResponse:
        method = request.method.upper()
        headers = dict(request.headers)
        if method == "POST":
            headers.setdefault("Content-Type", FORM_CONTENT_TYPE)
        resp = self.session.request(
            method,
            self.resolve(request.url),
            data=request.data,
            params=request.params,
            headers=headers,
            timeout=self.timeout,
            allow_redirects=True,
        )
        return RawResponse(status=resp.status_code, text=resp.text, url=resp.url)

    async def _in_thread(self, request: Request) -> RawResponse:
        """Run ``_send`` on a thread of its own and await its result"""
        loop = asyncio.get_running_loop()
        future = loop.create_future()

        def settle(result, error):
            if future.cancelled():
                return
            if error is not None:
                future.set_exception(error)
            else:
                future.set_result(result)

        def worker():
            try:
                outcome = (self._send(request), None)
            except Exception as e:
                outcome = (None, e)
            try:
                loop.call_soon_threadsafe(settle, *outcome)
            except RuntimeError:
                # event loop already closed; nobody is waiting for this answer
                logger.debug(f"Dropping late response for {request.method.upper()} {request.url}")

        threading.Thread(target=worker, name=f"fetch {request.url}", daemon=True).start()
        return await future

    async def fetch(self, request: Request) -> FetchResult:
        url = self.resolve(request.url)
        attempts = self.max_retries + 1
        last_error = None
        for attempt in range(1, attempts + 1):
            try:
                response = await self._in_thread(request)
                logger.debug(f"{request.method.upper()} {url} -> HTTP {response.status}")
                return FetchResult(response=response)
            except requests.RequestException as e:
                last_error = NetworkError(f"{request.method.upper()} {url} failed: {e}", cause=e)
                if attempt < attempts:
                    logger.warning(f"Request failed (attempt {attempt}/{attempts}): {e}")
        logger.error(str(last_error))
        return FetchResult(error=last_error)

    async def get(self, url: str, params: Optional[Dict[str, str]] = None) -> FetchResult:
        return await self.fetch(Request("GET", url, params=params))

    async def post(self, url: str, data: Optional[Dict[str, str]] = None) -> FetchResult:
        return await self.fetch(Request("POST", url, data=data))
