"""
Session orchestrator: the boundary for "open these pages side by side".

A view is a freight detail page loaded in the background while the cycle
carries on, e.g. right after a trip was accepted. The cycle runner only
talks to the ``SessionOrchestrator`` interface.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List

from bot_config import DEFAULT_ENDPOINTS, endpoint
from page_fetcher import PageFetcher, RawResponse

logger = logging.getLogger(__name__)


@dataclass
class ViewHandle:
    tasks: Dict[str, "asyncio.Task"] = field(default_factory=dict)

    async def wait(self, timeout: float = None):
        """Wait for the views to load, at most ``timeout`` seconds"""
        if self.tasks:
            await asyncio.wait(list(self.tasks.values()), timeout=timeout)


class SessionOrchestrator:
    """Interface for opening and closing concurrent page views"""

    async def open_concurrent_views(self, ids: Iterable[str]) -> ViewHandle:
        raise NotImplementedError

    async def close_all(self, handle: ViewHandle) -> Dict[str, RawResponse]:
        raise NotImplementedError


class HeadlessViewOrchestrator(SessionOrchestrator):
    """Opens each freight view as a background GET of its detail page"""

    def __init__(self, fetcher: PageFetcher, endpoints: Dict[str, str] = None,
                 template: str = "freight_detail"):
        self.fetcher = fetcher
        self.endpoints = endpoints or DEFAULT_ENDPOINTS
        self.template = template

    async def _view(self, view_id: str):
        result = await self.fetcher.get(endpoint(self.endpoints, self.template, view_id))
        if not result.ok:
            logger.warning(f"View {view_id} failed to load: {result.error}")
            return None
        logger.info(f"Opened view for {view_id} (HTTP {result.response.status})")
        return result.response

    async def open_concurrent_views(self, ids: Iterable[str]) -> ViewHandle:
        handle = ViewHandle()
        for view_id in ids:
            handle.tasks[view_id] = asyncio.ensure_future(self._view(view_id))
        return handle

    async def close_all(self, handle: ViewHandle) -> Dict[str, RawResponse]:
        """Cancel views still loading; return the pages that finished"""
        pending: List[asyncio.Task] = [t for t in handle.tasks.values() if not t.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        pages = {}
        for view_id, task in handle.tasks.items():
            if task.cancelled():
                logger.debug(f"View {view_id} closed before it loaded")
                continue
            if task.result() is not None:
                pages[view_id] = task.result()
        handle.tasks.clear()
        return pages
