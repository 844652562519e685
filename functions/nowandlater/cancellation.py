"""
Cooperative cancellation for routed requests.

The HTTP layer cancels the token when the client disconnects; the router
checks it before each attempt and executors check it before their network
call.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Optional

from fastapi import Request

from nowandlater.errors import RequestCancelled

logger = logging.getLogger(__name__)


class CancellationToken:
    """Thread-safe cancellation flag shared by one request's call chain."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "Request cancelled") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise RequestCancelled(self.reason or "Request cancelled")


async def watch_disconnect(
    request: Request, token: CancellationToken, poll_interval: float = 0.25
) -> None:
    """
    Poll the ASGI connection and cancel `token` once the client goes away.

    Run as a background task alongside the routed call; cancel the task
    when the call finishes.
    """
    while not token.cancelled:
        if await request.is_disconnected():
            logger.info("Client disconnected: %s %s", request.method, request.url.path)
            token.cancel("Client disconnected")
            return
        await asyncio.sleep(poll_interval)
