"""Online/offline tracking for the sync queue.

:class:`ConnectivityMonitor` mirrors a connectivity feed into a single
``is_online`` flag and fires its ``on_online`` callback once per
offline -> online edge. It never polls; polling, where the platform has no
push notifications, belongs to the feed (see :class:`TcpProbeFeed`).
"""
from __future__ import annotations

import asyncio
import logging
from typing import Callable, List, Optional, Protocol


logger = logging.getLogger("liftfire.sync")

Unsubscribe = Callable[[], None]


class ConnectivityFeed(Protocol):
    async def current(self) -> bool: ...

    def subscribe(self, callback: Callable[[bool], None]) -> Unsubscribe: ...


class _Subscribers:
    def __init__(self) -> None:
        self._callbacks: List[Callable[[bool], None]] = []

    def add(self, callback: Callable[[bool], None]) -> Unsubscribe:
        self._callbacks.append(callback)

        def _remove() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return _remove

    def emit(self, online: bool) -> None:
        for callback in list(self._callbacks):
            callback(online)

    def __len__(self) -> int:
        return len(self._callbacks)


class ManualConnectivityFeed:
    """Feed driven by the host application (or a test) calling ``set_online``."""

    def __init__(self, online: bool = True):
        self._online = online
        self._subscribers = _Subscribers()

    async def current(self) -> bool:
        return self._online

    def subscribe(self, callback: Callable[[bool], None]) -> Unsubscribe:
        return self._subscribers.add(callback)

    def set_online(self, online: bool) -> None:
        self._online = bool(online)
        self._subscribers.emit(self._online)


class TcpProbeFeed:
    """Reachability feed that opens a TCP connection to the backend host.

    Probing runs in a background task while at least one subscriber is
    attached; subscribers hear about every change of the probe result.
    """

    def __init__(self, host: str, port: int = 443, *, timeout: float = 3.0, interval: float = 15.0):
        self.host = host
        self.port = port
        self.timeout = timeout
        self.interval = interval
        self._subscribers = _Subscribers()
        self._task: Optional[asyncio.Task] = None
        self._last: Optional[bool] = None

    async def current(self) -> bool:
        if not self.host:
            return False
        try:
            _reader, writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port), timeout=self.timeout
            )
        except (OSError, asyncio.TimeoutError):
            return False
        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass
        return True

    def subscribe(self, callback: Callable[[bool], None]) -> Unsubscribe:
        remove = self._subscribers.add(callback)
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(self._loop())

        def _unsubscribe() -> None:
            remove()
            if not len(self._subscribers) and self._task is not None:
                self._task.cancel()
                self._task = None

        return _unsubscribe

    async def _loop(self) -> None:
        while True:
            online = await self.current()
            if online != self._last:
                self._last = online
                self._subscribers.emit(online)
            await asyncio.sleep(self.interval)


class ConnectivityMonitor:
    def __init__(
        self,
        feed: ConnectivityFeed,
        on_online: Optional[Callable[[], None]] = None,
    ) -> None:
        self.feed = feed
        self._on_online = on_online
        self._online = False
        self._unsubscribe: Optional[Unsubscribe] = None
        self._listeners: List[Callable[[bool], None]] = []

    @property
    def is_online(self) -> bool:
        return self._online

    def set_on_online(self, callback: Optional[Callable[[], None]]) -> None:
        self._on_online = callback

    def add_listener(self, callback: Callable[[bool], None]) -> None:
        """Observe every state change (not only offline -> online)."""
        self._listeners.append(callback)

    async def start(self) -> bool:
        if self._unsubscribe is None:
            self._unsubscribe = self.feed.subscribe(self.handle_change)
        try:
            self._online = bool(await self.feed.current())
        except Exception as exc:
            logger.warning("Initial connectivity check failed: %s", exc)
        logger.info("Initial network state: online=%s", self._online)
        return self._online

    def handle_change(self, online: bool) -> None:
        was_offline = not self._online
        self._online = bool(online)
        logger.debug("Network state changed: online=%s was_offline=%s", self._online, was_offline)
        for listener in list(self._listeners):
            try:
                listener(self._online)
            except Exception as exc:  # pragma: no cover - listeners are UI code
                logger.error("Connectivity listener crashed: %s", exc)
        if self._online and was_offline and self._on_online is not None:
            logger.info("Back online - processing sync queue")
            self._on_online()

    def teardown(self) -> None:
        if self._unsubscribe is not None:
            unsubscribe, self._unsubscribe = self._unsubscribe, None
            unsubscribe()


__all__ = [
    "ConnectivityFeed",
    "ConnectivityMonitor",
    "ManualConnectivityFeed",
    "TcpProbeFeed",
]
