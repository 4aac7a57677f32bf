"""Per-subscriber connections.

``QueueConnection`` is a bounded mailbox between the fan-out (producer,
running on whichever thread mutated an order) and the streaming
response of one subscriber (consumer).  Sending never blocks: a full or
closed mailbox raises ``DeliveryFailed`` so a slow client only loses its
own messages.
"""

from __future__ import annotations

import queue
import threading
from typing import Any, Callable, Dict, List, Optional

from modules.realtime.exceptions import DeliveryFailed


class QueueConnection:
    def __init__(self, maxsize: int = 100) -> None:
        self._queue: "queue.Queue[Dict[str, Any]]" = queue.Queue(maxsize=maxsize)
        self._closed = threading.Event()
        self._close_callbacks: List[Callable[[], None]] = []
        self._lock = threading.Lock()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def send(self, message: Dict[str, Any]) -> None:
        if self.closed:
            raise DeliveryFailed("Connection is closed.")
        try:
            self._queue.put_nowait(message)
        except queue.Full as exc:
            raise DeliveryFailed("Subscriber mailbox is full.") from exc

    def receive(self, timeout: Optional[float] = None) -> Optional[Dict[str, Any]]:
        """Next message, or ``None`` when *timeout* elapses first."""
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def pending(self) -> int:
        return self._queue.qsize()

    def add_close_callback(self, callback: Callable[[], None]) -> None:
        with self._lock:
            if not self.closed:
                self._close_callbacks.append(callback)
                return
        callback()

    def close(self) -> None:
        """Close the connection once; later calls do nothing."""
        with self._lock:
            if self.closed:
                return
            self._closed.set()
            callbacks, self._close_callbacks = self._close_callbacks, []
        for callback in callbacks:
            callback()
