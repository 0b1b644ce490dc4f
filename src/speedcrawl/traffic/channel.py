"""Bounded hand-off between browser event hooks and the traffic correlator."""

from __future__ import annotations

import queue
from typing import Callable, Union

from ..core.models import CapturedRequest, CapturedResponse

TrafficEvent = Union[CapturedRequest, CapturedResponse]


class TrafficChannel:
    """FIFO of traffic events with a fixed capacity.

    ``publish`` never blocks: when the buffer is full the pending events are
    delivered to the consumer inline before the new one is queued, so order
    is preserved and memory stays bounded by ``capacity``.
    """

    def __init__(self, consumer: Callable[[TrafficEvent], None], capacity: int = 1000) -> None:
        self._consumer = consumer
        self._queue: "queue.Queue[TrafficEvent]" = queue.Queue(maxsize=capacity)
        self.capacity = capacity

    def publish(self, event: TrafficEvent) -> None:
        while True:
            try:
                self._queue.put_nowait(event)
                return
            except queue.Full:
                self.drain()

    def drain(self) -> int:
        delivered = 0
        while True:
            try:
                event = self._queue.get_nowait()
            except queue.Empty:
                return delivered
            self._consumer(event)
            delivered += 1

    def __len__(self) -> int:
        return self._queue.qsize()
