"""
Ordered delivery buffer between the observers and the pipeline.

enqueue() is the single serialization point of the system: observers call it
from any thread, it never blocks and never raises, and the order of enqueue()
calls is the order in which exchanges reach the sink.

One worker thread owns delivery. It first waits for the sink to report ready,
checking on the RetryPolicy schedule until the grace window expires. Once the
sink is ready it drains the backlog strictly in arrival order and then keeps
delivering new exchanges as they arrive. If the window expires first the
buffer is abandoned: exchanges keep accumulating in memory and are lost when
the process exits.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from collections.abc import Iterator
from typing import Literal

import attrs

from .protocols import ExchangeSink
from .schemas.exchange import Exchange

__all__ = ['DeliveryBuffer', 'DeliveryState', 'RetryPolicy']

logger = logging.getLogger(__name__)

type DeliveryState = Literal['created', 'waiting', 'delivering', 'abandoned', 'closed']

_STOP = object()


@attrs.define(frozen=True)
class RetryPolicy:
    """Readiness polling schedule bound to a grace-window deadline.

    backoff=1.0 polls on a fixed interval; a larger factor grows the interval
    exponentially up to max_interval.
    """

    interval: float = 0.05
    grace_window: float = 30.0
    backoff: float = 1.0
    max_interval: float = 1.0

    def delays(self) -> Iterator[float]:
        delay = self.interval
        while True:
            yield delay
            delay = min(delay * self.backoff, max(self.max_interval, self.interval))


class DeliveryBuffer:
    """FIFO buffer with a single delivery worker."""

    def __init__(
        self,
        sink: ExchangeSink,
        policy: RetryPolicy | None = None,
        *,
        backlog_warning_threshold: int = 5_000,
        name: str = 'sessiontap-delivery',
    ) -> None:
        self._sink = sink
        self._policy = policy or RetryPolicy()
        self._queue: queue.SimpleQueue[object] = queue.SimpleQueue()
        self._cancel = threading.Event()
        self._idle = threading.Condition()
        self._pending = 0
        self._warning_threshold = backlog_warning_threshold
        self._next_warning = backlog_warning_threshold
        self._state: DeliveryState = 'created'
        self._worker = threading.Thread(target=self._run, name=name, daemon=True)

    # ==============================================================================
    # Public API
    # ==============================================================================

    @property
    def state(self) -> DeliveryState:
        return self._state

    @property
    def backlog(self) -> int:
        """Exchanges enqueued but not yet handed to the sink."""
        with self._idle:
            return self._pending

    def start(self) -> None:
        if self._state != 'created':
            return
        self._state = 'waiting'
        self._worker.start()

    def enqueue(self, exchange: Exchange) -> None:
        """Accept an exchange for delivery. Never blocks, never raises."""
        try:
            with self._idle:
                self._pending += 1
                backlog = self._pending
                warn = backlog >= self._next_warning
                if warn:
                    self._next_warning *= 2
                # Inside the lock so queue order matches the order of enqueue calls
                self._queue.put(exchange)
            if warn:
                logger.warning(
                    'Delivery backlog reached %d exchanges (state=%s); nothing is dropped, memory use is growing',
                    backlog,
                    self._state,
                )
        except Exception:
            logger.exception('Failed to enqueue exchange for %s', getattr(exchange, 'url', '?'))

    def wait_idle(self, timeout: float | None = None) -> bool:
        """Block until every enqueued exchange was delivered. Returns False on timeout."""
        with self._idle:
            return self._idle.wait_for(lambda: self._pending == 0, timeout=timeout)

    def close(self, timeout: float | None = 5.0) -> None:
        """Stop the worker after draining what was enqueued so far (if the sink is ready)."""
        if self._state == 'closed':
            return
        previous = self._state
        self._cancel.set()
        self._queue.put(_STOP)
        if self._worker.is_alive():
            self._worker.join(timeout)
        self._state = 'closed'
        if previous != 'delivering' and self.backlog:
            logger.warning('Delivery closed in state %s with %d undelivered exchanges', previous, self.backlog)

    # ==============================================================================
    # Worker
    # ==============================================================================

    def _run(self) -> None:
        if not self._await_ready():
            if not self._cancel.is_set():
                self._state = 'abandoned'
                logger.warning(
                    'Sink not ready after %.1fs; holding %d exchanges in memory only',
                    self._policy.grace_window,
                    self.backlog,
                )
            return

        self._state = 'delivering'
        logger.debug('Sink ready, draining %d buffered exchanges', self.backlog)
        while True:
            item = self._queue.get()
            if item is _STOP:
                return
            self._deliver(item)  # type: ignore[arg-type]

    def _await_ready(self) -> bool:
        deadline = time.monotonic() + self._policy.grace_window
        for delay in self._policy.delays():
            if self._sink_ready():
                return True
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return False
            if self._cancel.wait(min(delay, remaining)):
                return False
        return False

    def _sink_ready(self) -> bool:
        try:
            return self._sink.is_ready()
        except Exception:
            logger.exception('Sink readiness check failed')
            return False

    def _deliver(self, exchange: Exchange) -> None:
        try:
            self._sink.deliver(exchange)
        except Exception:
            logger.exception('Delivery failed for %s %s', exchange.method, exchange.url)
        finally:
            with self._idle:
                self._pending -= 1
                if self._pending < self._warning_threshold:
                    self._next_warning = self._warning_threshold
                if self._pending == 0:
                    self._idle.notify_all()
