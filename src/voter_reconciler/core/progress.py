"""Progress broker for import runs.

Subscribers register by run ID before the import starts and receive a
``connected`` event, then ``progress`` events, then exactly one terminal
``completed`` or ``error`` event.  Publishing never blocks the import loop:
events for runs with no subscriber are dropped, and a subscriber whose
buffer is full loses its oldest buffered event.
"""

import asyncio
from types import TracebackType

from loguru import logger

from voter_reconciler.schemas.progress import ProgressEvent


class ProgressSubscription:
    """A single consumer's bounded view of one run's progress stream.

    Iterate with ``async for``; iteration ends after the terminal event.
    Use as an async context manager to unsubscribe automatically.
    """

    def __init__(self, broker: "ProgressBroker", run_id: str, maxsize: int) -> None:
        self.run_id = run_id
        self._broker = broker
        self._queue: asyncio.Queue[ProgressEvent] = asyncio.Queue(maxsize=maxsize)
        self._finished = False
        self.dropped = 0

    def offer(self, event: ProgressEvent) -> None:
        """Buffer an event without blocking, evicting the oldest when full."""
        if self._queue.full():
            try:
                self._queue.get_nowait()
                self.dropped += 1
            except asyncio.QueueEmpty:
                pass
        self._queue.put_nowait(event)

    async def get(self) -> ProgressEvent:
        """Wait for the next event."""
        return await self._queue.get()

    def get_nowait(self) -> ProgressEvent:
        """Return the next buffered event.

        Raises:
            asyncio.QueueEmpty: If nothing is buffered.
        """
        return self._queue.get_nowait()

    def drain(self) -> list[ProgressEvent]:
        """Return every buffered event without waiting."""
        events = []
        while not self._queue.empty():
            events.append(self._queue.get_nowait())
        return events

    def __aiter__(self) -> "ProgressSubscription":
        return self

    async def __anext__(self) -> ProgressEvent:
        if self._finished:
            raise StopAsyncIteration
        event = await self._queue.get()
        if event.is_terminal:
            self._finished = True
        return event

    async def __aenter__(self) -> "ProgressSubscription":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self._broker.unsubscribe(self)


class ProgressBroker:
    """Registry of progress subscribers keyed by caller-supplied run ID."""

    def __init__(self, queue_size: int = 100) -> None:
        self._queue_size = queue_size
        self._subscribers: dict[str, list[ProgressSubscription]] = {}

    def subscribe(self, run_id: str) -> ProgressSubscription:
        """Register a subscriber for ``run_id`` and queue its ``connected`` event."""
        subscription = ProgressSubscription(self, run_id, self._queue_size)
        self._subscribers.setdefault(run_id, []).append(subscription)
        subscription.offer(ProgressEvent(type="connected", run_id=run_id))
        logger.debug(f"Progress subscriber registered for run {run_id}")
        return subscription

    def unsubscribe(self, subscription: ProgressSubscription) -> None:
        """Remove a subscriber.  Safe to call more than once."""
        subscribers = self._subscribers.get(subscription.run_id)
        if not subscribers:
            return
        if subscription in subscribers:
            subscribers.remove(subscription)
        if not subscribers:
            del self._subscribers[subscription.run_id]

    def has_subscribers(self, run_id: str) -> bool:
        return bool(self._subscribers.get(run_id))

    def publish(self, event: ProgressEvent) -> int:
        """Deliver an event to every subscriber of its run.

        Terminal events also release the run's registrations.

        Returns:
            Number of subscribers the event was delivered to (0 when dropped).
        """
        subscribers = self._subscribers.get(event.run_id)
        if not subscribers:
            return 0
        for subscription in list(subscribers):
            subscription.offer(event)
        delivered = len(subscribers)
        if event.is_terminal:
            del self._subscribers[event.run_id]
        return delivered
