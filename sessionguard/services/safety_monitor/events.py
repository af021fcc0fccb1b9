"""Safety event channel.

The controller publishes SafetyEvents here instead of calling stored
callbacks. Each subscriber owns an asyncio queue, so delivery order per
subscriber equals publish order and a subscriber's lifetime is explicit:
it ends on ``close()`` of the subscription or of the channel.
"""
import asyncio
import itertools
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class SafetyEventType(Enum):
    """Events emitted by the alert lifecycle controller."""
    STATE_CHANGED = "safety.state.changed"
    ANALYSIS_COMPLETED = "safety.analysis.completed"
    ALERT_RAISED = "safety.alert.raised"
    ALERT_DISMISSED = "safety.alert.dismissed"
    ALERT_ACKNOWLEDGED = "safety.alert.acknowledged"
    ALERTS_CLEARED = "safety.alerts.cleared"
    TECHNIQUE_STOP_RECOMMENDED = "safety.technique.stop_recommended"
    TECHNIQUE_STOP_REQUESTED = "safety.technique.stop_requested"
    ERROR = "safety.error"


@dataclass(frozen=True)
class SafetyEvent:
    """Immutable event delivered to subscribers."""
    event_id: str
    event_type: SafetyEventType
    sequence: int
    payload: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.utcnow)

    def to_payload(self) -> dict:
        """Convert to a JSON-serializable record."""
        return {
            "event_id": self.event_id,
            "event_type": self.event_type.value,
            "sequence": self.sequence,
            "timestamp": self.timestamp.isoformat() + "Z",
            "source": "safety-monitor",
            "data": self.payload,
        }


_CLOSED = object()


class EventSubscription:
    """One consumer's view of the channel.

    Iterate with ``async for``; iteration ends when the subscription or
    the channel is closed.
    """

    def __init__(self, channel: "SafetyEventChannel", maxsize: int = 0):
        self._channel = channel
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self.closed = False
        self.dropped = 0

    def _deliver(self, item: Any) -> bool:
        try:
            self._queue.put_nowait(item)
            return True
        except asyncio.QueueFull:
            self.dropped += 1
            return False

    async def get(self) -> Optional[SafetyEvent]:
        """Wait for the next event. Returns None once closed."""
        if self.closed and self._queue.empty():
            return None
        item = await self._queue.get()
        if item is _CLOSED:
            self.closed = True
            return None
        return item

    def drain(self) -> List[SafetyEvent]:
        """Return every event already delivered, without waiting."""
        events = []
        while not self._queue.empty():
            item = self._queue.get_nowait()
            if item is _CLOSED:
                self.closed = True
                break
            events.append(item)
        return events

    def _end(self) -> None:
        # Sentinel must get through; a full queue loses its oldest event
        if not self._deliver(_CLOSED):
            self._queue.get_nowait()
            self._queue.put_nowait(_CLOSED)

    def close(self) -> None:
        """Stop receiving events and wake a consumer waiting in ``get()``."""
        if self.closed:
            return
        self._channel._unsubscribe(self)
        self.closed = True
        self._end()

    def __aiter__(self):
        return self

    async def __anext__(self) -> SafetyEvent:
        event = await self.get()
        if event is None:
            raise StopAsyncIteration
        return event


class SafetyEventChannel:
    """Fan-out channel from one publisher to many subscribers.

    Owned by a single controller; nothing is shared between channels.
    Publishing never blocks. A subscriber with a bounded, full queue
    loses the new event and the drop is logged.
    """

    def __init__(self):
        self._subscribers: List[EventSubscription] = []
        self._sequence = itertools.count(1)
        self.closed = False

    def subscribe(self, maxsize: int = 0) -> EventSubscription:
        """Create a subscription receiving events published from now on.

        Args:
            maxsize: Queue bound; 0 means unbounded
        """
        subscription = EventSubscription(self, maxsize=maxsize)
        if self.closed:
            subscription.closed = True
            return subscription
        self._subscribers.append(subscription)
        return subscription

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish(
        self,
        event_type: SafetyEventType,
        payload: Optional[Dict[str, Any]] = None,
    ) -> Optional[SafetyEvent]:
        """Deliver an event to every current subscriber.

        Returns:
            The published event, or None if the channel is closed
        """
        if self.closed:
            logger.debug("SAFETY_EVENT_CHANNEL_CLOSED", extra={"event_type": event_type.value})
            return None

        event = SafetyEvent(
            event_id=f"evt_{uuid.uuid4().hex[:12]}",
            event_type=event_type,
            sequence=next(self._sequence),
            payload=payload or {},
        )

        for subscription in list(self._subscribers):
            if not subscription._deliver(event):
                logger.warning(
                    "SAFETY_EVENT_DROPPED",
                    extra={
                        "event_id": event.event_id,
                        "event_type": event_type.value,
                        "sequence": event.sequence,
                        "dropped_total": subscription.dropped,
                    }
                )
        return event

    def close(self) -> None:
        """End every subscription. Later publishes are ignored."""
        if self.closed:
            return
        self.closed = True
        for subscription in self._subscribers:
            subscription._end()
        self._subscribers.clear()

    def _unsubscribe(self, subscription: EventSubscription) -> None:
        if subscription in self._subscribers:
            self._subscribers.remove(subscription)
