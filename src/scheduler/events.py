"""
Lifecycle events emitted by the scheduler core.

Every accepted state change publishes at least one event. Delivery is
best-effort: a failing sink is logged and never rolls back or blocks the
transition that produced the event.
"""

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol

from .entities import Job, Node, now_iso


logger = logging.getLogger(__name__)


class EventType(str, Enum):
    JOB_CREATED = "JobCreated"
    JOB_UPDATED = "JobUpdated"
    JOB_RESULT = "JobResult"
    NODE_UPDATED = "NodeUpdated"


@dataclass(frozen=True)
class SchedulerEvent:
    """A single state change notification."""

    event_type: EventType
    entity_id: str
    payload: dict
    occurred_at: str = field(default_factory=now_iso)

    @classmethod
    def for_job(cls, event_type: EventType, job: Job) -> "SchedulerEvent":
        return cls(event_type=event_type, entity_id=job.job_id, payload=job.to_dict())

    @classmethod
    def for_node(cls, node: Node) -> "SchedulerEvent":
        return cls(
            event_type=EventType.NODE_UPDATED,
            entity_id=node.node_id,
            payload=node.to_dict(),
        )

    def to_dict(self) -> dict:
        return {
            "event": self.event_type.value,
            "entity_id": self.entity_id,
            "payload": self.payload,
            "occurred_at": self.occurred_at,
        }


class EventSink(Protocol):
    """Consumer of scheduler events. Fan-out topology is the sink's concern."""

    def publish(self, event: SchedulerEvent) -> None:
        ...


class NullEventSink:
    """Discards every event."""

    def publish(self, event: SchedulerEvent) -> None:
        pass


class LoggingEventSink:
    """Writes each event to the log at DEBUG level."""

    def __init__(self, level: int = logging.DEBUG):
        self.level = level

    def publish(self, event: SchedulerEvent) -> None:
        logger.log(self.level, f"{event.event_type.value} {event.entity_id}")


class InMemoryEventSink:
    """
    Records events in memory.

    Thread-safe; used for inspection and in tests.
    """

    def __init__(self):
        self._events: list[SchedulerEvent] = []
        self._lock = threading.Lock()

    def publish(self, event: SchedulerEvent) -> None:
        with self._lock:
            self._events.append(event)

    @property
    def events(self) -> list[SchedulerEvent]:
        with self._lock:
            return list(self._events)

    def of_type(self, event_type: EventType) -> list[SchedulerEvent]:
        return [event for event in self.events if event.event_type == event_type]

    def for_entity(self, entity_id: str) -> list[SchedulerEvent]:
        return [event for event in self.events if event.entity_id == entity_id]

    def clear(self) -> None:
        with self._lock:
            self._events.clear()


class CompositeEventSink:
    """Fans each event out to several sinks, isolating their failures."""

    def __init__(self, *sinks: EventSink):
        self.sinks = list(sinks)

    def add(self, sink: EventSink) -> None:
        self.sinks.append(sink)

    def publish(self, event: SchedulerEvent) -> None:
        for sink in self.sinks:
            try:
                sink.publish(event)
            except Exception as e:
                logger.warning(
                    f"Event sink {type(sink).__name__} failed for "
                    f"{event.event_type.value} {event.entity_id}: {e}"
                )


class EventEmitter:
    """
    Core-facing wrapper around a sink.

    Guarantees that publishing never raises into the caller.
    """

    def __init__(self, sink: EventSink | None = None):
        self.sink = sink or NullEventSink()

    def emit(self, event: SchedulerEvent) -> None:
        try:
            self.sink.publish(event)
        except Exception as e:
            logger.warning(
                f"Failed to publish {event.event_type.value} for {event.entity_id}: {e}"
            )

    def job_created(self, job: Job) -> None:
        self.emit(SchedulerEvent.for_job(EventType.JOB_CREATED, job))

    def job_updated(self, job: Job) -> None:
        self.emit(SchedulerEvent.for_job(EventType.JOB_UPDATED, job))

    def job_result(self, job: Job) -> None:
        self.emit(SchedulerEvent.for_job(EventType.JOB_RESULT, job))

    def node_updated(self, node: Node) -> None:
        self.emit(SchedulerEvent.for_node(node))
