"""Discrete-event engine: simulation context and entity base class, driven by SimPy."""

from abc import ABC
from typing import Any, Callable, Dict, List, Optional
import itertools
import time
import simpy
from loguru import logger

from .errors import ConfigurationError, InvalidReference, SimulationError
from .events import EventType, SimulationEvent


class SimulationContext:
    """Clock, event queue and entity arena of one simulation run.

    The context is handed to every entity explicitly, so several independent
    runs can live in the same process. SimPy keeps the queue ordered by time
    and, for equal timestamps, by insertion order.
    """

    def __init__(self, name: str = "simulation"):
        self.name = name
        self.env = simpy.Environment()
        self._entities: List["SimEntity"] = []
        self._serial = itertools.count()
        self._running = False
        self._stop_requested = False
        self._stop_time: Optional[float] = None
        self.dispatched_events = 0
        self.dropped_events = 0

    @property
    def now(self) -> float:
        """Current simulated time."""
        return float(self.env.now)

    @property
    def running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------ arena

    def register(self, entity: "SimEntity") -> int:
        """Add an entity to the arena and return its id."""
        if self._running:
            raise ConfigurationError(
                f"Cannot register entity {entity.name} while the simulation runs"
            )
        if any(existing.name == entity.name for existing in self._entities):
            raise ConfigurationError(f"Duplicate entity name: {entity.name}")
        self._entities.append(entity)
        return len(self._entities) - 1

    def entity(self, entity_id: int) -> "SimEntity":
        """Look up a live entity by id."""
        if 0 <= entity_id < len(self._entities):
            entity = self._entities[entity_id]
            if not entity.destroyed:
                return entity
        raise InvalidReference("entity", entity_id)

    @property
    def entities(self) -> List["SimEntity"]:
        return list(self._entities)

    def entities_of(self, kind: type) -> List["SimEntity"]:
        """All registered entities that are instances of ``kind``, by id."""
        return [e for e in self._entities if isinstance(e, kind)]

    # ------------------------------------------------------------- scheduling

    def schedule(
        self,
        event_type: EventType,
        source: int,
        destination: int,
        data: Optional[Dict[str, Any]] = None,
        delay: float = 0.0,
    ) -> SimulationEvent:
        """Enqueue an event at ``now + delay``."""
        if delay < 0:
            raise ValueError(f"Negative delay {delay} for {event_type.value}")

        event = SimulationEvent(
            timestamp=self.now + delay,
            event_type=event_type,
            source=source,
            destination=destination,
            data=data or {},
            serial=next(self._serial),
        )
        timeout = self.env.timeout(delay, value=event)
        timeout.callbacks.append(self._dispatch)
        return event

    def cancel(self, event: SimulationEvent) -> None:
        """Cancel a scheduled event; it will be skipped at dispatch."""
        event.cancel()
        logger.debug(f"Event {event.serial} ({event.event_type.value}) cancelled")

    def _dispatch(self, fired: simpy.events.Event) -> None:
        event: SimulationEvent = fired.value
        if event.cancelled:
            return

        try:
            target = self.entity(event.destination)
        except InvalidReference as e:
            self.dropped_events += 1
            logger.warning(f"Dropping {event.event_type.value} at {event.timestamp:.4f}s: {e}")
            return

        self.dispatched_events += 1
        try:
            target.process_event(event)
        except SimulationError as e:
            logger.warning(
                f"{target.name} could not handle {event.event_type.value} "
                f"at {event.timestamp:.4f}s: {e}"
            )
        except Exception:
            logger.exception(
                f"Error handling event {event.event_type.value} in {target.name}"
            )

    # -------------------------------------------------------------------- run

    def start(self, until: Optional[float] = None) -> float:
        """Run the simulation and return the final simulated time.

        Stops when the queue is empty, when ``stop()`` was requested (after
        draining the events of the current timestamp) or when the next event
        lies beyond ``until``.
        """
        if self._running:
            raise ConfigurationError("Simulation is already running")

        logger.info(f"Starting simulation {self.name} with {len(self._entities)} entities")
        wall_start = time.time()
        self._running = True
        self._stop_requested = False
        self._stop_time = None
        try:
            for entity in self._entities:
                entity.startup()

            while True:
                next_time = self.env.peek()
                if next_time == simpy.core.Infinity:
                    break
                if self._stop_requested and next_time > self._stop_time:
                    break
                if until is not None and next_time > until:
                    logger.info(f"Simulation {self.name} reached time limit {until}")
                    break
                self.env.step()

            for entity in self._entities:
                entity.shutdown()
        finally:
            self._running = False

        elapsed = time.time() - wall_start
        logger.info(
            f"Simulation {self.name} completed at {self.now:.4f}s simulated "
            f"({self.dispatched_events} events, {self.dropped_events} dropped, "
            f"{elapsed:.3f}s wall)"
        )
        return self.now

    def stop(self) -> None:
        """Request termination once the current timestamp has been drained."""
        if not self._stop_requested:
            self._stop_requested = True
            self._stop_time = self.now
            logger.info(f"Stop requested for simulation {self.name} at {self.now:.4f}s")


class SimEntity(ABC):
    """An addressable participant of the simulation with a dispatch table."""

    def __init__(self, context: SimulationContext, name: str):
        self.context = context
        self.name = name
        self.destroyed = False
        self.handlers: Dict[EventType, Callable[[SimulationEvent], None]] = {}
        self.id = context.register(self)
        self._setup_event_handlers()

    def _setup_event_handlers(self) -> None:
        """Populate ``self.handlers``; subclasses override."""

    def process_event(self, event: SimulationEvent) -> None:
        handler = self.handlers.get(event.event_type)
        if handler is None:
            self.context.dropped_events += 1
            logger.warning(f"{self.name} has no handler for {event.event_type.value}, dropped")
            return
        handler(event)

    def send(
        self,
        destination: int,
        event_type: EventType,
        data: Optional[Dict[str, Any]] = None,
        delay: float = 0.0,
    ) -> SimulationEvent:
        return self.context.schedule(event_type, self.id, destination, data, delay)

    def schedule_self(
        self,
        event_type: EventType,
        data: Optional[Dict[str, Any]] = None,
        delay: float = 0.0,
    ) -> SimulationEvent:
        return self.send(self.id, event_type, data, delay)

    def startup(self) -> None:
        """Called once before the first event is dispatched."""

    def shutdown(self) -> None:
        """Called once after the last event is dispatched."""

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(id={self.id}, name={self.name!r})"
