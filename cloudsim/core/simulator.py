"""Discrete-event simulation engine built on SimPy."""

import itertools
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

import numpy as np
import simpy
from loguru import logger

from .events import EndOfSimulation, EventPayload, EventTag, SimEvent
from .exceptions import InvalidDelay, LivelockDetected, OwnershipError, UnhandledEvent, UnknownEntity

# Source/destination id used for events the engine raises itself.
SIMULATION_ID = -1


@dataclass
class SimulationConfig:
    """Configuration for simulation runs."""
    clock_origin: float = 0.0
    random_seed: int = 42
    network_latency: float = 0.0  # delay applied to messages between entities
    min_time_between_events: float = 0.01  # lower bound for datacenter self-updates
    scheduling_interval: float = 0.0  # 0 disables periodic datacenter updates
    max_zero_delay_self_events: int = 1000
    terminate_at: Optional[float] = None

    def __post_init__(self):
        if self.network_latency < 0:
            raise ValueError("network_latency must be non-negative")
        if self.min_time_between_events < 0:
            raise ValueError("min_time_between_events must be non-negative")
        if self.scheduling_interval < 0:
            raise ValueError("scheduling_interval must be non-negative")
        if self.max_zero_delay_self_events < 1:
            raise ValueError("max_zero_delay_self_events must be >= 1")


@dataclass
class EntityFailure:
    """An exception raised by an entity while handling an event or in a lifecycle hook."""
    event: Optional[SimEvent]
    error: Exception
    entity_id: Optional[int] = None
    phase: str = "event"  # "event", "start" or "shutdown"

    @property
    def origin(self) -> str:
        return self.event.tag.value if self.event is not None else self.phase


class SimEntity:
    """Base class for entities that exchange events through a Simulation."""

    kind = "entity"

    def __init__(self, name: str, simulation: "Simulation"):
        self.name = name
        self.simulation = simulation
        self._handlers: Dict[EventTag, Callable[[SimEvent], None]] = {}
        self.id = simulation.register(self)

    @property
    def clock(self) -> float:
        return self.simulation.clock

    @property
    def handled_tags(self) -> List[EventTag]:
        return list(self._handlers)

    def send(
        self,
        destination: int,
        delay: float,
        tag: EventTag,
        payload: Optional[EventPayload] = None,
    ) -> SimEvent:
        """Schedule an event from this entity."""
        return self.simulation.send(self.id, destination, delay, tag, payload)

    def cancel(self, event: Optional[SimEvent]) -> bool:
        """Cancel one of this entity's pending events."""
        if event is None:
            return False
        return self.simulation.cancel(event, self.id)

    def process_event(self, event: SimEvent) -> None:
        """Dispatch an event to the handler registered for its tag."""
        handler = self._handlers.get(event.tag)
        if handler is None:
            raise UnhandledEvent(f"{self.kind} {self.name} has no handler for {event.tag.value}")
        handler(event)

    def start(self) -> None:
        """Called once when the simulation starts."""

    def shutdown(self) -> None:
        """Called once when the simulation ends."""

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(id={self.id}, name={self.name!r})"


class Simulation:
    """Simulation context: clock, event queue and registered entities.

    Events are ordered by timestamp and, for equal timestamps, by the order
    in which they were scheduled. The SimPy environment provides the clock
    and the ordered queue; every SimEvent is backed by one SimPy timeout.
    """

    def __init__(self, config: Optional[SimulationConfig] = None):
        self.config = config or SimulationConfig()
        self.env = simpy.Environment(initial_time=self.config.clock_origin)
        self.random = np.random.default_rng(self.config.random_seed)
        self.num_tenants: Optional[int] = None

        self.entities: Dict[int, SimEntity] = {}
        self.errors: List[EntityFailure] = []
        self.dispatched_events = 0

        self._pending: Dict[int, SimEvent] = {}
        self._sequence = itertools.count()
        self._entity_ids = itertools.count()
        self._running = False
        self._finished = False

        self._zero_delay_clock: Optional[float] = None
        self._zero_delay_counts: Dict[int, int] = {}

        logger.info(f"Simulation initialized at clock {self.clock:.2f}")

    # ------------------------------------------------------------------
    # Run API
    # ------------------------------------------------------------------

    def initialize(
        self,
        num_tenants: int,
        seed: Optional[int] = None,
        clock_origin: Optional[float] = None,
    ) -> "Simulation":
        """Reset the clock origin and random seed before the run starts."""
        if self._running or self._finished:
            raise RuntimeError("Simulation can only be initialized before it starts")
        if num_tenants < 1:
            raise ValueError("num_tenants must be >= 1")
        if self._pending:
            raise RuntimeError("Cannot initialize a simulation with scheduled events")

        self.num_tenants = num_tenants
        if seed is not None:
            self.config.random_seed = seed
        if clock_origin is not None:
            self.config.clock_origin = clock_origin
        self.env = simpy.Environment(initial_time=self.config.clock_origin)
        self.random = np.random.default_rng(self.config.random_seed)

        logger.info(
            f"Simulation initialized for {num_tenants} tenant(s), "
            f"seed {self.config.random_seed}, origin {self.config.clock_origin}"
        )
        return self

    def start(self) -> float:
        """Run until the queue is empty or a stop is requested.

        Returns the clock at which the run ended.
        """
        if self._running or self._finished:
            raise RuntimeError("Simulation has already been started")
        if not self.entities:
            raise RuntimeError("No entities registered")

        brokers = self.brokers
        if self.num_tenants is not None and len(brokers) != self.num_tenants:
            logger.warning(
                f"Simulation initialized for {self.num_tenants} tenant(s) "
                f"but {len(brokers)} broker(s) are registered"
            )

        logger.info(f"Starting simulation with {len(self.entities)} entities")
        self._running = True
        if self.config.terminate_at is not None:
            self.terminate_at(self.config.terminate_at)
        try:
            for entity in list(self.entities.values()):
                self._run_hook(entity, "start")
            while self._running and self._pending:
                self.env.step()
        finally:
            self._running = False
            self._finished = True
            for entity in list(self.entities.values()):
                self._run_hook(entity, "shutdown")

        logger.info(
            f"Simulation finished at clock {self.clock:.2f} "
            f"after {self.dispatched_events} events"
        )
        return self.clock

    def stop(self) -> None:
        """Halt the run and discard every pending event."""
        discarded = len(self._pending)
        for event in self._pending.values():
            event.cancelled = True
        self._pending.clear()
        self._running = False
        logger.info(f"Simulation stop requested at {self.clock:.2f}, {discarded} event(s) discarded")

    def terminate_at(self, time: float) -> SimEvent:
        """Schedule an explicit end of the run at an absolute time."""
        return self.send(SIMULATION_ID, SIMULATION_ID, time - self.clock, EventTag.END_OF_SIMULATION)

    # ------------------------------------------------------------------
    # Entities
    # ------------------------------------------------------------------

    @property
    def clock(self) -> float:
        return self.env.now

    @property
    def is_running(self) -> bool:
        return self._running

    def register(self, entity: SimEntity) -> int:
        """Register an entity and return its id."""
        if self._running or self._finished:
            raise RuntimeError("Entities must be registered before the simulation starts")
        entity_id = next(self._entity_ids)
        self.entities[entity_id] = entity
        logger.debug(f"Entity {entity.name} registered with id {entity_id}")
        return entity_id

    def get_entity(self, entity_id: int) -> SimEntity:
        try:
            return self.entities[entity_id]
        except KeyError:
            raise UnknownEntity(f"No entity registered with id {entity_id}") from None

    @property
    def datacenters(self) -> List[SimEntity]:
        return [e for e in self.entities.values() if e.kind == "datacenter"]

    @property
    def brokers(self) -> List[SimEntity]:
        return [e for e in self.entities.values() if e.kind == "broker"]

    def received_cloudlets(self, broker) -> list:
        """Terminal cloudlets returned to a broker, in arrival order."""
        return list(broker.received_cloudlets)

    # ------------------------------------------------------------------
    # Event queue
    # ------------------------------------------------------------------

    def send(
        self,
        source: int,
        destination: int,
        delay: float,
        tag: EventTag,
        payload: Optional[EventPayload] = None,
    ) -> SimEvent:
        """Schedule an event `delay` time units from now."""
        if delay < 0:
            raise InvalidDelay(delay)
        if destination != SIMULATION_ID and destination not in self.entities:
            raise UnknownEntity(f"No entity registered with id {destination}")
        if source == destination and delay == 0 and source != SIMULATION_ID:
            self._guard_zero_delay(source)

        if payload is None and tag is EventTag.END_OF_SIMULATION:
            payload = EndOfSimulation()
        event = SimEvent(
            timestamp=self.clock + delay,
            source=source,
            destination=destination,
            tag=tag,
            payload=payload,
            sequence=next(self._sequence),
        )
        self._pending[event.sequence] = event

        timeout = self.env.timeout(delay)
        timeout.callbacks.append(lambda _, event=event: self._dispatch(event))
        return event

    def cancel(self, event: SimEvent, requester: int) -> bool:
        """Remove a not-yet-dispatched event owned by `requester`.

        Returns False if the event was already dispatched or cancelled.
        """
        if event.source != requester:
            raise OwnershipError(
                f"Entity {requester} cannot cancel event #{event.sequence} owned by {event.source}"
            )
        if not event.is_pending:
            return False
        event.cancelled = True
        self._pending.pop(event.sequence, None)
        logger.debug(f"Event #{event.sequence} ({event.tag.value}) cancelled by {requester}")
        return True

    def cancel_events(self, requester: int, predicate: Optional[Callable[[SimEvent], bool]] = None) -> int:
        """Cancel every pending event raised by `requester` matching `predicate`."""
        cancelled = 0
        for event in list(self._pending.values()):
            if event.source == requester and (predicate is None or predicate(event)):
                cancelled += self.cancel(event, requester)
        return cancelled

    def pending_events(self) -> List[SimEvent]:
        """Pending events in dispatch order."""
        return sorted(self._pending.values())

    def _guard_zero_delay(self, entity_id: int) -> None:
        if self._zero_delay_clock != self.clock:
            self._zero_delay_clock = self.clock
            self._zero_delay_counts.clear()
        count = self._zero_delay_counts.get(entity_id, 0) + 1
        self._zero_delay_counts[entity_id] = count
        if count > self.config.max_zero_delay_self_events:
            raise LivelockDetected(
                f"Entity {entity_id} rescheduled itself with zero delay {count} times "
                f"at {self.clock:.2f}"
            )

    def _dispatch(self, event: SimEvent) -> None:
        if event.cancelled:
            return
        self._pending.pop(event.sequence, None)
        event.dispatched = True
        self.dispatched_events += 1
        logger.debug(f"Dispatching {event.tag.value} #{event.sequence} at {self.clock:.2f}")

        if event.tag is EventTag.END_OF_SIMULATION:
            logger.info(f"End of simulation event at {self.clock:.2f}")
            self.stop()
            return

        try:
            entity = self.get_entity(event.destination)
            entity.process_event(event)
        except Exception as e:
            logger.exception(f"Error handling event {event.tag.value} #{event.sequence}: {e}")
            self.errors.append(EntityFailure(event=event, error=e, entity_id=event.destination))

    def _run_hook(self, entity: SimEntity, phase: str) -> None:
        try:
            getattr(entity, phase)()
        except Exception as e:
            logger.exception(f"Error in {phase} of entity {entity.name}: {e}")
            self.errors.append(EntityFailure(event=None, error=e, entity_id=entity.id, phase=phase))
