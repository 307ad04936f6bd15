#!/usr/bin/env python3
"""
Circuit Network Implementation
Entity registry, fixed-order tick scheduler and the editing API used by the
shell and the persistence layer.
"""

from collections import defaultdict, deque
from dataclasses import dataclass, field, fields
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from loguru import logger

from .entity import Entity, EntityKind, Position, next_entity_id
from .neuron import DEFAULT_HISTORY_DEPTH, Neuron, NeuronParameters
from .sink import OutputSink, OutputSinkParameters
from .sources import (
    Generator,
    GeneratorParameters,
    PulseEmitter,
    PulseEmitterParameters,
    SignalSource,
    WaveformKind,
)
from .synapse import PlasticityEvent, PlasticityMode, Synapse, SynapseParameters

NodeEntity = Union[Neuron, SignalSource, OutputSink]

# Parameter dataclass for every node kind that create() can build
NODE_PARAMETER_TYPES = {
    EntityKind.NEURON: NeuronParameters,
    EntityKind.GENERATOR: GeneratorParameters,
    EntityKind.PULSE_EMITTER: PulseEmitterParameters,
    EntityKind.OUTPUT_SINK: OutputSinkParameters,
}

DIRECT_SYNAPSE_WEIGHT = 1.0
SPIKING_SYNAPSE_WEIGHT = 0.5
POSITIVE_PARAMETERS = ("tau", "tau_plus", "tau_minus")


@dataclass
class ProbeRecord:
    """Oscilloscope probe attached to a neuron. Stored and persisted only."""

    id: int
    position: Position
    target_id: int


@dataclass
class NoteRecord:
    """Free-text annotation referencing arbitrary entities. Stored and persisted only."""

    id: int
    position: Position
    text: str = ""
    minimized: bool = False
    target_ids: List[int] = field(default_factory=list)


def _coerce_parameter(params: Any, name: str, value: Any) -> Any:
    """Convert a raw value to the declared type of a parameter dataclass field."""
    declared = {f.name: f.type for f in fields(params)}[name]
    if declared is WaveformKind or declared is PlasticityMode:
        return declared(value)
    if declared is str:
        return str(value)
    if declared is int:
        return int(float(value))
    return float(value)


class CircuitNetwork:
    """Owns every circuit entity and advances them one tick at a time."""

    def __init__(
        self,
        history_depth: int = DEFAULT_HISTORY_DEPTH,
        max_history: int = 1000,
        log_level: str = "INFO",
    ):
        self.current_tick = 0
        self.history_depth = history_depth
        self.max_history = max_history
        self.log_level = log_level
        self.logger = logger.bind(entity="C")

        # Registry, keyed by entity id in creation order
        self.neurons: Dict[int, Neuron] = {}
        self.sources: Dict[int, SignalSource] = {}
        self.sinks: Dict[int, OutputSink] = {}
        self.synapses: Dict[int, Synapse] = {}
        self.probes: Dict[int, ProbeRecord] = {}
        self.notes: Dict[int, NoteRecord] = {}
        self._edges: Dict[Tuple[int, int], int] = {}  # (source, target) -> synapse id

        self.history = self._empty_history()

    def _empty_history(self) -> Dict[str, Any]:
        return {
            "ticks": deque(maxlen=self.max_history),
            "neuron_states": defaultdict(
                lambda: {
                    "voltage": deque(maxlen=self.max_history),
                    "spiked": deque(maxlen=self.max_history),
                    "firing_rate": deque(maxlen=self.max_history),
                }
            ),
            "sink_states": defaultdict(
                lambda: {
                    "active": deque(maxlen=self.max_history),
                    "input": deque(maxlen=self.max_history),
                }
            ),
            "network_activity": deque(maxlen=self.max_history),
        }

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get_node(self, entity_id: int) -> Optional[NodeEntity]:
        """Resolve a node id (neuron, source or sink)."""
        for registry in (self.neurons, self.sources, self.sinks):
            if entity_id in registry:
                return registry[entity_id]
        return None

    def get(self, entity_id: int) -> Optional[Entity]:
        node = self.get_node(entity_id)
        if node is not None:
            return node
        return self.synapses.get(entity_id)

    def find_synapse(self, source_id: int, target_id: int) -> Optional[Synapse]:
        synapse_id = self._edges.get((source_id, target_id))
        return self.synapses.get(synapse_id) if synapse_id is not None else None

    def node_ids(self) -> List[int]:
        return [*self.neurons, *self.sources, *self.sinks]

    def __contains__(self, entity_id: int) -> bool:
        return (
            self.get(entity_id) is not None
            or entity_id in self.probes
            or entity_id in self.notes
        )

    # ------------------------------------------------------------------
    # Editing API
    # ------------------------------------------------------------------

    def create(
        self,
        kind: Union[EntityKind, str],
        params: Any = None,
        position: Position = (0.0, 0.0),
    ) -> Optional[NodeEntity]:
        """
        Create a node entity with a fresh id.

        Args:
            kind: Entity kind or its string value (synapses are made with connect())
            params: Parameter dataclass, a dict of its fields, or None for defaults
            position: Editor position, stored but never interpreted

        Returns:
            The new entity, or None if the kind or parameters are invalid
        """
        try:
            kind = EntityKind(kind)
        except ValueError:
            self.logger.warning(f"Cannot create unknown entity kind '{kind}'")
            return None

        if kind not in NODE_PARAMETER_TYPES:
            self.logger.warning(f"Cannot create {kind.value} directly, use connect()")
            return None

        param_type = NODE_PARAMETER_TYPES[kind]
        try:
            if params is None:
                params = param_type()
            elif isinstance(params, dict):
                params = param_type(**params)
            elif not isinstance(params, param_type):
                raise TypeError(f"expected {param_type.__name__}")
        except (TypeError, ValueError) as e:
            self.logger.warning(f"Invalid parameters for {kind.value}: {e}")
            return None

        position = (float(position[0]), float(position[1]))
        if kind is EntityKind.NEURON:
            entity = Neuron(
                params,
                position=position,
                history_depth=self.history_depth,
                log_level=self.log_level,
            )
            self.neurons[entity.id] = entity
        elif kind is EntityKind.GENERATOR:
            entity = Generator(params, position=position, log_level=self.log_level)
            self.sources[entity.id] = entity
        elif kind is EntityKind.PULSE_EMITTER:
            entity = PulseEmitter(params, position=position, log_level=self.log_level)
            self.sources[entity.id] = entity
        else:
            entity = OutputSink(params, position=position, log_level=self.log_level)
            self.sinks[entity.id] = entity

        self.logger.info(f"Created {kind.value} {entity.id} at {position}")
        return entity

    def connect(
        self,
        source_id: int,
        target_id: int,
        excitatory: Optional[bool] = None,
        **params: Any,
    ) -> Optional[Synapse]:
        """
        Create a synapse source -> target.

        A no-op (returning None) when an endpoint is missing, the endpoints
        lack the needed capability, or the same directed edge already exists.
        Self-loops and the reverse direction of an existing edge are allowed.
        ``excitatory`` fixes the sign explicitly; by default it follows the weight.
        """
        source = self.get_node(source_id)
        target = self.get_node(target_id)
        if source is None or target is None:
            self.logger.warning(
                f"Cannot connect {source_id} -> {target_id}: unknown endpoint"
            )
            return None
        if not source.kind.is_current_source or not target.kind.is_current_sink:
            self.logger.warning(
                f"Cannot connect {source.kind.value} {source_id} -> "
                f"{target.kind.value} {target_id}"
            )
            return None
        if (source_id, target_id) in self._edges:
            self.logger.debug(f"Synapse {source_id} -> {target_id} already exists")
            return None

        params.setdefault(
            "weight",
            DIRECT_SYNAPSE_WEIGHT
            if source.kind.is_signal_source
            else SPIKING_SYNAPSE_WEIGHT,
        )
        try:
            synapse_params = SynapseParameters(**params)
        except (TypeError, ValueError) as e:
            self.logger.warning(f"Invalid synapse parameters {params}: {e}")
            return None

        synapse = Synapse(
            source_id,
            target_id,
            source.kind,
            target.kind,
            synapse_params,
            log_level=self.log_level,
            excitatory=excitatory,
        )
        self.synapses[synapse.id] = synapse
        self._edges[(source_id, target_id)] = synapse.id
        return synapse

    def destroy(self, entity_id: int) -> bool:
        """Remove an entity and everything that references it."""
        if entity_id in self.synapses:
            synapse = self.synapses.pop(entity_id)
            del self._edges[(synapse.source_id, synapse.target_id)]
            self.logger.info(f"Destroyed synapse {entity_id}")
            return True

        if entity_id in self.probes:
            del self.probes[entity_id]
            return True

        if entity_id in self.notes:
            del self.notes[entity_id]
            return True

        node = self.get_node(entity_id)
        if node is None:
            self.logger.warning(f"Cannot destroy unknown entity {entity_id}")
            return False

        for registry in (self.neurons, self.sources, self.sinks):
            registry.pop(entity_id, None)

        attached = [
            synapse_id
            for synapse_id, synapse in self.synapses.items()
            if entity_id in (synapse.source_id, synapse.target_id)
        ]
        for synapse_id in attached:
            self.destroy(synapse_id)

        for probe_id in [p.id for p in self.probes.values() if p.target_id == entity_id]:
            del self.probes[probe_id]

        for note in self.notes.values():
            if entity_id in note.target_ids:
                note.target_ids = [t for t in note.target_ids if t != entity_id]

        self.history["neuron_states"].pop(entity_id, None)
        self.history["sink_states"].pop(entity_id, None)

        self.logger.info(
            f"Destroyed {node.kind.value} {entity_id} with {len(attached)} synapses"
        )
        return True

    def set_parameter(self, entity_id: int, name: str, value: Any) -> bool:
        """
        Change one parameter of an entity between ticks.

        Values are taken as-is except that synapse weights are clamped to the
        sign fixed at creation and time constants must stay positive. A
        neuron's ``voltage`` may also be set to pre-charge its membrane.

        Returns:
            True if the parameter was changed
        """
        entity = self.get(entity_id)
        if entity is None:
            self.logger.warning(f"Cannot set '{name}' on unknown entity {entity_id}")
            return False

        if isinstance(entity, Neuron) and name == "voltage":
            try:
                entity.voltage = float(value)
            except (TypeError, ValueError):
                self.logger.warning(f"Invalid voltage {value!r} for neuron {entity_id}")
                return False
            return True

        if name not in {f.name for f in fields(entity.params)}:
            self.logger.warning(
                f"Unknown parameter '{name}' for {entity.kind.value} {entity_id}"
            )
            return False

        try:
            coerced = _coerce_parameter(entity.params, name, value)
        except (TypeError, ValueError):
            self.logger.warning(f"Invalid value {value!r} for '{name}' on {entity_id}")
            return False

        if name in POSITIVE_PARAMETERS and coerced <= 0:
            self.logger.warning(f"Rejected {name}={coerced} on {entity_id}: must be > 0")
            return False

        if isinstance(entity, Synapse) and name == "weight":
            entity.set_weight(coerced)
        else:
            setattr(entity.params, name, coerced)

        self.logger.debug(f"Set {name}={coerced} on {entity.kind.value} {entity_id}")
        return True

    def set_position(self, entity_id: int, x: float, y: float) -> bool:
        node = self.get_node(entity_id)
        if node is None:
            record = self.probes.get(entity_id) or self.notes.get(entity_id)
            if record is None:
                return False
            record.position = (float(x), float(y))
            return True
        node.position = (float(x), float(y))
        return True

    def trigger(self, entity_id: int) -> bool:
        """Arm a pulse emitter's countdown."""
        source = self.sources.get(entity_id)
        if not isinstance(source, PulseEmitter):
            self.logger.warning(f"Entity {entity_id} is not a pulse emitter")
            return False
        source.trigger()
        return True

    def add_probe(
        self, target_id: int, position: Position = (0.0, 0.0)
    ) -> Optional[ProbeRecord]:
        if target_id not in self.neurons:
            self.logger.warning(f"Probe target {target_id} is not a neuron")
            return None
        probe = ProbeRecord(next_entity_id(), (float(position[0]), float(position[1])), target_id)
        self.probes[probe.id] = probe
        return probe

    def add_note(
        self,
        text: str,
        position: Position = (0.0, 0.0),
        target_ids: Optional[List[int]] = None,
        minimized: bool = False,
    ) -> NoteRecord:
        # Unresolvable targets are dropped
        targets = [t for t in (target_ids or []) if t in self]
        note = NoteRecord(
            next_entity_id(),
            (float(position[0]), float(position[1])),
            text,
            minimized,
            targets,
        )
        self.notes[note.id] = note
        return note

    # ------------------------------------------------------------------
    # Scheduler
    # ------------------------------------------------------------------

    def run_tick(self) -> Dict[str, Any]:
        """Execute one simulation tick and return activity summary."""
        self.current_tick += 1
        tick = self.current_tick

        for neuron in self.neurons.values():
            neuron.reset_input()
        for sink in self.sinks.values():
            sink.reset_input()

        for source in self.sources.values():
            source.update(tick)

        # Synapses read spike flags left by the previous tick's neuron phase
        plasticity_events: List[PlasticityEvent] = []
        for synapse in self.synapses.values():
            event = synapse.update(
                self.get_node(synapse.source_id),
                self.get_node(synapse.target_id),
                tick,
            )
            if event is not None:
                plasticity_events.append(event)

        fired_neurons = [
            neuron_id
            for neuron_id, neuron in self.neurons.items()
            if neuron.update(tick)
        ]

        active_sinks = []
        sink_rising_edges = []
        for sink_id, sink in self.sinks.items():
            if sink.update(tick):
                sink_rising_edges.append(sink_id)
            if sink.active:
                active_sinks.append(sink_id)

        # Record history
        self.history["ticks"].append(tick)
        for neuron_id, neuron in self.neurons.items():
            state = self.history["neuron_states"][neuron_id]
            state["voltage"].append(neuron.voltage)
            state["spiked"].append(1 if neuron.spiked else 0)
            state["firing_rate"].append(neuron.avg_firing_rate)
        for sink_id, sink in self.sinks.items():
            state = self.history["sink_states"][sink_id]
            state["active"].append(1 if sink.active else 0)
            state["input"].append(sink.input_current)
        total_activity = len(fired_neurons)
        self.history["network_activity"].append(total_activity)

        return {
            "tick": tick,
            "fired_neurons": fired_neurons,
            "active_sinks": active_sinks,
            "sink_rising_edges": sink_rising_edges,
            "plasticity_events": plasticity_events,
            "total_activity": total_activity,
        }

    def tick(self, count: int = 1) -> List[Dict[str, Any]]:
        """Advance the simulation by ``count`` ticks (0 is allowed)."""
        return [self.run_tick() for _ in range(max(0, int(count)))]

    def run_simulation(
        self, num_ticks: int, progress_callback: Optional[Callable] = None
    ) -> List[Dict[str, Any]]:
        """Run simulation for multiple ticks and return activity log."""
        activity_log = []

        for i in range(num_ticks):
            activity = self.run_tick()
            activity_log.append(activity)

            if progress_callback and i % 10 == 0:
                progress_callback(i, num_ticks, activity)

        return activity_log

    def reset_simulation(self):
        """Reset dynamic state to initial values, keeping topology and parameters."""
        self.current_tick = 0
        for registry in (self.neurons, self.sources, self.sinks, self.synapses):
            for entity in registry.values():
                entity.reset_state()
        self.history = self._empty_history()
        self.logger.info("Simulation reset")

    def set_log_level(self, level: str) -> None:
        """Switch per-tick debug logging of existing and future entities."""
        self.log_level = level.upper()
        active = self.log_level in ("TRACE", "DEBUG")
        for registry in (self.neurons, self.sources, self.sinks, self.synapses):
            for entity in registry.values():
                entity.logger_active = active

    def clear(self):
        """Remove every entity and annotation."""
        for registry in (
            self.neurons,
            self.sources,
            self.sinks,
            self.synapses,
            self.probes,
            self.notes,
        ):
            registry.clear()
        self._edges.clear()
        self.current_tick = 0
        self.history = self._empty_history()
        self.logger.info("Network cleared")

    # ------------------------------------------------------------------
    # Read-only state
    # ------------------------------------------------------------------

    def get_graph_density(self) -> float:
        """Fraction of possible directed edges used (self-loops included)."""
        num_nodes = len(self.node_ids())
        max_possible = num_nodes * num_nodes
        return len(self.synapses) / max_possible if max_possible > 0 else 0.0

    def count_reciprocal_pairs(self) -> int:
        return sum(
            1
            for source_id, target_id in self._edges
            if source_id < target_id and (target_id, source_id) in self._edges
        )

    def get_network_statistics(self) -> Dict[str, Any]:
        """Get basic network statistics."""
        num_generators = sum(isinstance(s, Generator) for s in self.sources.values())
        return {
            "num_neurons": len(self.neurons),
            "num_generators": num_generators,
            "num_pulse_emitters": len(self.sources) - num_generators,
            "num_output_sinks": len(self.sinks),
            "num_synapses": len(self.synapses),
            "num_probes": len(self.probes),
            "num_notes": len(self.notes),
            "graph_density": self.get_graph_density(),
            "reciprocal_pairs": self.count_reciprocal_pairs(),
        }

    def get_network_state(self) -> Dict[str, Any]:
        """Get current state of the entire network."""
        return {
            "current_tick": self.current_tick,
            "neurons": {nid: n.snapshot() for nid, n in self.neurons.items()},
            "sources": {sid: s.snapshot() for sid, s in self.sources.items()},
            "sinks": {sid: s.snapshot() for sid, s in self.sinks.items()},
            "synapses": {sid: s.snapshot() for sid, s in self.synapses.items()},
            "probes": {pid: vars(p).copy() for pid, p in self.probes.items()},
            "notes": {nid: vars(n).copy() for nid, n in self.notes.items()},
            "network_stats": self.get_network_statistics(),
            "recent_activity": list(self.history["network_activity"])[-10:],
        }

    def get_history(self, entity_id: Optional[int] = None) -> Dict[str, Any]:
        """Get simulation history for analysis."""
        if entity_id is not None:
            for key in ("neuron_states", "sink_states"):
                if entity_id in self.history[key]:
                    return {
                        "ticks": list(self.history["ticks"]),
                        "entity": {
                            name: list(queue)
                            for name, queue in self.history[key][entity_id].items()
                        },
                    }

        return {
            "ticks": list(self.history["ticks"]),
            "network_activity": list(self.history["network_activity"]),
            "all_neurons": {
                neuron_id: {key: list(queue) for key, queue in data.items()}
                for neuron_id, data in self.history["neuron_states"].items()
            },
            "all_sinks": {
                sink_id: {key: list(queue) for key, queue in data.items()}
                for sink_id, data in self.history["sink_states"].items()
            },
        }
