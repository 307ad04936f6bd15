#!/usr/bin/env python3
"""
Circuit Configuration Module
Handles loading and saving circuits from/to JSON files.

The record layout is the one used by the browser editor's save files:
``neurons``, ``stimulators`` (generators), ``buttons`` (pulse emitters),
``outputs`` (sinks), ``synapses`` keyed by ``fromId``/``toId``, plus
``probes`` and ``notes`` that are carried along but never simulated.
"""

import json
import math
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from loguru import logger

from .entity import EntityKind
from .network import CircuitNetwork
from .neuron import NeuronParameters
from .sink import OutputSinkParameters
from .sources import (
    Generator,
    GeneratorParameters,
    PulseEmitter,
    PulseEmitterParameters,
    WaveformKind,
)
from .synapse import PlasticityMode, SynapseParameters

FORMAT_VERSION = "1.0"

DEFAULT_NEURON_PARAMS = NeuronParameters()
DEFAULT_GENERATOR_PARAMS = GeneratorParameters()
DEFAULT_EMITTER_PARAMS = PulseEmitterParameters()
DEFAULT_SINK_PARAMS = OutputSinkParameters()
DEFAULT_SYNAPSE_PARAMS = SynapseParameters()

NODE_SECTIONS = ("neurons", "stimulators", "buttons", "outputs")


def _number(record: Dict[str, Any], key: str, default: float) -> float:
    """Read a numeric field, falling back to the default when missing or malformed."""
    value = record.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    if not math.isfinite(value):
        return default
    return float(value)


def _ref(value: Any) -> Any:
    """An id or enum value usable as a lookup key, or None when malformed."""
    if isinstance(value, (int, float, str)):
        return value
    return None


def _position(record: Dict[str, Any]) -> tuple:
    return (_number(record, "x", 0.0), _number(record, "y", 0.0))


def _records(config: Dict[str, Any], section: str) -> List[Dict[str, Any]]:
    """Section entries that are objects; anything else is skipped."""
    entries = config.get(section) or []
    if not isinstance(entries, list):
        return []
    return [entry for entry in entries if isinstance(entry, dict)]


class CircuitConfig:
    """Handles circuit persistence via JSON files."""

    @staticmethod
    def create_empty_config() -> Dict[str, Any]:
        """Create an empty circuit configuration template."""
        return {
            "metadata": {
                "name": "Untitled Circuit",
                "description": "Spiking circuit",
                "version": FORMAT_VERSION,
                "created_by": "spikecircuit",
            },
            "neurons": [],
            "stimulators": [],
            "buttons": [],
            "outputs": [],
            "synapses": [],
            "probes": [],
            "notes": [],
        }

    @staticmethod
    def to_config(
        network: CircuitNetwork, metadata: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """Serialize a network's parameters and topology (not its dynamic state)."""
        config = CircuitConfig.create_empty_config()
        config["metadata"]["saved_at"] = datetime.now().isoformat()
        config["metadata"]["tick"] = network.current_tick
        if metadata:
            config["metadata"].update(metadata)

        for neuron_id, neuron in network.neurons.items():
            config["neurons"].append(
                {
                    "id": neuron_id,
                    "x": neuron.position[0],
                    "y": neuron.position[1],
                    "tau": neuron.params.tau,
                    "thresh": neuron.params.threshold,
                    "bias": neuron.params.bias,
                    "refractoryPeriod": neuron.params.refractory_period,
                }
            )

        for source_id, source in network.sources.items():
            if isinstance(source, Generator):
                config["stimulators"].append(
                    {
                        "id": source_id,
                        "x": source.position[0],
                        "y": source.position[1],
                        "type": source.params.kind.value,
                        "amplitude": source.params.amplitude,
                        "frequency": source.params.frequency,
                        "offset": source.params.offset,
                        "phase": source.params.phase,
                    }
                )
            elif isinstance(source, PulseEmitter):
                config["buttons"].append(
                    {
                        "id": source_id,
                        "x": source.position[0],
                        "y": source.position[1],
                        "voltage": source.params.voltage,
                        "pulseDuration": source.params.pulse_duration,
                    }
                )

        for sink_id, sink in network.sinks.items():
            config["outputs"].append(
                {
                    "id": sink_id,
                    "x": sink.position[0],
                    "y": sink.position[1],
                    "label": sink.params.label,
                    "activationThreshold": sink.params.activation_threshold,
                }
            )

        for synapse in network.synapses.values():
            p = synapse.params
            config["synapses"].append(
                {
                    "fromId": synapse.source_id,
                    "toId": synapse.target_id,
                    "weight": p.weight,
                    "excitatory": synapse.excitatory,
                    "decay": p.decay,
                    "sensitivity": p.sensitivity,
                    "plasticityMode": p.plasticity_mode.value,
                    "baseLearningRate": p.learning_rate,
                    "tau_plus": p.tau_plus,
                    "tau_minus": p.tau_minus,
                    "A_plus": p.a_plus,
                    "A_minus": p.a_minus,
                }
            )

        for probe in network.probes.values():
            config["probes"].append(
                {
                    "id": probe.id,
                    "x": probe.position[0],
                    "y": probe.position[1],
                    "targetId": probe.target_id,
                }
            )

        for note in network.notes.values():
            config["notes"].append(
                {
                    "id": note.id,
                    "x": note.position[0],
                    "y": note.position[1],
                    "text": note.text,
                    "minimized": note.minimized,
                    "targetIds": list(note.target_ids),
                }
            )

        return config

    @staticmethod
    def save_circuit_config(
        network: CircuitNetwork,
        filepath: Union[str, Path],
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Save a CircuitNetwork to a JSON configuration file."""
        filepath = Path(filepath)
        config = CircuitConfig.to_config(network, metadata)

        with open(filepath, "w") as f:
            json.dump(config, f, indent=2)

        logger.info(
            f"Circuit saved to {filepath}: {len(config['neurons'])} neurons, "
            f"{len(config['synapses'])} synapses"
        )

    @staticmethod
    def load_circuit_config(
        filepath: Union[str, Path],
        network: Optional[CircuitNetwork] = None,
    ) -> CircuitNetwork:
        """
        Load a circuit from a JSON configuration file.

        Args:
            filepath: Path to the JSON file
            network: Network to load into (cleared first). A new one is made if None.

        Raises:
            FileNotFoundError: If the file does not exist
            json.JSONDecodeError: If the file is not valid JSON
        """
        filepath = Path(filepath)

        if not filepath.exists():
            raise FileNotFoundError(f"Circuit file not found: {filepath}")

        with open(filepath, "r") as f:
            config = json.load(f)

        network = CircuitConfig.build_network_from_config(config, network)
        logger.info(f"Circuit loaded from {filepath}")
        return network

    @staticmethod
    def build_network_from_config(
        config: Dict[str, Any], network: Optional[CircuitNetwork] = None
    ) -> CircuitNetwork:
        """
        Build a network from a configuration dictionary.

        Persisted ids are remapped to fresh entity ids. Missing numeric fields
        take their defaults, and any reference that does not resolve (synapse
        endpoint, probe target, note target) is dropped.
        """
        if network is None:
            network = CircuitNetwork()
        else:
            network.clear()

        if not isinstance(config, dict):
            logger.warning("Circuit configuration is not an object; nothing loaded")
            return network

        id_map: Dict[Any, int] = {}
        dropped = 0

        for nd in _records(config, "neurons"):
            tau = _number(nd, "tau", DEFAULT_NEURON_PARAMS.tau)
            params = NeuronParameters(
                tau=tau if tau > 0 else DEFAULT_NEURON_PARAMS.tau,
                threshold=_number(nd, "thresh", DEFAULT_NEURON_PARAMS.threshold),
                bias=_number(nd, "bias", DEFAULT_NEURON_PARAMS.bias),
                refractory_period=int(
                    _number(nd, "refractoryPeriod", DEFAULT_NEURON_PARAMS.refractory_period)
                ),
            )
            neuron = network.create(EntityKind.NEURON, params, _position(nd))
            if _ref(nd.get("id")) is not None:
                id_map[nd["id"]] = neuron.id

        for sd in _records(config, "stimulators"):
            kind = _ref(sd.get("type"))
            if kind not in {k.value for k in WaveformKind}:
                kind = DEFAULT_GENERATOR_PARAMS.kind
            params = GeneratorParameters(
                kind=kind,
                amplitude=_number(sd, "amplitude", DEFAULT_GENERATOR_PARAMS.amplitude),
                frequency=_number(sd, "frequency", DEFAULT_GENERATOR_PARAMS.frequency),
                offset=_number(sd, "offset", DEFAULT_GENERATOR_PARAMS.offset),
                phase=_number(sd, "phase", DEFAULT_GENERATOR_PARAMS.phase),
            )
            generator = network.create(EntityKind.GENERATOR, params, _position(sd))
            if _ref(sd.get("id")) is not None:
                id_map[sd["id"]] = generator.id

        for bd in _records(config, "buttons"):
            params = PulseEmitterParameters(
                voltage=_number(bd, "voltage", DEFAULT_EMITTER_PARAMS.voltage),
                pulse_duration=int(
                    _number(bd, "pulseDuration", DEFAULT_EMITTER_PARAMS.pulse_duration)
                ),
            )
            emitter = network.create(EntityKind.PULSE_EMITTER, params, _position(bd))
            if _ref(bd.get("id")) is not None:
                id_map[bd["id"]] = emitter.id

        for od in _records(config, "outputs"):
            label = od.get("label")
            params = OutputSinkParameters(
                label=label if isinstance(label, str) and label else DEFAULT_SINK_PARAMS.label,
                activation_threshold=_number(
                    od, "activationThreshold", DEFAULT_SINK_PARAMS.activation_threshold
                ),
            )
            sink = network.create(EntityKind.OUTPUT_SINK, params, _position(od))
            if _ref(od.get("id")) is not None:
                id_map[od["id"]] = sink.id

        for sd in _records(config, "synapses"):
            source_id = id_map.get(_ref(sd.get("fromId")))
            target_id = id_map.get(_ref(sd.get("toId")))
            if source_id is None or target_id is None:
                dropped += 1
                continue

            mode = _ref(sd.get("plasticityMode"))
            if mode not in {m.value for m in PlasticityMode}:
                mode = PlasticityMode.OFF.value

            params = {
                "decay": _number(sd, "decay", DEFAULT_SYNAPSE_PARAMS.decay),
                "sensitivity": _number(sd, "sensitivity", DEFAULT_SYNAPSE_PARAMS.sensitivity),
                "plasticity_mode": mode,
                "learning_rate": _number(
                    sd, "baseLearningRate", DEFAULT_SYNAPSE_PARAMS.learning_rate
                ),
                "a_plus": _number(sd, "A_plus", DEFAULT_SYNAPSE_PARAMS.a_plus),
                "a_minus": _number(sd, "A_minus", DEFAULT_SYNAPSE_PARAMS.a_minus),
            }
            for key in ("tau_plus", "tau_minus"):
                value = _number(sd, key, getattr(DEFAULT_SYNAPSE_PARAMS, key))
                params[key] = value if value > 0 else getattr(DEFAULT_SYNAPSE_PARAMS, key)
            if "weight" in sd:
                # Without a weight connect() picks the source-dependent default
                params["weight"] = _number(sd, "weight", DEFAULT_SYNAPSE_PARAMS.weight)
            excitatory = sd.get("excitatory")

            synapse = network.connect(
                source_id,
                target_id,
                excitatory=excitatory if isinstance(excitatory, bool) else None,
                **params,
            )
            if synapse is None:
                dropped += 1

        for pd in _records(config, "probes"):
            target_id = id_map.get(_ref(pd.get("targetId")))
            probe = (
                network.add_probe(target_id, _position(pd))
                if target_id is not None
                else None
            )
            if probe is None:
                dropped += 1
            elif _ref(pd.get("id")) is not None:
                id_map[pd["id"]] = probe.id

        for nd in _records(config, "notes"):
            text = nd.get("text")
            minimized = nd.get("minimized")
            raw_targets = nd.get("targetIds") or []
            if not isinstance(raw_targets, list):
                raw_targets = []
            targets = [id_map[t] for t in map(_ref, raw_targets) if t in id_map]
            network.add_note(
                text if isinstance(text, str) else "Note",
                _position(nd),
                targets,
                minimized if isinstance(minimized, bool) else True,
            )

        if dropped:
            logger.warning(f"Dropped {dropped} unresolvable references while loading")

        stats = network.get_network_statistics()
        logger.info(
            f"Built circuit: {stats['num_neurons']} neurons, {stats['num_synapses']} synapses"
        )
        return network

    @staticmethod
    def validate_config(config: Dict[str, Any]) -> List[str]:
        """Validate circuit configuration and return list of errors."""
        errors = []

        if not isinstance(config, dict):
            return ["Configuration must be a JSON object"]

        # Check required sections
        required_sections = ["neurons", "synapses"]
        for section in required_sections:
            if section not in config:
                errors.append(f"Missing required section: {section}")

        for section in (*NODE_SECTIONS, "synapses", "probes", "notes"):
            if section in config and not isinstance(config[section], list):
                errors.append(f"Section '{section}' must be a list")

        # Validate node ids across all node sections
        node_ids = set()
        neuron_ids = set()
        for section in NODE_SECTIONS:
            for i, record in enumerate(_records(config, section)):
                if "id" not in record:
                    errors.append(f"{section} entry {i} missing 'id' field")
                    continue
                node_id = _ref(record["id"])
                if node_id is None:
                    errors.append(f"{section} entry {i} has a malformed 'id': {record['id']!r}")
                    continue
                if node_id in node_ids:
                    errors.append(f"Duplicate entity ID: {node_id}")
                node_ids.add(node_id)
                if section == "neurons":
                    neuron_ids.add(node_id)

        for i, nd in enumerate(_records(config, "neurons")):
            if "tau" in nd and _number(nd, "tau", 1.0) <= 0:
                errors.append(f"Neuron {i} has non-positive tau: {nd['tau']}")

        # Validate synapses
        for i, sd in enumerate(_records(config, "synapses")):
            for endpoint in ("fromId", "toId"):
                if endpoint not in sd:
                    errors.append(f"Synapse {i} missing '{endpoint}' field")
                elif _ref(sd[endpoint]) not in node_ids:
                    errors.append(
                        f"Synapse {i} references unknown entity: {sd[endpoint]}"
                    )
            mode = sd.get("plasticityMode")
            if mode is not None and _ref(mode) not in {m.value for m in PlasticityMode}:
                errors.append(f"Synapse {i} has invalid plasticity mode: {mode}")

        for i, sd in enumerate(_records(config, "stimulators")):
            kind = sd.get("type")
            if kind is not None and _ref(kind) not in {k.value for k in WaveformKind}:
                errors.append(f"Stimulator {i} has invalid type: {kind}")

        # Validate probes
        for i, pd in enumerate(_records(config, "probes")):
            if _ref(pd.get("targetId")) not in neuron_ids:
                errors.append(
                    f"Probe {i} references unknown neuron: {pd.get('targetId')}"
                )

        return errors
