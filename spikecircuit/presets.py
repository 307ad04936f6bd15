"""
Ready-made circuits and logic-gate templates.

Every builder returns the ids it created, grouped as
``{"neurons": [...], "synapses": [...], "notes": [...]}``.
"""

from typing import Callable, Dict, List, Optional

import numpy as np
from loguru import logger

from .entity import EntityKind, Position
from .network import CircuitNetwork
from .neuron import NeuronParameters

CreatedIds = Dict[str, List[int]]

OSCILLATOR_WEIGHT = 0.8
OSCILLATOR_KICK_VOLTAGE = 0.9
# One transmission event per spike is weaker than a multi-vesicle release,
# so the oscillator synapses use a doubled receptor sensitivity.
OSCILLATOR_SENSITIVITY = 2.0

BALANCED_NEURONS = 8
BALANCED_SYNAPSE_ATTEMPTS = 15
BALANCED_WEIGHT = 0.8
BALANCED_SPREAD = 200.0


def _created() -> CreatedIds:
    return {"neurons": [], "synapses": [], "notes": []}


def _neuron(
    network: CircuitNetwork, created: CreatedIds, position: Position, **params
) -> int:
    neuron = network.create(EntityKind.NEURON, NeuronParameters(**params), position)
    created["neurons"].append(neuron.id)
    return neuron.id


def _synapse(
    network: CircuitNetwork, created: CreatedIds, source_id: int, target_id: int, **params
) -> Optional[int]:
    synapse = network.connect(source_id, target_id, **params)
    if synapse is None:
        return None
    created["synapses"].append(synapse.id)
    return synapse.id


def build_chain(
    network: CircuitNetwork, center: Position = (0.0, 0.0), seed: Optional[int] = None
) -> CreatedIds:
    """Three neurons in a row: n1 -> n2 -> n3 at default weights."""
    cx, cy = center
    created = _created()
    n1 = _neuron(network, created, (cx - 150, cy), bias=-0.7)
    n2 = _neuron(network, created, (cx, cy))
    n3 = _neuron(network, created, (cx + 150, cy))
    _synapse(network, created, n1, n2)
    _synapse(network, created, n2, n3)
    return created


def build_oscillator(
    network: CircuitNetwork, center: Position = (0.0, 0.0), seed: Optional[int] = None
) -> CreatedIds:
    """
    Two reciprocally connected neurons that fire in alternation.

    n1 is kicked to a high voltage while n2 starts at rest, so n1 fires first
    and each spike drives the partner over threshold a few ticks later.
    """
    cx, cy = center
    created = _created()
    n1 = _neuron(network, created, (cx - 60, cy), bias=-0.7)
    n2 = _neuron(network, created, (cx + 60, cy), bias=-0.7)
    for source, target in ((n1, n2), (n2, n1)):
        _synapse(
            network,
            created,
            source,
            target,
            weight=OSCILLATOR_WEIGHT,
            sensitivity=OSCILLATOR_SENSITIVITY,
        )
    network.set_parameter(n1, "voltage", OSCILLATOR_KICK_VOLTAGE)
    network.set_parameter(n2, "voltage", network.neurons[n2].params.bias)
    return created


def build_balanced(
    network: CircuitNetwork, center: Position = (0.0, 0.0), seed: Optional[int] = None
) -> CreatedIds:
    """Random network of spontaneously active neurons with mixed-sign synapses."""
    rng = np.random.default_rng(seed)
    cx, cy = center
    created = _created()
    for _ in range(BALANCED_NEURONS):
        offset = rng.uniform(-BALANCED_SPREAD, BALANCED_SPREAD, size=2)
        _neuron(
            network,
            created,
            (cx + float(offset[0]), cy + float(offset[1])),
            bias=float(0.9 + rng.uniform(0.0, 0.2)),
        )

    neuron_ids = created["neurons"]
    for _ in range(BALANCED_SYNAPSE_ATTEMPTS):
        a, b = (int(i) for i in rng.choice(neuron_ids, size=2))
        weight = BALANCED_WEIGHT if rng.random() > 0.5 else -BALANCED_WEIGHT
        if a != b:
            # Repeated pairs are absorbed by connect()
            _synapse(network, created, a, b, weight=weight)
    return created


PRESETS: Dict[str, Callable[..., CreatedIds]] = {
    "chain": build_chain,
    "oscillator": build_oscillator,
    "balanced": build_balanced,
}


def load_preset(
    network: CircuitNetwork,
    name: str,
    center: Position = (0.0, 0.0),
    seed: Optional[int] = None,
) -> Optional[CreatedIds]:
    """Clear the network and build the named preset into it."""
    builder = PRESETS.get(name)
    if builder is None:
        logger.warning(f"Unknown preset '{name}'. Available: {', '.join(PRESETS)}")
        return None

    network.clear()
    created = builder(network, center, seed)
    logger.info(
        f"Loaded preset '{name}': {len(created['neurons'])} neurons, "
        f"{len(created['synapses'])} synapses"
    )
    return created


def _gate_and_or(
    network: CircuitNetwork, x: float, y: float, threshold: float, label: str
) -> CreatedIds:
    created = _created()
    in_a = _neuron(network, created, (x - 80, y - 40))
    in_b = _neuron(network, created, (x - 80, y + 40))
    out = _neuron(network, created, (x + 40, y), threshold=threshold, refractory_period=1)
    _synapse(network, created, in_a, out, weight=1.0)
    _synapse(network, created, in_b, out, weight=1.0)
    note = network.add_note(label, (x - 20, y - 70), [in_a, in_b, out], minimized=True)
    created["notes"].append(note.id)
    return created


def _gate_not(network: CircuitNetwork, x: float, y: float) -> CreatedIds:
    created = _created()
    inp = _neuron(network, created, (x - 60, y))
    # Output fires on its own bias; the input inhibits it
    out = _neuron(network, created, (x + 60, y), bias=1.5, refractory_period=3)
    _synapse(network, created, inp, out, weight=-1.0)
    note = network.add_note("NOT Gate", (x, y - 50), [inp, out], minimized=True)
    created["notes"].append(note.id)
    return created


GATE_KINDS = ("and", "or", "not")


def spawn_logic_gate(
    network: CircuitNetwork, kind: str, x: float = 0.0, y: float = 0.0
) -> Optional[CreatedIds]:
    """
    Add a logic-gate template centred on (x, y) without clearing the network.

    AND needs both inputs (output threshold 1.8), OR either (threshold 0.8),
    and NOT is a self-firing output silenced by its input.
    """
    kind = kind.lower()
    if kind == "and":
        created = _gate_and_or(network, x, y, 1.8, "AND Gate")
    elif kind == "or":
        created = _gate_and_or(network, x, y, 0.8, "OR Gate")
    elif kind == "not":
        created = _gate_not(network, x, y)
    else:
        logger.warning(f"Unknown gate '{kind}'. Available: {', '.join(GATE_KINDS)}")
        return None

    logger.info(f"Spawned {kind.upper()} gate at ({x}, {y})")
    return created
