"""
Entity identity and logging shared by every circuit element.

Every element of a circuit (neurons, signal sources, output sinks and the
synapses between them) carries a process-unique integer id. The network
registry stores elements by that id, and synapses refer to their endpoints by id
only, so deleting an element is a dictionary removal rather than a dangling
reference.
"""

import itertools
from enum import Enum
from typing import Tuple

from loguru import logger

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    + "<level>{level: <8}</level> | "
    + "<cyan>{extra[entity]}</cyan> | "
    + "<level>{message}</level>"
)

VALID_LOG_LEVELS = (
    "TRACE",
    "DEBUG",
    "INFO",
    "SUCCESS",
    "WARNING",
    "ERROR",
    "CRITICAL",
)

# Records emitted through the module logger (not bound to an entity) still
# need the "entity" extra for the format above.
logger.configure(extra={"entity": "-"})

_id_counter = itertools.count(1)

Position = Tuple[float, float]


def setup_circuit_logger(level: str = "INFO") -> None:
    """Setup colored logging for the circuit engine with specified level."""
    logger.remove()
    logger.add(
        lambda msg: print(msg, end=""),
        format=LOG_FORMAT,
        level=level.upper(),
        colorize=True,
    )


def next_entity_id() -> int:
    """Allocate a fresh process-unique entity id."""
    return next(_id_counter)


class EntityKind(str, Enum):
    """Closed set of circuit element variants."""

    NEURON = "neuron"
    GENERATOR = "generator"
    PULSE_EMITTER = "pulse_emitter"
    OUTPUT_SINK = "output_sink"
    SYNAPSE = "synapse"

    @property
    def tag(self) -> str:
        return _KIND_TAGS[self]

    @property
    def is_signal_source(self) -> bool:
        return self in (EntityKind.GENERATOR, EntityKind.PULSE_EMITTER)

    @property
    def is_current_source(self) -> bool:
        """Whether this kind can drive the source end of a synapse."""
        return self is EntityKind.NEURON or self.is_signal_source

    @property
    def is_current_sink(self) -> bool:
        """Whether this kind can receive current at the target end of a synapse."""
        return self in (EntityKind.NEURON, EntityKind.OUTPUT_SINK)


_KIND_TAGS = {
    EntityKind.NEURON: "N",
    EntityKind.GENERATOR: "G",
    EntityKind.PULSE_EMITTER: "P",
    EntityKind.OUTPUT_SINK: "O",
    EntityKind.SYNAPSE: "S",
}


class Entity:
    """Base for every registry-held circuit element."""

    __slots__ = ["id", "logger", "logger_active"]

    kind: EntityKind

    def __init__(self, entity_id: int = None, log_level: str = "INFO"):  # type: ignore
        self.id = entity_id if entity_id is not None else next_entity_id()
        if self.id <= 0:
            raise ValueError(f"Entity ID {self.id} must be a positive integer")

        # Performance optimization: pre-compute if debug logging is active
        self.logger_active = log_level.upper() in ("TRACE", "DEBUG")
        self.logger = logger.bind(entity=f"{self.kind.tag}:{self.id}")

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id})"
