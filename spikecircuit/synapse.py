#
# Conductance-based synapse with STDP and BCM plasticity.
#
# A synapse sourced by a signal source is a hard-wired analog connection: it
# injects weight * output into its target in the same tick. A synapse sourced
# by a neuron is conductance-mediated: a presynaptic spike raises the
# conductance g on the following tick, g decays every tick, and the current it
# delivers depends on the target's membrane voltage.
#

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Union

import numpy as np

from .entity import Entity, EntityKind
from .neuron import THETA_FLOOR, Neuron
from .sink import OutputSink
from .sources import SignalSource

TRANSMISSION_GAIN = 0.5  # Conductance added per spike per unit |weight|
BCM_RATE_SCALE = 0.001  # Extra scaling of the BCM update, applied every tick
BCM_ACTIVITY_GATE = 0.01  # Both traces must exceed this before BCM applies
LEARNING_EVENT_THRESHOLD = 1e-4  # |dw| above this is reported as a learning event
EXCITATORY_REVERSAL = 1.0
INHIBITORY_REVERSAL = -1.0


class PlasticityMode(str, Enum):
    OFF = "off"
    STDP = "stdp"
    BCM = "bcm"


@dataclass
class SynapseParameters:
    """Parameters for transmission and plasticity of one synapse."""

    weight: float = 0.5
    decay: float = 0.1  # Per-tick conductance decay (reuptake rate)
    sensitivity: float = 1.0  # Receptor sensitivity
    plasticity_mode: PlasticityMode = PlasticityMode.OFF
    learning_rate: float = 1.0  # Scales every plasticity rule

    # Eligibility trace time constants and STDP amplitudes
    tau_plus: float = 20.0
    tau_minus: float = 20.0
    a_plus: float = 0.01
    a_minus: float = -0.012

    def __post_init__(self):
        self.plasticity_mode = PlasticityMode(self.plasticity_mode)
        if self.tau_plus <= 0 or self.tau_minus <= 0:
            raise ValueError(
                f"Trace time constants must be positive, got tau_plus={self.tau_plus}, "
                f"tau_minus={self.tau_minus}"
            )


@dataclass
class PlasticityEvent:
    __slots__ = ["synapse_id", "tick", "delta", "direction", "weight"]
    """Weight change large enough to be shown as a learning flash."""

    synapse_id: int
    tick: int
    delta: float
    direction: int  # +1 potentiation, -1 depression
    weight: float


Source = Union[Neuron, SignalSource]
Target = Union[Neuron, OutputSink]


class Synapse(Entity):
    """
    Directed connection between two registry entities.

    Endpoints are held as ids; the scheduler resolves them and passes the
    entities into ``update``. The sign of the weight at creation is fixed for
    the synapse's lifetime: plasticity and parameter edits clamp the weight
    into [0, 1] for excitatory synapses and [-1, 0] for inhibitory ones.
    """

    kind = EntityKind.SYNAPSE

    def __init__(
        self,
        source_id: int,
        target_id: int,
        source_kind: EntityKind,
        target_kind: EntityKind,
        params: SynapseParameters = None,  # type: ignore
        entity_id: int = None,  # type: ignore
        log_level: str = "INFO",
        excitatory: Optional[bool] = None,
    ):
        super().__init__(entity_id, log_level)
        self.source_id = source_id
        self.target_id = target_id
        self.source_kind = source_kind
        self.target_kind = target_kind
        self.params = params if params is not None else SynapseParameters()

        # Sign is decided once; a zero weight counts as excitatory unless told otherwise
        self.excitatory: bool = (
            excitatory if excitatory is not None else self.params.weight >= 0
        )
        self.params.weight = self._clamp_weight(self.params.weight)

        # Transmission and plasticity state
        self.conductance: float = 0.0
        self.pre_trace: float = 0.0
        self.post_trace: float = 0.0

        self.logger.info(
            f"Synapse {self.id} created: {source_id} -> {target_id} "
            f"({'direct' if self.is_direct else 'conductance'}), weight={self.params.weight}, "
            f"decay={self.params.decay}, mode={self.params.plasticity_mode.value}"
        )

    @property
    def is_direct(self) -> bool:
        """Signal-source synapses inject current directly."""
        return self.source_kind.is_signal_source

    @property
    def weight(self) -> float:
        return self.params.weight

    @property
    def reversal_potential(self) -> float:
        return EXCITATORY_REVERSAL if self.excitatory else INHIBITORY_REVERSAL

    def _clamp_weight(self, value: float) -> float:
        if self.excitatory:
            return float(np.clip(value, 0.0, 1.0))
        return float(np.clip(value, -1.0, 0.0))

    def set_weight(self, value: float) -> None:
        self.params.weight = self._clamp_weight(value)

    def transmit(self) -> None:
        """Transmission event triggered by a presynaptic spike."""
        self.conductance += (
            abs(self.params.weight) * TRANSMISSION_GAIN * self.params.sensitivity
        )

    def update(
        self, source: Source, target: Target, current_tick: int
    ) -> Optional[PlasticityEvent]:
        """
        Deliver this tick's current into the target's accumulator.

        For neuron-sourced synapses ``source.spiked`` still holds the previous
        tick's value here, which gives spike transmission its one-tick delay.

        Returns:
            A PlasticityEvent if the weight changed noticeably, else None
        """
        if self.is_direct:
            # Direct injection: no conductance, no plasticity
            target.input_current += self.params.weight * source.output
            return None

        if source.spiked:
            self.transmit()

        self.conductance *= 1.0 - self.params.decay
        if self.conductance < 0.0:
            self.conductance = 0.0

        if self.target_kind is EntityKind.NEURON:
            # Conductance-based: the driving force shrinks near the reversal potential
            I_syn = self.conductance * (self.reversal_potential - target.voltage)
        else:
            I_syn = self.conductance * self.params.weight
        target.input_current += I_syn

        if self.logger_active:
            self.logger.debug(
                f"Tick {current_tick}: g={self.conductance:.4f}, I_syn={I_syn:.4f}"
            )

        if self.params.plasticity_mode is PlasticityMode.OFF:
            return None

        if self.target_kind is EntityKind.NEURON:
            post_spiked, post_theta = target.spiked, target.theta
        else:
            post_spiked, post_theta = False, THETA_FLOOR
        return self.update_plasticity(source.spiked, post_spiked, post_theta, current_tick)

    def update_plasticity(
        self,
        pre_spiked: bool,
        post_spiked: bool,
        post_theta: float,
        current_tick: int = 0,
    ) -> Optional[PlasticityEvent]:
        """Decay the eligibility traces and apply the active learning rule."""
        p = self.params
        weight_change = 0.0

        self.pre_trace *= np.exp(-1.0 / p.tau_plus)
        self.post_trace *= np.exp(-1.0 / p.tau_minus)

        if p.plasticity_mode is PlasticityMode.STDP:
            if pre_spiked:
                self.pre_trace += 1.0
                # Pre after post: depression
                weight_change += p.learning_rate * p.a_minus * self.post_trace
            if post_spiked:
                self.post_trace += 1.0
                # Post after pre: potentiation
                weight_change += p.learning_rate * p.a_plus * self.pre_trace

        elif p.plasticity_mode is PlasticityMode.BCM:
            if pre_spiked:
                self.pre_trace += 1.0
            if post_spiked:
                self.post_trace += 1.0

            # Traces stand in for instantaneous pre (x) and post (y) rates
            x, y = self.pre_trace, self.post_trace
            if x > BCM_ACTIVITY_GATE and y > BCM_ACTIVITY_GATE:
                weight_change += p.learning_rate * BCM_RATE_SCALE * x * y * (y - post_theta)

        if weight_change == 0.0:
            return None

        old_weight = p.weight
        self.set_weight(old_weight + weight_change)

        if abs(weight_change) > LEARNING_EVENT_THRESHOLD:
            if self.logger_active:
                self.logger.debug(
                    f"Plasticity ({p.plasticity_mode.value}) at tick {current_tick}: "
                    f"{old_weight:.4f}->{p.weight:.4f} (dw={weight_change:.6f})"
                )
            return PlasticityEvent(
                synapse_id=self.id,
                tick=current_tick,
                delta=float(weight_change),
                direction=1 if weight_change > 0 else -1,
                weight=p.weight,
            )
        return None

    def reset_state(self) -> None:
        self.conductance = 0.0
        self.pre_trace = 0.0
        self.post_trace = 0.0

    def snapshot(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "source": self.source_id,
            "target": self.target_id,
            "direct": self.is_direct,
            "excitatory": self.excitatory,
            "weight": self.params.weight,
            "conductance": self.conductance,
            "pre_trace": self.pre_trace,
            "post_trace": self.post_trace,
            "params": {
                "weight": self.params.weight,
                "decay": self.params.decay,
                "sensitivity": self.params.sensitivity,
                "plasticity_mode": self.params.plasticity_mode.value,
                "learning_rate": self.params.learning_rate,
                "tau_plus": self.params.tau_plus,
                "tau_minus": self.params.tau_minus,
                "a_plus": self.params.a_plus,
                "a_minus": self.params.a_minus,
            },
        }
