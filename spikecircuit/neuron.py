#
# Leaky integrate-and-fire neuron with a refractory state and a slow
# firing-rate average that drives the BCM sliding threshold.
#

from collections import deque
from dataclasses import dataclass
from typing import Any, Dict

import numpy as np

from .entity import Entity, EntityKind, Position

# Fixed constants of the membrane model
RESET_VOLTAGE = 0.40  # Voltage immediately after a spike
REFRACTORY_CLAMP_OFFSET = 0.10  # Refractory voltage sits this far below bias
SPIKE_FLASH_TICKS = 10  # Length of the visual flash armed on every spike
RATE_WINDOW_TICKS = 1000.0  # Exponential window of the average firing rate
THETA_FLOOR = 1e-6  # Sliding threshold never drops below this
DEFAULT_HISTORY_DEPTH = 100


@dataclass
class NeuronParameters:
    """User-editable parameters of a neuron."""

    tau: float = 20.0  # Membrane decay time constant (ticks)
    threshold: float = -0.55  # Spike threshold
    bias: float = -0.7  # Resting bias current
    refractory_period: int = 1  # Ticks spent refractory after a spike

    def __post_init__(self):
        if self.tau <= 0:
            raise ValueError(f"Neuron tau must be positive, got {self.tau}")


class Neuron(Entity):
    __slots__ = [
        "params",
        "position",
        "voltage",
        "input_current",
        "spiked",
        "refractory_timer",
        "flash_timer",
        "avg_firing_rate",
        "theta",
        "history",
    ]
    """
    Leaky integrate-and-fire neuron.

    The neuron is either Integrating or Refractory. It integrates the current
    deposited into ``input_current`` by its incoming synapses during the tick,
    and exposes ``spiked`` for the synapses that read it on the following tick.
    """

    kind = EntityKind.NEURON

    def __init__(
        self,
        params: NeuronParameters = None,  # type: ignore
        entity_id: int = None,  # type: ignore
        position: Position = (0.0, 0.0),
        history_depth: int = DEFAULT_HISTORY_DEPTH,
        log_level: str = "INFO",
    ):
        super().__init__(entity_id, log_level)
        self.params = params if params is not None else NeuronParameters()
        self.position = position

        # Tick-dependent state
        self.voltage: float = 0.0
        self.input_current: float = 0.0  # Accumulated this tick, reset by the scheduler
        self.spiked: bool = False
        self.refractory_timer: int = 0
        self.flash_timer: int = 0

        # Slow rate tracking for the BCM rule
        self.avg_firing_rate: float = 0.0
        self.theta: float = THETA_FLOOR

        # Oscilloscope trace of recent voltages
        self.history: deque = deque([0.0] * history_depth, maxlen=history_depth)

        self.logger.info(
            f"Neuron {self.id} initialized with parameters: tau={self.params.tau}, "
            f"threshold={self.params.threshold}, bias={self.params.bias}, "
            f"refractory_period={self.params.refractory_period}"
        )

    @property
    def is_refractory(self) -> bool:
        return self.refractory_timer > 0

    def reset_input(self) -> None:
        self.input_current = 0.0

    def update(self, current_tick: int) -> bool:
        """
        Advance the membrane by one tick and decide whether the neuron spikes.

        Returns:
            True if the neuron spiked this tick
        """
        if self.refractory_timer > 0:
            # Refractory: input is ignored and the voltage is held below bias
            self.refractory_timer -= 1
            self.voltage = self.params.bias - REFRACTORY_CLAMP_OFFSET
            self.spiked = False
        else:
            I = self.params.bias + self.input_current

            # Explicit Euler step with dt = 1
            old_voltage = self.voltage
            self.voltage += (I - self.voltage) / self.params.tau

            if self.voltage >= self.params.threshold:
                self.voltage = RESET_VOLTAGE
                self.spiked = True
                self.flash_timer = SPIKE_FLASH_TICKS
                self.refractory_timer = int(self.params.refractory_period)

                if self.logger_active:
                    self.logger.success(
                        f"SPIKE at tick {current_tick}! V={old_voltage:.4f} -> "
                        f"crossed {self.params.threshold:.4f}"
                    )
            else:
                self.spiked = False

        self._update_rate()

        if self.flash_timer > 0:
            self.flash_timer -= 1

        self.history.append(self.voltage)

        if self.logger_active:
            self.logger.debug(
                f"Tick {current_tick} complete: V={self.voltage:.4f}, I_in={self.input_current:.4f}, "
                f"spiked={self.spiked}, refractory={self.refractory_timer}"
            )

        return self.spiked

    def _update_rate(self) -> None:
        """Update the long-window firing rate and the sliding threshold."""
        instantaneous = 1.0 if self.spiked else 0.0
        self.avg_firing_rate += (instantaneous - self.avg_firing_rate) / RATE_WINDOW_TICKS
        self.theta = max(self.avg_firing_rate * self.avg_firing_rate, THETA_FLOOR)

    def reset_state(self) -> None:
        """Return all dynamic state to its initial values, keeping parameters."""
        self.voltage = 0.0
        self.input_current = 0.0
        self.spiked = False
        self.refractory_timer = 0
        self.flash_timer = 0
        self.avg_firing_rate = 0.0
        self.theta = THETA_FLOOR
        depth = self.history.maxlen
        self.history = deque([0.0] * depth, maxlen=depth)

    def get_history(self) -> np.ndarray:
        return np.asarray(self.history, dtype=float)

    def snapshot(self) -> Dict[str, Any]:
        """Read-only state for display collaborators."""
        return {
            "id": self.id,
            "kind": self.kind.value,
            "position": self.position,
            "voltage": self.voltage,
            "spiked": self.spiked,
            "input": self.input_current,
            "refractory": self.is_refractory,
            "flash": self.flash_timer,
            "firing_rate": self.avg_firing_rate,
            "theta": self.theta,
            "history": list(self.history),
            "params": {
                "tau": self.params.tau,
                "threshold": self.params.threshold,
                "bias": self.params.bias,
                "refractory_period": self.params.refractory_period,
            },
        }

