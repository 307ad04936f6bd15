"""
Signal sources: scalar outputs that drive synapses by direct injection.

Two variants exist. A ``Generator`` is a pure function of simulation time,
and a ``PulseEmitter`` is a manually triggered pulse with a countdown.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict

import numpy as np

from .entity import Entity, EntityKind, Position

TICKS_PER_SECOND = 60  # Simulated time scale: 60 ticks = 1 second
PULSE_DUTY_CYCLE = 0.1  # Fraction of each period a pulse waveform is high


class WaveformKind(str, Enum):
    """Waveforms a generator can produce."""

    CONSTANT = "constant"
    SINE = "sine"
    SQUARE = "square"
    PULSE = "pulse"


@dataclass
class GeneratorParameters:
    kind: WaveformKind = WaveformKind.SINE
    amplitude: float = 1.0
    frequency: float = 0.05  # Hz of simulated time
    offset: float = 0.0
    phase: float = 0.0  # Radians

    def __post_init__(self):
        # Raises ValueError for unknown waveform names
        self.kind = WaveformKind(self.kind)


@dataclass
class PulseEmitterParameters:
    voltage: float = 1.5
    pulse_duration: int = 10  # Ticks the output stays high after trigger()


class SignalSource(Entity):
    """Common read surface of both source variants."""

    def __init__(
        self,
        entity_id: int = None,  # type: ignore
        position: Position = (0.0, 0.0),
        log_level: str = "INFO",
    ):
        super().__init__(entity_id, log_level)
        self.position = position
        self.output: float = 0.0

    def update(self, current_tick: int) -> float:
        raise NotImplementedError

    def reset_state(self) -> None:
        self.output = 0.0


class Generator(SignalSource):
    """Periodic waveform generator driven by the shared tick counter."""

    kind = EntityKind.GENERATOR

    def __init__(
        self,
        params: GeneratorParameters = None,  # type: ignore
        entity_id: int = None,  # type: ignore
        position: Position = (0.0, 0.0),
        log_level: str = "INFO",
    ):
        super().__init__(entity_id, position, log_level)
        self.params = params if params is not None else GeneratorParameters()
        self.logger.info(
            f"Generator {self.id} initialized: kind={self.params.kind.value}, "
            f"amplitude={self.params.amplitude}, frequency={self.params.frequency}, "
            f"offset={self.params.offset}, phase={self.params.phase}"
        )

    def value_at(self, current_tick: int) -> float:
        """Output of the waveform at the given tick."""
        p = self.params
        t = current_tick / TICKS_PER_SECOND

        if p.kind is WaveformKind.CONSTANT:
            return p.offset + p.amplitude
        if p.kind is WaveformKind.SINE:
            return p.offset + p.amplitude * float(
                np.sin(2.0 * np.pi * p.frequency * t + p.phase)
            )
        if p.kind is WaveformKind.SQUARE:
            val = np.sin(2.0 * np.pi * p.frequency * t + p.phase)
            return p.offset + (p.amplitude if val >= 0 else -p.amplitude)

        # Pulse: high for the first tenth of every period
        phase_fraction = (t * p.frequency + p.phase / (2.0 * np.pi)) % 1.0
        if phase_fraction < PULSE_DUTY_CYCLE:
            return p.offset + p.amplitude
        return p.offset

    def update(self, current_tick: int) -> float:
        self.output = self.value_at(current_tick)
        if self.logger_active:
            self.logger.debug(f"Tick {current_tick}: output={self.output:.4f}")
        return self.output

    def snapshot(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "position": self.position,
            "output": self.output,
            "params": {
                "kind": self.params.kind.value,
                "amplitude": self.params.amplitude,
                "frequency": self.params.frequency,
                "offset": self.params.offset,
                "phase": self.params.phase,
            },
        }


class PulseEmitter(SignalSource):
    """Manual button: emits ``voltage`` for ``pulse_duration`` ticks per trigger."""

    kind = EntityKind.PULSE_EMITTER

    def __init__(
        self,
        params: PulseEmitterParameters = None,  # type: ignore
        entity_id: int = None,  # type: ignore
        position: Position = (0.0, 0.0),
        log_level: str = "INFO",
    ):
        super().__init__(entity_id, position, log_level)
        self.params = params if params is not None else PulseEmitterParameters()
        self.timer: int = 0
        self.logger.info(
            f"PulseEmitter {self.id} initialized: voltage={self.params.voltage}, "
            f"pulse_duration={self.params.pulse_duration}"
        )

    @property
    def is_active(self) -> bool:
        return self.timer > 0

    def trigger(self) -> None:
        """Arm the countdown; re-triggering restarts it."""
        self.timer = int(self.params.pulse_duration)
        self.logger.debug(f"Triggered for {self.timer} ticks")

    def update(self, current_tick: int) -> float:
        if self.timer > 0:
            self.output = self.params.voltage
            self.timer -= 1
        else:
            self.output = 0.0
        return self.output

    def reset_state(self) -> None:
        super().reset_state()
        self.timer = 0

    def snapshot(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "position": self.position,
            "output": self.output,
            "active": self.is_active,
            "params": {
                "voltage": self.params.voltage,
                "pulse_duration": self.params.pulse_duration,
            },
        }
