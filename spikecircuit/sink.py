"""Threshold output sink with rising-edge detection."""

from dataclasses import dataclass
from typing import Any, Dict

from .entity import Entity, EntityKind, Position


@dataclass
class OutputSinkParameters:
    label: str = "Output"
    activation_threshold: float = 0.5


class OutputSink(Entity):
    """
    Compares the current accumulated during a tick against a threshold.

    A rising edge (inactive -> active) is the only event a sink produces; the
    engine reports it in the tick summary and takes no further action.
    """

    kind = EntityKind.OUTPUT_SINK

    def __init__(
        self,
        params: OutputSinkParameters = None,  # type: ignore
        entity_id: int = None,  # type: ignore
        position: Position = (0.0, 0.0),
        log_level: str = "INFO",
    ):
        super().__init__(entity_id, log_level)
        self.params = params if params is not None else OutputSinkParameters()
        self.position = position
        self.input_current: float = 0.0
        self.active: bool = False
        self.was_active: bool = False
        self.logger.info(
            f"OutputSink {self.id} '{self.params.label}' initialized: "
            f"threshold={self.params.activation_threshold}"
        )

    @property
    def rising_edge(self) -> bool:
        return self.active and not self.was_active

    def reset_input(self) -> None:
        self.input_current = 0.0

    def update(self, current_tick: int) -> bool:
        """
        Evaluate the threshold for this tick.

        Returns:
            True on a rising edge
        """
        self.was_active = self.active
        self.active = self.input_current >= self.params.activation_threshold

        if self.rising_edge:
            self.logger.debug(
                f"Activated at tick {current_tick}: input={self.input_current:.4f} >= "
                f"{self.params.activation_threshold:.4f}"
            )
        return self.rising_edge

    def reset_state(self) -> None:
        self.input_current = 0.0
        self.active = False
        self.was_active = False

    def snapshot(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "position": self.position,
            "label": self.params.label,
            "input": self.input_current,
            "active": self.active,
            "rising_edge": self.rising_edge,
            "params": {
                "label": self.params.label,
                "activation_threshold": self.params.activation_threshold,
            },
        }
