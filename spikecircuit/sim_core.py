#!/usr/bin/env python3
"""
Simulation Core Engine
Frame-paced time flow and thread-safe editing around one CircuitNetwork.
"""

import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from loguru import logger

from .config import SimulationSettings
from .entity import VALID_LOG_LEVELS, setup_circuit_logger
from .network import CircuitNetwork
from .network_config import CircuitConfig
from .presets import load_preset, spawn_logic_gate


@dataclass
class SimulationCoreState:
    """State container for the simulation core"""

    current_tick: int = 0
    is_running: bool = False
    frame_rate: float = 60.0  # rendered frames per second
    ticks_per_frame: int = 1  # simulation speed, 0 = paused
    last_tick_time: float = field(default_factory=time.time)


class SimulationCore:
    """
    Simulation Core Engine
    Runs ticks strictly one after another. Every edit goes through the same
    lock as the ticks, so edits only ever land between two ticks.
    """

    def __init__(self, settings: Optional[SimulationSettings] = None):
        self.settings = settings if settings is not None else SimulationSettings()
        self.state = SimulationCoreState(
            frame_rate=self.settings.frame_rate,
            ticks_per_frame=self.settings.ticks_per_frame,
        )
        self.network = CircuitNetwork(
            history_depth=self.settings.history_depth,
            max_history=self.settings.max_history,
            log_level=self.settings.log_level,
        )
        self.lock = threading.RLock()
        self.time_thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

        if self.settings.preset:
            self.load_preset(self.settings.preset)
        if self.settings.circuit_path:
            self.import_circuit(self.settings.circuit_path)

    # ------------------------------------------------------------------
    # Time flow
    # ------------------------------------------------------------------

    def start_time_flow(
        self, frame_rate: Optional[float] = None, ticks_per_frame: Optional[int] = None
    ) -> bool:
        """Start autonomous time flow at the given frame rate and speed"""
        with self.lock:
            if self.state.is_running:
                return False
            if frame_rate is not None:
                if frame_rate <= 0:
                    logger.warning(f"Invalid frame rate {frame_rate}")
                    return False
                self.state.frame_rate = float(frame_rate)
            if ticks_per_frame is not None:
                self.state.ticks_per_frame = max(0, int(ticks_per_frame))

            self.state.is_running = True
            self._stop_event.clear()

            self.time_thread = threading.Thread(target=self._time_loop, daemon=True)
            self.time_thread.start()

            logger.info(
                f"Time flow started: {self.state.frame_rate} fps, "
                f"{self.state.ticks_per_frame} ticks/frame"
            )
            return True

    def stop_time_flow(self) -> bool:
        """Stop autonomous time flow"""
        with self.lock:
            if not self.state.is_running:
                return False
            self.state.is_running = False
            self._stop_event.set()
            thread = self.time_thread
            self.time_thread = None

        # Joined outside the lock so a frame in progress can finish
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=1.0)
        logger.info(f"Time flow stopped at tick {self.state.current_tick}")
        return True

    def pause(self) -> bool:
        return self.stop_time_flow()

    def resume(self) -> bool:
        return self.start_time_flow()

    def _time_loop(self):
        """Internal time loop: one frame per 1/frame_rate seconds"""
        while not self._stop_event.is_set():
            start_time = time.time()

            self.do_frame()

            elapsed = time.time() - start_time
            sleep_time = max(0.0, 1.0 / self.state.frame_rate - elapsed)
            if sleep_time > 0:
                self._stop_event.wait(sleep_time)

    def do_tick(self) -> Dict[str, Any]:
        """Execute a single simulation tick"""
        with self.lock:
            start_time = time.perf_counter()
            summary = self.network.run_tick()
            summary["execution_time_ms"] = (time.perf_counter() - start_time) * 1000

            self.state.current_tick = self.network.current_tick
            self.state.last_tick_time = time.time()
            return summary

    def do_n_ticks(self, n: int) -> List[Dict[str, Any]]:
        """Execute N simulation ticks"""
        return [self.do_tick() for _ in range(max(0, int(n)))]

    def do_frame(self) -> List[Dict[str, Any]]:
        """Run the ticks of one rendered frame (none while paused at speed 0)"""
        with self.lock:
            return self.do_n_ticks(self.state.ticks_per_frame)

    def set_speed(self, ticks_per_frame: int) -> None:
        with self.lock:
            self.state.ticks_per_frame = max(0, int(ticks_per_frame))

    # ------------------------------------------------------------------
    # Circuit management
    # ------------------------------------------------------------------

    def import_circuit(self, config_file: Union[str, Path]) -> bool:
        """Import circuit from JSON file, replacing the current one"""
        with self.lock:
            try:
                CircuitConfig.load_circuit_config(config_file, self.network)
            except (OSError, TypeError, ValueError) as e:
                # json.JSONDecodeError is a ValueError
                logger.error(f"Error importing circuit: {e}")
                return False
            self.state.current_tick = self.network.current_tick
            return True

    def export_circuit(
        self, config_file: Union[str, Path], metadata: Optional[Dict] = None
    ) -> bool:
        """Export current circuit to JSON file"""
        with self.lock:
            if metadata is None:
                metadata = {
                    "name": f"Circuit Export - Tick {self.state.current_tick}",
                    "exported_at": time.strftime("%Y-%m-%d %H:%M:%S"),
                }
            try:
                CircuitConfig.save_circuit_config(self.network, config_file, metadata)
            except (OSError, TypeError, ValueError) as e:
                logger.error(f"Error exporting circuit: {e}")
                return False
            return True

    def load_preset(self, name: str, seed: Optional[int] = None) -> bool:
        with self.lock:
            created = load_preset(self.network, name, seed=seed)
            self.state.current_tick = self.network.current_tick
            return created is not None

    def spawn_gate(self, kind: str, x: float = 0.0, y: float = 0.0) -> Optional[Dict]:
        with self.lock:
            return spawn_logic_gate(self.network, kind, x, y)

    def reset(self) -> None:
        """Reset dynamic state, keeping the circuit"""
        with self.lock:
            self.network.reset_simulation()
            self.state.current_tick = 0

    def clear(self) -> None:
        with self.lock:
            self.network.clear()
            self.state.current_tick = 0

    # ------------------------------------------------------------------
    # Editing, serialized with the ticks
    # ------------------------------------------------------------------

    def create(self, kind: str, params: Any = None, position=(0.0, 0.0)):
        with self.lock:
            return self.network.create(kind, params, position)

    def connect(self, source_id: int, target_id: int, **params: Any):
        with self.lock:
            return self.network.connect(source_id, target_id, **params)

    def destroy(self, entity_id: int) -> bool:
        with self.lock:
            return self.network.destroy(entity_id)

    def set_parameter(self, entity_id: int, name: str, value: Any) -> bool:
        with self.lock:
            return self.network.set_parameter(entity_id, name, value)

    def trigger(self, entity_id: int) -> bool:
        with self.lock:
            return self.network.trigger(entity_id)

    def get_entity(self, entity_id: int) -> Optional[Dict[str, Any]]:
        """Snapshot of one entity, probe or note"""
        with self.lock:
            entity = self.network.get(entity_id)
            if entity is not None:
                return entity.snapshot()
            record = self.network.probes.get(entity_id) or self.network.notes.get(
                entity_id
            )
            return vars(record).copy() if record is not None else None

    def get_network_state(self) -> Dict[str, Any]:
        """Get comprehensive network state"""
        with self.lock:
            state = self.network.get_network_state()
            state["core"] = {
                "is_running": self.state.is_running,
                "current_tick": self.state.current_tick,
                "frame_rate": self.state.frame_rate,
                "ticks_per_frame": self.state.ticks_per_frame,
                "last_tick_time": self.state.last_tick_time,
            }
            return state

    def set_log_level(self, level: str) -> bool:
        """Set log level for the engine and every entity logger"""
        if level.upper() not in VALID_LOG_LEVELS:
            logger.warning(
                f"Invalid log level: {level}. Valid levels: {', '.join(VALID_LOG_LEVELS)}"
            )
            return False

        setup_circuit_logger(level)
        with self.lock:
            self.network.set_log_level(level)
        return True
