"""
Spike Circuit Package
Discrete-time simulation of small spiking-neuron circuits with conductance
synapses and STDP / BCM plasticity.
"""

# Import core entity functionality
from .entity import EntityKind, setup_circuit_logger
from .neuron import Neuron, NeuronParameters
from .sources import (
    Generator,
    GeneratorParameters,
    PulseEmitter,
    PulseEmitterParameters,
    SignalSource,
    WaveformKind,
)
from .sink import OutputSink, OutputSinkParameters
from .synapse import PlasticityEvent, PlasticityMode, Synapse, SynapseParameters

# Import network functionality
from .network import CircuitNetwork, NoteRecord, ProbeRecord

# Import configuration functionality
from .network_config import CircuitConfig
from .config import SimulationSettings, load_settings, load_settings_from_string
from .presets import PRESETS, load_preset, spawn_logic_gate

# Import core functionality
from .sim_core import SimulationCore, SimulationCoreState

__all__ = [
    # Entities
    "EntityKind",
    "setup_circuit_logger",
    "Neuron",
    "NeuronParameters",
    "Generator",
    "GeneratorParameters",
    "PulseEmitter",
    "PulseEmitterParameters",
    "SignalSource",
    "WaveformKind",
    "OutputSink",
    "OutputSinkParameters",
    "PlasticityEvent",
    "PlasticityMode",
    "Synapse",
    "SynapseParameters",
    # Network components
    "CircuitNetwork",
    "NoteRecord",
    "ProbeRecord",
    # Configuration components
    "CircuitConfig",
    "SimulationSettings",
    "load_settings",
    "load_settings_from_string",
    "PRESETS",
    "load_preset",
    "spawn_logic_gate",
    # Core components
    "SimulationCore",
    "SimulationCoreState",
]

__version__ = "0.1.0"
