"""
Pytest fixtures for circuit tests.
"""

import sys
import tempfile
from pathlib import Path

import pytest

# Add the project root to the path
sys.path.insert(0, str(Path(__file__).parent.parent))

from spikecircuit.network import CircuitNetwork


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test outputs."""
    with tempfile.TemporaryDirectory() as tmp:
        yield Path(tmp)


@pytest.fixture
def network():
    """Empty network with quiet entity loggers."""
    return CircuitNetwork(log_level="WARNING")


@pytest.fixture
def resting_pair(network):
    """Two neurons held at rest (voltage = bias) so neither fires on its own.

    Every neuron starts at voltage 0, which is above the default threshold,
    so fixtures that need a quiet circuit pull the voltage down to bias.
    """
    a = network.create("neuron")
    b = network.create("neuron")
    for neuron in (a, b):
        neuron.voltage = neuron.params.bias
    return a, b


@pytest.fixture
def sample_settings_yaml():
    """Return a sample settings YAML."""
    return """
log_level: debug
history_depth: 50
max_history: 200
frame_rate: 30
ticks_per_frame: 2
preset: oscillator
cli_history_file: ".test_history"
"""
