"""
Tests for the leaky integrate-and-fire neuron.
"""

import numpy as np
import pytest

from spikecircuit.neuron import (
    RESET_VOLTAGE,
    SPIKE_FLASH_TICKS,
    THETA_FLOOR,
    Neuron,
    NeuronParameters,
)


def make_neuron(**params) -> Neuron:
    return Neuron(NeuronParameters(**params), log_level="WARNING")


class TestNeuronParameters:
    """Tests for parameter defaults and validation."""

    def test_defaults(self):
        params = NeuronParameters()
        assert params.tau == 20.0
        assert params.threshold == -0.55
        assert params.bias == -0.7
        assert params.refractory_period == 1

    @pytest.mark.parametrize("tau", [0.0, -5.0])
    def test_non_positive_tau_rejected(self, tau):
        with pytest.raises(ValueError, match="tau must be positive"):
            NeuronParameters(tau=tau)

    def test_invalid_entity_id_rejected(self):
        with pytest.raises(ValueError, match="positive integer"):
            Neuron(entity_id=0)

    def test_state_is_slotted(self):
        neuron = make_neuron()
        assert not hasattr(neuron, "__dict__")
        with pytest.raises(AttributeError):
            neuron.membrane = 1.0


class TestIntegration:
    """Tests for the Euler step and spike decision."""

    def test_initial_state(self):
        neuron = make_neuron()
        assert neuron.voltage == 0.0
        assert not neuron.spiked
        assert not neuron.is_refractory

    def test_euler_step_without_spike(self):
        neuron = make_neuron(threshold=10.0)
        neuron.input_current = 0.5
        neuron.update(1)
        # V += (bias + input - V) / tau
        assert neuron.voltage == pytest.approx((-0.7 + 0.5) / 20.0)
        assert not neuron.spiked

    def test_rest_at_bias_is_stable(self):
        neuron = make_neuron()
        neuron.voltage = neuron.params.bias
        for tick in range(1, 50):
            assert not neuron.update(tick)
        assert neuron.voltage == pytest.approx(-0.7)

    def test_spike_resets_voltage_and_arms_flash(self):
        neuron = make_neuron()
        # Starting at 0 is already above the default threshold
        assert neuron.update(1)
        assert neuron.spiked
        assert neuron.voltage == pytest.approx(RESET_VOLTAGE)
        assert neuron.flash_timer == SPIKE_FLASH_TICKS - 1
        assert neuron.refractory_timer == 1

    def test_threshold_crossing_is_inclusive(self):
        neuron = make_neuron(tau=1.0, threshold=0.3, bias=0.3)
        neuron.voltage = 0.0
        # tau = 1 jumps straight to I = bias = threshold
        assert neuron.update(1)


class TestRefractory:
    """Tests for the refractory state."""

    def test_refractory_enforcement(self):
        neuron = make_neuron(threshold=-0.55, bias=-0.7, tau=20.0, refractory_period=5)
        assert neuron.update(1)

        for tick in range(2, 7):
            neuron.input_current = 100.0  # Ignored while refractory
            assert not neuron.update(tick)
            assert not neuron.spiked
            assert neuron.voltage == pytest.approx(-0.8)

        assert not neuron.is_refractory
        neuron.input_current = 0.0
        neuron.update(7)
        # Integration resumes from the clamped voltage
        assert neuron.voltage == pytest.approx(-0.8 + (-0.7 + 0.8) / 20.0)

    def test_zero_refractory_period_can_fire_every_tick(self):
        neuron = make_neuron(bias=5.0, tau=1.0, refractory_period=0)
        spikes = [neuron.update(tick) for tick in range(1, 6)]
        assert all(spikes)


class TestRateTracking:
    """Tests for the firing-rate average and sliding threshold."""

    def test_theta_floor_when_silent(self):
        neuron = make_neuron()
        neuron.voltage = neuron.params.bias
        for tick in range(1, 200):
            neuron.update(tick)
            assert neuron.theta >= THETA_FLOOR
        assert neuron.theta == THETA_FLOOR
        assert neuron.avg_firing_rate == 0.0

    def test_rate_update_after_single_spike(self):
        neuron = make_neuron()
        neuron.update(1)
        assert neuron.avg_firing_rate == pytest.approx(1.0 / 1000.0)
        assert neuron.theta == pytest.approx(max(1e-6, (1.0 / 1000.0) ** 2))

    def test_theta_tracks_rate_squared(self):
        neuron = make_neuron(bias=1.0)
        for tick in range(1, 501):
            neuron.update(tick)
            assert neuron.theta >= THETA_FLOOR
        assert neuron.avg_firing_rate > 0.01
        assert neuron.theta == pytest.approx(neuron.avg_firing_rate**2)


class TestHistoryAndSnapshot:
    """Tests for the voltage trace and read-only state."""

    def test_history_is_bounded(self):
        neuron = Neuron(history_depth=10, log_level="WARNING")
        for tick in range(1, 30):
            neuron.update(tick)
        history = neuron.get_history()
        assert isinstance(history, np.ndarray)
        assert len(history) == 10
        assert history[-1] == pytest.approx(neuron.voltage)

    def test_reset_state_keeps_parameters(self):
        neuron = make_neuron(tau=7.0, refractory_period=4)
        for tick in range(1, 10):
            neuron.update(tick)
        neuron.reset_state()
        assert neuron.voltage == 0.0
        assert neuron.refractory_timer == 0
        assert neuron.avg_firing_rate == 0.0
        assert neuron.theta == THETA_FLOOR
        assert np.all(neuron.get_history() == 0.0)
        assert neuron.params.tau == 7.0

    def test_snapshot_fields(self):
        neuron = make_neuron()
        neuron.update(1)
        snap = neuron.snapshot()
        assert snap["id"] == neuron.id
        assert snap["kind"] == "neuron"
        assert snap["spiked"] is True
        assert snap["params"]["refractory_period"] == 1
        assert len(snap["history"]) == 100
