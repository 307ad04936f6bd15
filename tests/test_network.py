"""
Tests for the circuit registry, scheduler and editing API.
"""

import numpy as np
import pytest

from spikecircuit.entity import EntityKind
from spikecircuit.neuron import THETA_FLOOR, NeuronParameters
from spikecircuit.presets import load_preset
from spikecircuit.sources import PulseEmitter, WaveformKind
from spikecircuit.synapse import PlasticityEvent, PlasticityMode


class TestCreateAndDestroy:
    """Tests for entity lifecycle."""

    def test_create_assigns_fresh_ids(self, network):
        a = network.create("neuron")
        b = network.create(EntityKind.GENERATOR)
        c = network.create("output_sink", position=(5, 6))
        assert len({a.id, b.id, c.id}) == 3
        assert a.id < b.id < c.id
        assert network.get(c.id) is c
        assert c.position == (5.0, 6.0)

    def test_create_with_dict_params(self, network):
        gen = network.create("generator", {"kind": "square", "frequency": 0.5})
        assert gen.params.kind is WaveformKind.SQUARE
        assert gen.params.frequency == 0.5

    def test_create_with_dataclass_params(self, network):
        neuron = network.create("neuron", NeuronParameters(tau=5.0))
        assert neuron.params.tau == 5.0

    @pytest.mark.parametrize(
        "kind, params",
        [
            ("dendrite", None),
            ("synapse", None),
            ("neuron", {"tau": 0.0}),
            ("neuron", {"not_a_field": 1.0}),
            ("generator", {"kind": "sawtooth"}),
        ],
    )
    def test_invalid_create_is_dropped(self, network, kind, params):
        assert network.create(kind, params) is None
        assert network.node_ids() == []

    def test_destroy_removes_referencing_entities(self, network):
        a = network.create("neuron")
        b = network.create("neuron")
        c = network.create("neuron")
        network.connect(a.id, b.id)
        network.connect(b.id, a.id)
        keep = network.connect(a.id, c.id)
        probe = network.add_probe(b.id)
        note = network.add_note("pair", target_ids=[a.id, b.id])

        assert network.destroy(b.id)
        assert b.id not in network
        assert list(network.synapses) == [keep.id]
        assert probe.id not in network.probes
        assert note.target_ids == [a.id]

    def test_destroy_synapse_allows_reconnect(self, network):
        a = network.create("neuron")
        b = network.create("neuron")
        synapse = network.connect(a.id, b.id)
        assert network.destroy(synapse.id)
        assert network.find_synapse(a.id, b.id) is None
        assert network.connect(a.id, b.id) is not None

    def test_destroy_unknown_id(self, network):
        assert network.destroy(987654321) is False


class TestConnect:
    """Tests for synapse creation rules."""

    def test_connect_is_idempotent(self, network):
        a = network.create("neuron")
        b = network.create("neuron")
        first = network.connect(a.id, b.id)
        assert first is not None
        assert network.connect(a.id, b.id, weight=0.9) is None
        assert len(network.synapses) == 1
        assert network.find_synapse(a.id, b.id) is first
        assert first.weight == 0.5

    def test_reverse_direction_is_independent(self, network):
        a = network.create("neuron")
        b = network.create("neuron")
        network.connect(a.id, b.id)
        network.connect(b.id, a.id)
        assert len(network.synapses) == 2
        assert network.get_network_statistics()["reciprocal_pairs"] == 1

    def test_self_loop_allowed(self, network):
        a = network.create("neuron")
        assert network.connect(a.id, a.id) is not None

    def test_missing_endpoint(self, network):
        a = network.create("neuron")
        assert network.connect(a.id, 987654321) is None
        assert network.connect(987654321, a.id) is None
        assert network.synapses == {}

    def test_capability_checks(self, network):
        neuron = network.create("neuron")
        gen = network.create("generator")
        sink = network.create("output_sink")
        assert network.connect(neuron.id, gen.id) is None  # generator is not a sink
        assert network.connect(sink.id, neuron.id) is None  # sink is not a source
        assert network.connect(gen.id, sink.id) is not None
        assert network.connect(neuron.id, sink.id) is not None

    def test_default_weight_depends_on_source(self, network):
        neuron = network.create("neuron")
        target = network.create("neuron")
        button = network.create("pulse_emitter")
        assert network.connect(neuron.id, target.id).weight == 0.5
        assert network.connect(button.id, target.id).weight == 1.0

    def test_invalid_synapse_parameters(self, network):
        a = network.create("neuron")
        b = network.create("neuron")
        assert network.connect(a.id, b.id, plasticity_mode="bogus") is None
        assert network.connect(a.id, b.id, unknown=1.0) is None
        assert network.synapses == {}


class TestSetParameter:
    """Tests for parameter edits between ticks."""

    def test_set_neuron_parameter(self, network):
        neuron = network.create("neuron")
        assert network.set_parameter(neuron.id, "threshold", "0.25")
        assert neuron.params.threshold == 0.25
        assert network.set_parameter(neuron.id, "refractory_period", 3.0)
        assert neuron.params.refractory_period == 3

    def test_non_positive_tau_rejected(self, network):
        neuron = network.create("neuron")
        assert not network.set_parameter(neuron.id, "tau", 0)
        assert not network.set_parameter(neuron.id, "tau", -1.0)
        assert neuron.params.tau == 20.0

    def test_unknown_parameter_rejected(self, network):
        neuron = network.create("neuron")
        assert not network.set_parameter(neuron.id, "capacitance", 1.0)
        assert not network.set_parameter(987654321, "tau", 1.0)

    def test_weight_edit_is_clamped_to_sign(self, network):
        a = network.create("neuron")
        b = network.create("neuron")
        synapse = network.connect(a.id, b.id, weight=-0.5)
        assert network.set_parameter(synapse.id, "weight", 0.7)
        assert synapse.weight == 0.0
        assert network.set_parameter(synapse.id, "weight", -4.0)
        assert synapse.weight == -1.0

    def test_plasticity_mode_and_waveform(self, network):
        a = network.create("neuron")
        gen = network.create("generator")
        synapse = network.connect(a.id, a.id)
        assert network.set_parameter(synapse.id, "plasticity_mode", "bcm")
        assert synapse.params.plasticity_mode is PlasticityMode.BCM
        assert not network.set_parameter(synapse.id, "plasticity_mode", "hebbian")
        assert network.set_parameter(gen.id, "kind", "pulse")
        assert gen.params.kind is WaveformKind.PULSE

    def test_voltage_can_be_preset(self, network):
        neuron = network.create("neuron")
        assert network.set_parameter(neuron.id, "voltage", 0.9)
        assert neuron.voltage == 0.9

    def test_trigger(self, network):
        button = network.create("pulse_emitter")
        neuron = network.create("neuron")
        assert network.trigger(button.id)
        assert isinstance(button, PulseEmitter) and button.is_active
        assert not network.trigger(neuron.id)


class TestScheduler:
    """Tests for the fixed phase order of a tick."""

    def test_one_tick_spike_delay(self, network, resting_pair):
        a, b = resting_pair
        b.params.threshold = 10.0
        network.connect(a.id, b.id, decay=0.0)

        for _ in range(3):
            summary = network.run_tick()
            assert summary["fired_neurons"] == []
            assert b.input_current == 0.0

        a.voltage = 1.0  # Forces a spike in the next neuron phase
        summary = network.run_tick()
        assert summary["fired_neurons"] == [a.id]
        assert b.input_current == 0.0

        network.run_tick()
        assert b.input_current > 0.0

    def test_direct_injection_same_tick(self, network):
        gen = network.create("generator", {"kind": "constant", "amplitude": 1.0, "offset": 0.0})
        neuron = network.create("neuron")
        network.connect(gen.id, neuron.id, weight=1.0)
        network.run_tick()
        assert neuron.input_current == pytest.approx(1.0)

    def test_sink_driven_by_source_same_tick(self, network):
        button = network.create("pulse_emitter", {"voltage": 1.0, "pulse_duration": 2})
        sink = network.create("output_sink")
        network.connect(button.id, sink.id)
        network.trigger(button.id)

        summaries = network.tick(4)
        assert summaries[0]["sink_rising_edges"] == [sink.id]
        assert summaries[1]["active_sinks"] == [sink.id]
        assert summaries[1]["sink_rising_edges"] == []
        assert summaries[2]["active_sinks"] == []

    def test_refractory_in_network(self, network):
        neuron = network.create("neuron", {"refractory_period": 5})
        summaries = network.tick(7)
        assert summaries[0]["fired_neurons"] == [neuron.id]
        for summary in summaries[1:6]:
            assert summary["fired_neurons"] == []
        assert network.get_history(neuron.id)["entity"]["voltage"][1:6] == pytest.approx([-0.8] * 5)

    def test_inputs_reset_every_tick(self, network):
        button = network.create("pulse_emitter", {"pulse_duration": 1})
        neuron = network.create("neuron")
        network.connect(button.id, neuron.id)
        network.trigger(button.id)
        network.run_tick()
        assert neuron.input_current == pytest.approx(1.5)
        network.run_tick()
        assert neuron.input_current == 0.0

    def test_plasticity_events_reported(self, network):
        a = network.create("neuron")
        b = network.create("neuron")
        synapse = network.connect(a.id, b.id, plasticity_mode="stdp")

        first = network.run_tick()  # Both fire from their initial voltage
        assert sorted(first["fired_neurons"]) == sorted([a.id, b.id])
        assert first["plasticity_events"] == []

        second = network.run_tick()
        assert len(second["plasticity_events"]) == 1
        event = second["plasticity_events"][0]
        assert isinstance(event, PlasticityEvent)
        assert event.synapse_id == synapse.id
        assert event.direction == 1
        assert synapse.weight == pytest.approx(0.51)

    def test_tick_count(self, network):
        network.create("neuron")
        assert network.tick(0) == []
        assert network.current_tick == 0
        summaries = network.tick(3)
        assert [s["tick"] for s in summaries] == [1, 2, 3]
        assert set(summaries[0]) == {
            "tick",
            "fired_neurons",
            "active_sinks",
            "sink_rising_edges",
            "plasticity_events",
            "total_activity",
        }

    def test_run_simulation_progress(self, network):
        network.create("neuron")
        calls = []
        log = network.run_simulation(25, lambda i, n, activity: calls.append(i))
        assert len(log) == 25
        assert calls == [0, 10, 20]


class TestInvariants:
    """Invariants that must hold on arbitrary circuits."""

    def test_random_plastic_circuit(self, network):
        load_preset(network, "balanced", seed=7)
        a = next(iter(network.neurons))
        network.connect(a, a, weight=-0.3, decay=1.7)  # self-loop, over-decay
        for synapse in network.synapses.values():
            synapse.params.plasticity_mode = PlasticityMode.STDP
            synapse.params.learning_rate = 25.0
        signs = {sid: s.excitatory for sid, s in network.synapses.items()}

        for _ in range(300):
            network.run_tick()
            for sid, synapse in network.synapses.items():
                assert synapse.conductance >= 0.0
                if signs[sid]:
                    assert 0.0 <= synapse.weight <= 1.0
                else:
                    assert -1.0 <= synapse.weight <= 0.0
            for neuron in network.neurons.values():
                assert neuron.theta >= THETA_FLOOR


class TestStateAndHistory:
    """Tests for snapshots, history and reset."""

    def test_network_state(self, network):
        neuron = network.create("neuron")
        gen = network.create("generator")
        network.connect(gen.id, neuron.id)
        network.tick(2)
        state = network.get_network_state()
        assert state["current_tick"] == 2
        assert state["neurons"][neuron.id]["kind"] == "neuron"
        assert state["sources"][gen.id]["params"]["kind"] == "sine"
        assert len(state["synapses"]) == 1
        assert state["network_stats"]["num_neurons"] == 1

    def test_statistics(self, network):
        a = network.create("neuron")
        b = network.create("neuron")
        network.create("pulse_emitter")
        network.create("generator")
        network.create("output_sink")
        network.connect(a.id, b.id)
        network.add_note("hello")
        stats = network.get_network_statistics()
        assert stats["num_neurons"] == 2
        assert stats["num_generators"] == 1
        assert stats["num_pulse_emitters"] == 1
        assert stats["num_output_sinks"] == 1
        assert stats["num_synapses"] == 1
        assert stats["num_notes"] == 1
        assert stats["graph_density"] == pytest.approx(1 / 25)
        assert stats["reciprocal_pairs"] == 0

    def test_history(self, network):
        neuron = network.create("neuron")
        sink = network.create("output_sink")
        network.tick(5)
        history = network.get_history(neuron.id)
        assert history["ticks"] == [1, 2, 3, 4, 5]
        assert len(history["entity"]["voltage"]) == 5
        assert history["entity"]["spiked"][0] == 1
        assert network.get_history(sink.id)["entity"]["active"] == [0] * 5
        overall = network.get_history()
        assert overall["network_activity"][0] == 1

    def test_history_is_bounded(self):
        from spikecircuit.network import CircuitNetwork

        network = CircuitNetwork(max_history=10, log_level="WARNING")
        network.create("neuron")
        network.tick(30)
        assert network.get_history()["ticks"] == list(range(21, 31))

    def test_reset_simulation_keeps_topology(self, network):
        a = network.create("neuron")
        b = network.create("neuron")
        synapse = network.connect(a.id, b.id, plasticity_mode="stdp")
        network.tick(20)
        network.reset_simulation()

        assert network.current_tick == 0
        assert a.voltage == 0.0 and not a.spiked
        assert synapse.conductance == 0.0
        assert synapse.pre_trace == 0.0
        assert network.find_synapse(a.id, b.id) is synapse
        assert network.get_history()["ticks"] == []
        assert network.run_tick()["tick"] == 1

    def test_clear(self, network):
        a = network.create("neuron")
        network.connect(a.id, a.id)
        network.add_probe(a.id)
        network.tick(3)
        network.clear()
        assert network.node_ids() == []
        assert network.synapses == {}
        assert network.probes == {}
        assert network.current_tick == 0

    def test_annotations(self, network):
        a = network.create("neuron")
        gen = network.create("generator")
        assert network.add_probe(gen.id) is None
        probe = network.add_probe(a.id, (1, 2))
        assert probe.target_id == a.id
        note = network.add_note("text", (3, 4), [a.id, 987654321], minimized=True)
        assert note.target_ids == [a.id]
        assert note.minimized
        assert network.set_position(note.id, 10, 20)
        assert note.position == (10.0, 20.0)
