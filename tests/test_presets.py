"""
Tests for preset circuits and logic-gate templates.
"""

import pytest

from spikecircuit.presets import (
    BALANCED_NEURONS,
    GATE_KINDS,
    PRESETS,
    load_preset,
    spawn_logic_gate,
)


def spike_ticks(network, ticks):
    """Run the network and collect the ticks each neuron fired on."""
    fired = {neuron_id: [] for neuron_id in network.neurons}
    for summary in network.tick(ticks):
        for neuron_id in summary["fired_neurons"]:
            fired[neuron_id].append(summary["tick"])
    return fired


class TestPresets:
    """Tests for the named presets."""

    def test_registry(self):
        assert set(PRESETS) == {"chain", "oscillator", "balanced"}

    def test_unknown_preset_leaves_network_alone(self, network):
        neuron = network.create("neuron")
        assert load_preset(network, "ring") is None
        assert neuron.id in network

    def test_preset_clears_network(self, network):
        old = network.create("neuron")
        created = load_preset(network, "chain")
        assert old.id not in network
        assert sorted(network.neurons) == sorted(created["neurons"])

    def test_chain(self, network):
        created = load_preset(network, "chain", center=(100, 50))
        n1, n2, n3 = created["neurons"]
        assert len(created["synapses"]) == 2
        assert network.find_synapse(n1, n2) is not None
        assert network.find_synapse(n2, n3) is not None
        assert network.find_synapse(n1, n3) is None
        assert network.neurons[n2].position == (100.0, 50.0)

    def test_oscillator_alternates(self, network):
        created = load_preset(network, "oscillator")
        n1, n2 = created["neurons"]
        assert network.find_synapse(n1, n2) is not None
        assert network.find_synapse(n2, n1) is not None

        fired = spike_ticks(network, 200)
        assert len(fired[n1]) >= 2
        assert len(fired[n2]) >= 2
        assert set(fired[n1]).isdisjoint(fired[n2])

        # Merge both trains and check that the firing neuron strictly alternates
        events = sorted([(t, n1) for t in fired[n1]] + [(t, n2) for t in fired[n2]])
        order = [neuron_id for _, neuron_id in events]
        assert order[0] == n1
        assert all(a != b for a, b in zip(order, order[1:]))

    def test_balanced_is_seeded(self, network):
        first = load_preset(network, "balanced", seed=42)
        weights_first = sorted(s.weight for s in network.synapses.values())
        biases_first = [n.params.bias for n in network.neurons.values()]

        second = load_preset(network, "balanced", seed=42)
        assert len(second["synapses"]) == len(first["synapses"])
        assert sorted(s.weight for s in network.synapses.values()) == weights_first
        assert [n.params.bias for n in network.neurons.values()] == biases_first

    def test_balanced_structure(self, network):
        created = load_preset(network, "balanced", seed=3)
        assert len(created["neurons"]) == BALANCED_NEURONS
        assert 1 <= len(created["synapses"]) <= 15
        for neuron in network.neurons.values():
            assert 0.9 <= neuron.params.bias < 1.1
        for synapse in network.synapses.values():
            assert synapse.source_id != synapse.target_id
            assert synapse.weight in (0.8, -0.8)


class TestLogicGates:
    """Tests for gate templates."""

    def test_gate_kinds(self):
        assert GATE_KINDS == ("and", "or", "not")

    @pytest.mark.parametrize("kind, threshold, label", [("and", 1.8, "AND Gate"), ("or", 0.8, "OR Gate")])
    def test_and_or_templates(self, network, kind, threshold, label):
        created = spawn_logic_gate(network, kind, 200, 100)
        in_a, in_b, out = created["neurons"]
        output = network.neurons[out]
        assert output.params.threshold == threshold
        assert output.params.refractory_period == 1
        assert network.find_synapse(in_a, out).weight == 1.0
        assert network.find_synapse(in_b, out).weight == 1.0

        (note_id,) = created["notes"]
        note = network.notes[note_id]
        assert note.text == label
        assert note.minimized is True
        assert note.target_ids == [in_a, in_b, out]

    def test_not_template(self, network):
        created = spawn_logic_gate(network, "NOT")
        inp, out = created["neurons"]
        output = network.neurons[out]
        assert output.params.bias == 1.5
        assert output.params.refractory_period == 3
        synapse = network.find_synapse(inp, out)
        assert synapse.weight == -1.0
        assert not synapse.excitatory
        assert network.notes[created["notes"][0]].text == "NOT Gate"

    def test_not_output_fires_on_its_own(self, network):
        created = spawn_logic_gate(network, "not")
        inp, out = created["neurons"]
        network.set_parameter(inp, "voltage", -0.7)
        fired = spike_ticks(network, 50)
        assert len(fired[out]) >= 3
        assert fired[inp] == []

    def test_unknown_gate(self, network):
        assert spawn_logic_gate(network, "xor") is None
        assert network.node_ids() == []

    def test_gates_do_not_clear(self, network):
        existing = network.create("neuron")
        spawn_logic_gate(network, "and")
        spawn_logic_gate(network, "or", 300, 0)
        assert existing.id in network
        assert len(network.neurons) == 7
        assert len(network.notes) == 2
