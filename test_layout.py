"""Tests for the tree layout engine."""

import pytest

from chartcanvas.layout import (
    assign_levels,
    build_adjacency,
    compute_layout,
    compute_leaf_weights,
    find_roots,
)
from chartcanvas.normalizer import NormalizedConnection, NormalizedNode
from chartcanvas.types import Point


def _decision_diagram(yes_first=True):
    nodes = [
        {"id": "start", "type": "start"},
        {"id": "check", "type": "decision"},
        {"id": "yes", "type": "process"},
        {"id": "no", "type": "process"},
        {"id": "end", "type": "end"},
    ]
    branches = [
        {"sourceId": "check", "targetId": "yes", "label": "Yes"},
        {"sourceId": "check", "targetId": "no", "label": "No"},
    ]
    if not yes_first:
        branches.reverse()
    connections = [
        {"sourceId": "start", "targetId": "check"},
        *branches,
        {"sourceId": "yes", "targetId": "end"},
        {"sourceId": "no", "targetId": "end"},
    ]
    return nodes, connections


class TestGraphAnalysis:
    def test_roots_are_nodes_without_incoming_edges(self):
        outgoing, incoming = build_adjacency(["a", "b", "c"], [{"from": "a", "to": "b"}])
        assert find_roots(["a", "b", "c"], incoming) == ["a", "c"]
        assert [link.node_id for link in outgoing["a"]] == ["b"]

    def test_first_node_is_forced_root_when_every_node_has_a_parent(self):
        _, incoming = build_adjacency(["a", "b"], [{"from": "a", "to": "b"}, {"from": "b", "to": "a"}])
        assert find_roots(["a", "b"], incoming) == ["a"]

    def test_unknown_endpoints_are_ignored(self):
        outgoing, incoming = build_adjacency(["a"], [{"source": "a", "target": "ghost"}])
        assert outgoing == {"a": []}
        assert incoming == {"a": []}

    def test_levels_keep_first_discovery(self):
        node_ids = ["a", "b", "c"]
        outgoing, incoming = build_adjacency(
            node_ids,
            [{"from": "a", "to": "b"}, {"from": "b", "to": "c"}, {"from": "a", "to": "c"}],
        )
        levels = assign_levels(node_ids, find_roots(node_ids, incoming), outgoing)
        assert levels == {"a": 0, "b": 1, "c": 1}

    def test_unreachable_nodes_go_below_deepest_level(self):
        node_ids = ["a", "b", "loop"]
        outgoing, incoming = build_adjacency(
            node_ids,
            [{"from": "a", "to": "b"}, {"from": "loop", "to": "loop"}],
        )
        roots = find_roots(node_ids, incoming)
        assert roots == ["a"]
        assert assign_levels(node_ids, roots, outgoing)["loop"] == 2

    def test_leaf_weights(self):
        nodes, connections = _decision_diagram()
        node_ids = [node["id"] for node in nodes]
        outgoing, incoming = build_adjacency(node_ids, connections)
        weights = compute_leaf_weights(node_ids, find_roots(node_ids, incoming), outgoing)
        assert weights == {"start": 2, "check": 2, "yes": 1, "no": 1, "end": 1}

    def test_leaf_weights_terminate_on_cycles(self):
        node_ids = ["a", "b"]
        outgoing, incoming = build_adjacency(node_ids, [{"from": "a", "to": "b"}, {"from": "b", "to": "a"}])
        weights = compute_leaf_weights(node_ids, find_roots(node_ids, incoming), outgoing)
        assert weights == {"a": 1, "b": 1}

    def test_leaf_weights_on_three_node_cycle_are_positive(self):
        node_ids = ["a", "b", "c"]
        outgoing, incoming = build_adjacency(
            node_ids,
            [{"from": "a", "to": "b"}, {"from": "b", "to": "c"}, {"from": "c", "to": "a"}],
        )
        weights = compute_leaf_weights(node_ids, find_roots(node_ids, incoming), outgoing)
        assert set(weights) == {"a", "b", "c"}
        assert all(isinstance(weight, int) and weight >= 1 for weight in weights.values())

    def test_leaf_weights_on_long_chain(self):
        node_ids = [f"n{i}" for i in range(3000)]
        links = [{"from": a, "to": b} for a, b in zip(node_ids, node_ids[1:])]
        outgoing, incoming = build_adjacency(node_ids, links)
        weights = compute_leaf_weights(node_ids, find_roots(node_ids, incoming), outgoing)
        assert set(weights.values()) == {1}

    def test_leaf_weights_on_densely_shared_layers(self):
        # Every node links to both nodes of the next layer, so paths double per layer.
        layers = [[f"l{depth}a", f"l{depth}b"] for depth in range(40)]
        node_ids = [node_id for layer in layers for node_id in layer]
        links = [
            {"from": parent, "to": child}
            for upper, lower in zip(layers, layers[1:])
            for parent in upper
            for child in lower
        ]
        outgoing, incoming = build_adjacency(node_ids, links)
        weights = compute_leaf_weights(node_ids, find_roots(node_ids, incoming), outgoing)
        assert weights["l39a"] == 1
        assert weights["l38b"] == 2
        assert weights["l0a"] == 2 ** 39


class TestComputeLayout:
    def test_empty_input(self):
        result = compute_layout([], [])
        assert result.positions == {}
        assert result.canvas_width == 2000
        assert result.canvas_height == 2000

    def test_decision_diagram_positions(self):
        nodes, connections = _decision_diagram()
        result = compute_layout(nodes, connections, canvas_width=1200)

        assert result.levels == {"start": 0, "check": 1, "yes": 2, "no": 2, "end": 3}
        assert result.positions["start"] == Point(525.0, 60.0)
        assert result.positions["check"] == Point(525.0, 220.0)
        assert result.positions["yes"] == Point(400.0, 380.0)
        assert result.positions["no"] == Point(650.0, 380.0)
        assert result.positions["end"].y == 540.0
        assert (result.canvas_width, result.canvas_height) == (2000, 2000)

    def test_yes_branch_is_placed_left_regardless_of_order(self):
        nodes, connections = _decision_diagram(yes_first=False)
        result = compute_layout(nodes, connections)
        assert result.positions["yes"].x < result.positions["no"].x

    def test_layout_is_deterministic(self):
        nodes, connections = _decision_diagram()
        first = compute_layout(nodes, connections)
        second = compute_layout(nodes, connections)
        assert first.positions == second.positions
        assert list(first.levels) == list(second.levels)

    def test_cycles_still_get_positions(self):
        result = compute_layout(
            [{"id": "a"}, {"id": "b"}, {"id": "c"}],
            [{"from": "a", "to": "b"}, {"from": "b", "to": "c"}, {"from": "c", "to": "a"}],
        )
        assert set(result.positions) == {"a", "b", "c"}
        assert result.levels == {"a": 0, "b": 1, "c": 2}

    def test_long_chain_is_laid_out(self):
        nodes = [{"id": f"n{i}"} for i in range(1000)]
        connections = [{"from": f"n{i}", "to": f"n{i + 1}"} for i in range(999)]
        result = compute_layout(nodes, connections)
        assert len(result.positions) == 1000
        assert result.levels["n999"] == 999
        assert result.positions["n999"].x == pytest.approx(result.positions["n0"].x)

    def test_multi_branch_decision_spreads_children(self):
        nodes = [{"id": "d", "type": "decision"}] + [{"id": f"c{i}"} for i in range(3)]
        connections = [{"from": "d", "to": f"c{i}"} for i in range(3)]
        result = compute_layout(nodes, connections)
        xs = [result.positions[f"c{i}"].x for i in range(3)]
        assert xs == sorted(xs)
        # Three equal branches of 350 with 50 between each.
        assert xs[1] - xs[0] == pytest.approx(400.0)
        assert xs[2] - xs[1] == pytest.approx(400.0)

    def test_canvas_grows_with_content(self):
        result = compute_layout([{"id": "a"}, {"id": "b"}], [], canvas_width=5000)
        assert result.positions["a"].x == 1225.0
        assert result.positions["b"].x == 3625.0
        assert result.canvas_width == 2950.0
        assert result.canvas_height == 2000.0

    def test_accepts_normalized_objects(self):
        nodes = [NormalizedNode(id="node1", text="A"), NormalizedNode(id="node2", text="B")]
        connections = [NormalizedConnection(id="conn1", source_id="node1", target_id="node2")]
        result = compute_layout(nodes, connections)
        assert result.levels == {"node1": 0, "node2": 1}

    def test_duplicate_and_missing_ids_are_skipped(self):
        result = compute_layout([{"id": "a"}, {"id": "a"}, {"text": "no id"}, None], [])
        assert list(result.positions) == ["a"]
