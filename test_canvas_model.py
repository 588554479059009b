"""Tests for the CanvasModel Qt model."""

import json

import pytest
from PySide6.QtGui import QColor, QImage
from PySide6.QtTest import QTest

from chartcanvas import (
    CanvasError,
    CanvasModel,
    CanvasState,
    DanglingReferenceError,
    DiagramConnection,
    DiagramNode,
    GenerationInProgressError,
    NodeStyle,
)
from chartcanvas.layout import compute_layout
from chartcanvas.persistence import FileCanvasStore


class FakeStore:
    def __init__(self, auto_complete=True, error=None, payload=None):
        self.auto_complete = auto_complete
        self.error = error
        self.payload = payload
        self.saved = []
        self.pending = []

    def save_canvas_state(self, payload, done):
        self.saved.append(payload)
        if self.auto_complete:
            done(self.error)
        else:
            self.pending.append(done)

    def load_canvas_state(self):
        return self.payload


class RaisingStore(FakeStore):
    def save_canvas_state(self, payload, done):
        self.saved.append(payload)
        raise RuntimeError("connection reset")


class FakeGenerator:
    def __init__(self, response=None, error=None, defer=False):
        self.response = response
        self.error = error
        self.defer = defer
        self.requests = []
        self.pending = []

    def request_diagram(self, prompt, current_state, done):
        self.requests.append((prompt, current_state))
        if self.defer:
            self.pending.append(done)
        else:
            done(self.response, self.error)


class RaisingGenerator(FakeGenerator):
    def request_diagram(self, prompt, current_state, done):
        self.requests.append((prompt, current_state))
        raise RuntimeError("client crashed")


DECISION_RESPONSE = {
    "diagram": {
        "nodes": [
            {"id": "s", "text": "Start", "type": "start"},
            {"id": "q", "text": "Ready?", "type": "decision"},
            {"id": "y", "text": "Ship it", "type": "process"},
            {"id": "n", "text": "Fix it", "type": "process"},
            {"id": "e", "text": "Done", "type": "end"},
        ],
        "connections": [
            {"from": "s", "to": "q"},
            {"from": "q", "to": "y", "label": "Yes"},
            {"from": "q", "to": "n", "label": "No"},
            {"from": "y", "to": "e"},
            {"from": "n", "to": "e"},
        ],
    },
    "explanation": "A release check.",
}


@pytest.fixture
def empty_canvas_model(app):
    return CanvasModel()


@pytest.fixture
def two_node_model(app):
    model = CanvasModel()
    model.replace_state(CanvasState(elements=[
        DiagramNode(id="a", x=100.0, y=100.0, text="A"),
        DiagramNode(id="b", x=100.0, y=400.0, text="B"),
    ]))
    return model


def _node_by_text(model, text):
    for row in range(model.rowCount()):
        index = model.index(row, 0)
        if model.data(index, model.TextRole) == text:
            return model.getNode(model.data(index, model.IdRole))
    return None


class TestDataClasses:
    def test_node_defaults(self):
        node = DiagramNode(id="node_1", x=10.0, y=20.0)
        assert node.width == 150.0
        assert node.height == 80.0
        assert node.text == "New Node"

    def test_state_json_uses_wire_names(self):
        state = CanvasState(elements=[
            DiagramNode(id="a", x=1.0, y=2.0),
            DiagramNode(id="b", x=3.0, y=4.0),
            DiagramConnection(id="c", source_id="a", target_id="b", label="go"),
        ])
        data = json.loads(state.to_json())
        assert data["version"] == 1
        assert data["elements"][2] == {
            "id": "c",
            "type": "connection",
            "sourceId": "a",
            "targetId": "b",
            "label": "go",
            "style": {},
        }
        assert CanvasState.from_json(state.to_json()).to_dict() == state.to_dict()

    def test_integer_coordinates_serialize_stably(self):
        state = CanvasState(elements=[
            DiagramNode(id="a", x=100, y=200, width=150, height=80),
            DiagramNode(id="b", x=3, y=4),
            DiagramConnection(id="c", source_id="a", target_id="b"),
        ])
        payload = state.to_json()
        assert '"x":100.0,"y":200.0' in payload
        assert CanvasState.from_json(payload).to_json() == payload

    def test_validate_reports_dangling_connection(self):
        state = CanvasState(elements=[
            DiagramNode(id="a", x=0.0, y=0.0),
            DiagramConnection(id="c", source_id="a", target_id="missing"),
        ])
        with pytest.raises(DanglingReferenceError) as excinfo:
            state.validate()
        assert excinfo.value.node_id == "missing"

    def test_from_json_rejects_non_objects(self):
        with pytest.raises(ValueError):
            CanvasState.from_json("[1, 2, 3]")

    def test_unknown_element_types_are_skipped(self):
        state = CanvasState.from_dict({"elements": [{"type": "sticker", "id": "s"}, {"type": "node", "id": "n"}]})
        assert [el.id for el in state.elements] == ["n"]


class TestNodes:
    def test_empty_model(self, empty_canvas_model):
        assert empty_canvas_model.rowCount() == 0
        assert empty_canvas_model.count == 0
        assert empty_canvas_model.connections == []

    def test_first_node_is_centred_in_viewport(self, empty_canvas_model):
        node_id = empty_canvas_model.addNode(900.0, 900.0, "First")
        assert node_id.startswith("node_")
        node = empty_canvas_model.getNode(node_id)
        assert node.x == pytest.approx(525.0)
        assert node.y == pytest.approx(800.0 / 3 - 40.0)

    def test_later_nodes_keep_requested_position(self, empty_canvas_model):
        empty_canvas_model.addNode(0.0, 0.0, "First")
        node_id = empty_canvas_model.addNode(10.0, 20.0, "Second")
        index = empty_canvas_model.index(1, 0)
        assert empty_canvas_model.data(index, empty_canvas_model.IdRole) == node_id
        assert empty_canvas_model.data(index, empty_canvas_model.XRole) == 10.0
        assert empty_canvas_model.data(index, empty_canvas_model.YRole) == 20.0

    def test_zero_position_appends_below_lowest_node(self, two_node_model):
        node_id = two_node_model.addNode(0.0, 0.0, "")
        node = two_node_model.getNode(node_id)
        assert (node.x, node.y) == (100.0, 540.0)
        assert node.text == "New Node"

    def test_pointer_at_world_origin_places_node_there(self, two_node_model):
        node = two_node_model.getNode(two_node_model.addNodeAtPointer(0.0, 0.0))
        assert (node.x, node.y) == (0.0, 0.0)
        assert node.text == "New Node"

    def test_pointer_placement_follows_pan(self, two_node_model):
        two_node_model.panBy(40.0, 60.0)
        node = two_node_model.getNode(two_node_model.addNodeAtPointer(40.0, 60.0))
        assert (node.x, node.y) == (0.0, 0.0)

    def test_ids_are_unique(self, empty_canvas_model):
        ids = {empty_canvas_model.addNode(float(i), float(i), "N") for i in range(5)}
        assert len(ids) == 5

    def test_move_and_rename(self, two_node_model):
        two_node_model.moveNode("a", 5.0, 6.0)
        two_node_model.setNodeText("a", "Renamed")
        index = two_node_model.index(0, 0)
        assert two_node_model.data(index, two_node_model.XRole) == 5.0
        assert two_node_model.data(index, two_node_model.TextRole) == "Renamed"

    def test_unknown_ids_are_ignored(self, two_node_model):
        two_node_model.moveNode("nope", 1.0, 1.0)
        two_node_model.removeNode("nope")
        assert two_node_model.count == 2
        assert two_node_model.getNodeSnapshot("nope") == {}

    def test_remove_node_drops_its_connections(self, two_node_model):
        two_node_model.connectNodes("a", "b", "")
        two_node_model.removeNode("a")
        assert two_node_model.count == 1
        assert two_node_model.connections == []

    def test_selection_role(self, two_node_model):
        two_node_model.selectNode("b")
        assert two_node_model.selectedId == "b"
        assert two_node_model.data(two_node_model.index(1, 0), two_node_model.SelectedRole) is True
        assert two_node_model.data(two_node_model.index(0, 0), two_node_model.SelectedRole) is False
        two_node_model.selectNode("missing")
        assert two_node_model.selectedId == ""

    def test_role_names(self, empty_canvas_model):
        names = empty_canvas_model.roleNames()
        assert names[empty_canvas_model.IdRole] == b"nodeId"
        assert names[empty_canvas_model.ShapeRole] == b"shape"

    def test_dark_mode_changes_default_colours(self, app):
        model = CanvasModel()
        model.replace_state(CanvasState(elements=[DiagramNode(id="n", x=0.0, y=0.0)]))
        index = model.index(0, 0)
        assert model.data(index, model.BackgroundColorRole) == "#ffffff"
        changes = []
        model.darkModeChanged.connect(lambda: changes.append(True))
        model.darkMode = True
        assert changes == [True]
        assert model.data(index, model.BackgroundColorRole) == "#333333"


class TestConnections:
    def test_connect_nodes(self, two_node_model):
        conn_id = two_node_model.connectNodes("a", "b", "next")
        assert conn_id.startswith("conn_")
        (conn,) = two_node_model.connections
        assert conn["sourceId"] == "a"
        assert conn["targetId"] == "b"
        assert conn["label"] == "next"
        assert conn["path"].startswith("M 175,180")

    def test_invalid_connections_are_rejected(self, two_node_model):
        assert two_node_model.connectNodes("a", "a", "") == ""
        assert two_node_model.connectNodes("a", "ghost", "") == ""
        assert two_node_model.connections == []

    def test_add_connection_raises_for_unknown_node(self, two_node_model):
        with pytest.raises(DanglingReferenceError):
            two_node_model.add_connection("a", "ghost")

    def test_label_and_removal(self, two_node_model):
        conn_id = two_node_model.connectNodes("a", "b", "")
        two_node_model.setConnectionLabel(conn_id, "yes")
        assert two_node_model.getConnection(conn_id).label == "yes"
        two_node_model.removeConnection(conn_id)
        assert two_node_model.connections == []

    def test_replace_state_rejects_dangling_references(self, two_node_model):
        bad = CanvasState(elements=[
            DiagramNode(id="x", x=0.0, y=0.0),
            DiagramConnection(id="c", source_id="x", target_id="y"),
        ])
        with pytest.raises(DanglingReferenceError):
            two_node_model.replace_state(bad)
        assert two_node_model.count == 2

    def test_state_paints_connections_first(self, two_node_model):
        two_node_model.connectNodes("a", "b", "")
        kinds = [type(el).__name__ for el in two_node_model.getState().elements]
        assert kinds == ["DiagramConnection", "DiagramNode", "DiagramNode"]


class TestViewport:
    def test_zoom_keeps_point_under_cursor(self, empty_canvas_model):
        model = empty_canvas_model
        model.setViewportGeometry(20.0, 40.0, 1200.0, 800.0)
        before = model.mapToWorld(300.0, 200.0)
        model.zoomAtPointer(300.0, 200.0, 3)
        after = model.mapToWorld(300.0, 200.0)
        assert model.scale > 1.0
        assert after["x"] == pytest.approx(before["x"])
        assert after["y"] == pytest.approx(before["y"])

    def test_zoom_in_then_out_restores_scale(self, empty_canvas_model):
        empty_canvas_model.zoomAtPointer(100.0, 100.0, 4)
        empty_canvas_model.zoomAtPointer(100.0, 100.0, -4)
        assert empty_canvas_model.scale == pytest.approx(1.0)

    def test_zoom_is_clamped(self, empty_canvas_model):
        empty_canvas_model.zoomAtPointer(0.0, 0.0, 1000)
        assert empty_canvas_model.scale == 5.0
        empty_canvas_model.zoomAtPointer(0.0, 0.0, -1000)
        assert empty_canvas_model.scale == 0.1

    def test_wheel_direction(self, empty_canvas_model):
        empty_canvas_model.wheelZoom(0.0, 0.0, 120.0)
        assert empty_canvas_model.scale == pytest.approx(1.05)
        empty_canvas_model.resetView()
        empty_canvas_model.wheelZoom(0.0, 0.0, -120.0)
        assert empty_canvas_model.scale < 1.0

    def test_pan_is_in_screen_pixels(self, empty_canvas_model):
        empty_canvas_model.panBy(100.0, 50.0)
        assert (empty_canvas_model.viewX, empty_canvas_model.viewY) == (100.0, 50.0)

    def test_screen_and_world_round_trip(self, empty_canvas_model):
        model = empty_canvas_model
        model.setViewportGeometry(10.0, 10.0, 800.0, 600.0)
        model.zoomAtPointer(50.0, 70.0, 5)
        model.panBy(-30.0, 12.0)
        world = model.mapToWorld(123.0, 456.0)
        screen = model.mapToScreen(world["x"], world["y"])
        assert screen["x"] == pytest.approx(123.0)
        assert screen["y"] == pytest.approx(456.0)


class TestPointerInteraction:
    def test_drag_node_keeps_grab_offset(self, two_node_model):
        assert two_node_model.pointerPressed(150.0, 130.0)
        assert two_node_model.selectedId == "a"
        assert two_node_model.gesture == "drag-node"
        two_node_model.pointerMoved(250.0, 230.0)
        node = two_node_model.getNode("a")
        assert (node.x, node.y) == (200.0, 200.0)
        two_node_model.pointerReleased(250.0, 230.0)
        assert two_node_model.gesture == "none"

    def test_press_on_background_pans_and_deselects(self, two_node_model):
        two_node_model.selectNode("a")
        two_node_model.pointerPressed(600.0, 600.0)
        assert two_node_model.selectedId == ""
        assert two_node_model.gesture == "pan"
        two_node_model.pointerMoved(650.0, 580.0)
        assert (two_node_model.viewX, two_node_model.viewY) == (50.0, -20.0)
        two_node_model.pointerLeft()
        assert two_node_model.gesture == "none"

    def test_draw_connection_from_handle(self, two_node_model):
        assert two_node_model.pointerPressed(175.0, 180.0)
        assert two_node_model.isDrawingConnection
        two_node_model.pointerMoved(175.0, 440.0)
        assert two_node_model.hoverTargetId == "b"
        assert two_node_model.previewPath == "M 175 180 V 290 H 175 V 400"
        conn_id = two_node_model.pointerReleased(175.0, 440.0)
        assert conn_id
        assert two_node_model.getConnection(conn_id).target_id == "b"
        assert not two_node_model.isDrawingConnection
        assert two_node_model.previewPath == ""

    def test_release_on_empty_space_discards_connection(self, two_node_model):
        two_node_model.pointerPressed(175.0, 180.0)
        two_node_model.pointerMoved(700.0, 700.0)
        assert two_node_model.hoverTargetId == ""
        assert two_node_model.pointerReleased(700.0, 700.0) == ""
        assert two_node_model.connections == []

    def test_leaving_canvas_cancels_connection(self, two_node_model):
        two_node_model.startConnection("a", "right")
        two_node_model.pointerLeft()
        assert not two_node_model.isDrawingConnection
        assert two_node_model.connections == []

    def test_removing_source_cancels_connection(self, two_node_model):
        two_node_model.startConnection("a", "bottom")
        two_node_model.removeNode("a")
        assert not two_node_model.isDrawingConnection

    def test_secondary_button_is_ignored(self, two_node_model):
        assert not two_node_model.pointerPressed(150.0, 130.0, 2)
        assert two_node_model.gesture == "none"

    def test_node_hit_testing_uses_world_coordinates(self, two_node_model):
        two_node_model.panBy(100.0, 0.0)
        world = two_node_model.mapToWorld(250.0, 130.0)
        assert two_node_model.nodeIdAt(world["x"], world["y"]) == "a"


class TestAutosave:
    def test_burst_of_edits_saves_once(self, app):
        store = FakeStore()
        model = CanvasModel(store=store, autosave_delay_ms=20)
        for i in range(3):
            model.addNode(float(i * 200), 0.0, f"N{i}")
        assert store.saved == []
        assert model.isDirty
        QTest.qWait(200)
        assert len(store.saved) == 1
        assert len(json.loads(store.saved[0])["elements"]) == 3
        assert not model.isDirty

    def test_edits_during_save_schedule_another(self, app):
        store = FakeStore(auto_complete=False)
        model = CanvasModel(store=store, autosave_delay_ms=20)
        model.addNode(0.0, 0.0, "One")
        model.saveNow()
        assert model.isSaving
        model.addNode(0.0, 0.0, "Two")
        store.pending.pop()(None)
        assert not model.isSaving
        QTest.qWait(200)
        assert len(store.saved) == 2
        assert len(json.loads(store.saved[1])["elements"]) == 2

    def test_failed_save_keeps_canvas_dirty(self, app):
        store = FakeStore(error="disk full")
        model = CanvasModel(store=store, autosave_delay_ms=20)
        failures = []
        model.saveFailed.connect(failures.append)
        model.addNode(0.0, 0.0, "One")
        model.saveNow()
        assert failures == ["disk full"]
        assert model.isDirty
        assert not model.isSaving

    def test_store_exception_does_not_stop_autosave(self, app):
        store = RaisingStore()
        model = CanvasModel(store=store, autosave_delay_ms=20)
        failures = []
        model.saveFailed.connect(failures.append)
        model.addNode(0.0, 0.0, "One")
        model.saveNow()
        assert failures == ["connection reset"]
        assert model.isDirty
        assert not model.isSaving

        model.addNode(0.0, 0.0, "Two")
        model.saveNow()
        assert len(store.saved) == 2
        assert not model.isSaving

    def test_without_store_nothing_is_saved(self, empty_canvas_model):
        empty_canvas_model.addNode(0.0, 0.0, "One")
        empty_canvas_model.saveNow()
        assert empty_canvas_model.isDirty

    def test_load_from_store(self, two_node_model):
        store = FakeStore(payload=two_node_model.serializedState())
        model = CanvasModel(store=store)
        assert model.loadFromStore()
        assert model.count == 2
        assert not model.isDirty
        assert store.saved == []

    def test_file_store_round_trip(self, app, tmp_path):
        store = FileCanvasStore(tmp_path / "nested" / "canvas.json")
        assert store.load_canvas_state() is None
        results = []
        store.save_canvas_state('{"elements":[]}', results.append)
        assert results == [None]
        assert store.load_canvas_state() == '{"elements":[]}'


class TestSerialization:
    def test_round_trip(self, two_node_model, app):
        two_node_model.connectNodes("a", "b", "then")
        payload = two_node_model.serializedState()
        restored = CanvasModel()
        assert restored.loadSerializedState(payload)
        assert restored.to_dict() == two_node_model.to_dict()

    def test_ids_continue_after_load(self, app):
        source = CanvasModel()
        source.replace_state(CanvasState(elements=[DiagramNode(id="node_7", x=0.0, y=0.0)]))
        restored = CanvasModel()
        restored.loadSerializedState(source.serializedState())
        assert restored.addNode(50.0, 50.0, "Next") == "node_8"

    def test_reloaded_snapshot_serializes_identically(self, empty_canvas_model):
        model = empty_canvas_model
        model.add_node(100, 200, "First")
        second = model.add_node(100, 200, "Second")
        model.moveNode(second.id, 7, 9)
        payload = model.serializedState()

        restored = CanvasModel()
        assert restored.loadSerializedState(payload)
        assert restored.serializedState() == payload
        assert CanvasState.from_json(payload).to_json() == payload

    def test_non_ascii_id_suffix_does_not_move_counter(self, empty_canvas_model):
        payload = json.dumps({"elements": [{"id": "node_²", "type": "node", "x": 0, "y": 0}], "version": 1})
        assert empty_canvas_model.loadSerializedState(payload)
        assert empty_canvas_model.addNode(50.0, 50.0, "Next") == "node_1"

    def test_bad_snapshot_gives_empty_canvas(self, two_node_model):
        assert not two_node_model.loadSerializedState("{not json")
        assert two_node_model.count == 0

    def test_dangling_connections_are_dropped_on_load(self, empty_canvas_model):
        payload = json.dumps({
            "elements": [
                {"id": "a", "type": "node", "x": 0, "y": 0},
                {"id": "c", "type": "connection", "sourceId": "a", "targetId": "gone"},
            ],
            "version": 1,
        })
        assert empty_canvas_model.loadSerializedState(payload)
        assert empty_canvas_model.count == 1
        assert empty_canvas_model.getState().connections() == []

    def test_from_dict_wraps_bad_data(self, empty_canvas_model):
        with pytest.raises(CanvasError):
            empty_canvas_model.from_dict({"elements": [], "version": "abc"})

    def test_clear_canvas(self, two_node_model):
        two_node_model.clearCanvas()
        assert two_node_model.count == 0
        assert two_node_model.isDirty


class TestGeneration:
    def test_generated_diagram_replaces_canvas(self, two_node_model):
        generator = FakeGenerator(response=DECISION_RESPONSE)
        two_node_model._generator = generator
        messages = []
        two_node_model.diagramGenerated.connect(messages.append)

        assert two_node_model.generateDiagram("release flow")
        assert not two_node_model.isGenerating
        assert two_node_model.count == 5
        assert len(two_node_model.connections) == 5
        assert two_node_model.getNode("a") is None
        assert generator.requests[0][0] == "release flow"
        assert json.loads(generator.requests[0][1])["elements"]
        assert "5 nodes" in messages[0]
        assert "A release check." in messages[0]

    def test_generated_layout_and_shapes(self, app):
        model = CanvasModel(generator=FakeGenerator(response=DECISION_RESPONSE))
        model.generateDiagram("flow")
        start = _node_by_text(model, "Start")
        ship = _node_by_text(model, "Ship it")
        fix = _node_by_text(model, "Fix it")
        assert (start.x, start.y) == (525.0, 60.0)
        assert ship.x < fix.x
        assert _node_by_text(model, "Ready?").shape.value == "diamond"
        assert model.canvasWidth == 2000.0

    def test_generated_ids_are_unique(self, two_node_model):
        two_node_model.applyGeneratedJson(json.dumps(DECISION_RESPONSE))
        ids = [el.id for el in two_node_model.getState().elements]
        assert len(ids) == len(set(ids))

    def test_only_one_generation_at_a_time(self, app):
        generator = FakeGenerator(response=DECISION_RESPONSE, defer=True)
        model = CanvasModel(generator=generator)
        assert model.generateDiagram("first")
        assert model.isGenerating
        assert not model.generateDiagram("second")
        with pytest.raises(GenerationInProgressError):
            model.begin_generation()
        assert len(generator.requests) == 1

        generator.pending.pop()(DECISION_RESPONSE, None)
        assert not model.isGenerating
        assert model.count == 5

    def test_generation_failure_leaves_canvas(self, two_node_model):
        two_node_model._generator = FakeGenerator(error="service unavailable")
        failures = []
        two_node_model.generationFailed.connect(failures.append)
        assert two_node_model.generateDiagram("anything")
        assert failures == ["service unavailable"]
        assert two_node_model.count == 2
        assert not two_node_model.isGenerating

    def test_generator_exception_releases_generation(self, two_node_model):
        two_node_model._generator = RaisingGenerator()
        failures = []
        two_node_model.generationFailed.connect(failures.append)
        assert two_node_model.generateDiagram("flow")
        assert failures == ["client crashed"]
        assert not two_node_model.isGenerating
        assert two_node_model.count == 2

        two_node_model._generator = FakeGenerator(response=DECISION_RESPONSE)
        assert two_node_model.generateDiagram("again")
        assert two_node_model.count == 5

    def test_long_generated_chain_is_adopted(self, empty_canvas_model):
        nodes = [{"id": f"s{i}", "text": f"Step {i}"} for i in range(600)]
        connections = [{"from": f"s{i}", "to": f"s{i + 1}"} for i in range(599)]
        response = json.dumps({"diagram": {"nodes": nodes, "connections": connections}})
        assert empty_canvas_model.applyGeneratedJson(response)
        assert empty_canvas_model.count == 600
        assert len(empty_canvas_model.getState().connections()) == 599

    def test_generation_needs_prompt_and_generator(self, empty_canvas_model):
        errors = []
        empty_canvas_model.errorOccurred.connect(errors.append)
        assert not empty_canvas_model.generateDiagram("   ")
        assert not empty_canvas_model.generateDiagram("flow")
        assert errors == ["No diagram generator configured"]

    def test_unusable_response_falls_back(self, empty_canvas_model):
        assert not empty_canvas_model.applyGeneratedJson("no diagram at all")
        assert empty_canvas_model.count == 3
        assert _node_by_text(empty_canvas_model, "Process") is not None

    def test_auto_layout_matches_layout_engine(self, app):
        model = CanvasModel()
        model.replace_state(CanvasState(elements=[
            DiagramNode(id="a", x=900.0, y=900.0),
            DiagramNode(id="b", x=-50.0, y=10.0),
            DiagramConnection(id="c", source_id="a", target_id="b"),
        ]))
        model.autoLayout()
        expected = compute_layout([{"id": "a"}, {"id": "b"}], [{"from": "a", "to": "b"}])
        for node_id in ("a", "b"):
            node = model.getNode(node_id)
            assert (node.x, node.y) == (expected.positions[node_id].x, expected.positions[node_id].y)


class TestImageExport:
    def test_render_image_uses_viewport_size(self, two_node_model):
        two_node_model.setViewportGeometry(0.0, 0.0, 640.0, 480.0)
        image = two_node_model.render_image()
        assert (image.width(), image.height()) == (640, 480)

    def test_nodes_are_painted_through_the_view(self, app):
        model = CanvasModel()
        model.replace_state(CanvasState(elements=[
            DiagramNode(id="a", x=100.0, y=100.0, text="", style=NodeStyle(background_color="#ff0000")),
        ]))
        red = QColor("#ff0000")
        assert model.render_image(600, 300).pixelColor(110, 110) == red

        model.panBy(200.0, 0.0)
        image = model.render_image(600, 300)
        assert image.pixelColor(310, 110) == red
        assert image.pixelColor(110, 110) != red

    def test_connection_preview_is_painted(self, two_node_model):
        two_node_model.pointerPressed(175.0, 180.0)
        two_node_model.pointerMoved(600.0, 700.0)
        image = two_node_model.render_image()
        background = [QColor("#ffffff"), QColor("#f0f0f0")]
        painted = [image.pixelColor(175, y) for y in range(185, 380, 2)]
        assert any(color not in background for color in painted)

        two_node_model.cancelConnection()
        image = two_node_model.render_image()
        assert all(image.pixelColor(175, y) in background for y in range(185, 380, 2))

    def test_export_image_writes_file(self, two_node_model, tmp_path):
        target = tmp_path / "canvas.png"
        assert two_node_model.exportImage(str(target))
        assert QImage(str(target)).width() == 1200

    def test_export_failure_is_reported(self, two_node_model, tmp_path):
        errors = []
        two_node_model.errorOccurred.connect(errors.append)
        assert not two_node_model.exportImage(str(tmp_path / "missing" / "canvas.png"))
        assert len(errors) == 1
        assert "canvas.png" in errors[0]
        assert not two_node_model.exportImage("")
