"""Unit tests for module list mutations and the drag state machine."""

import re

import pytest

from skilltrack.core.exceptions import CyclicPrerequisiteError, PrerequisiteError, TrackValidationError
from skilltrack.graph.editor import (
    IDLE,
    Dragging,
    add_prerequisite,
    begin_drag,
    continue_drag,
    create_module,
    delete_module,
    duplicate_module,
    end_drag,
    new_module_id,
    remove_prerequisite,
    update_module,
)
from skilltrack.schemas.track import ModuleStatus, ModuleType


def sequence_ids(*ids):
    iterator = iter(ids)
    return lambda: next(iterator)


class TestCreateAndDuplicate:
    """Tests for adding modules."""

    def test_new_module_id_format(self):
        assert re.fullmatch(r"mod_[0-9a-f]{12}", new_module_id())

    def test_create_defaults(self, fan_out_modules):
        modules, module = create_module(fan_out_modules, ModuleType.OPTIONAL)
        assert modules[-1] is module
        assert len(fan_out_modules) == 3
        assert module.title == "New Module"
        assert module.description == ""
        assert module.level == 3
        assert module.type == ModuleType.OPTIONAL
        assert module.status == ModuleStatus.LOCKED
        assert module.xp_reward == 100
        assert (module.coordinates.x, module.coordinates.y) == (100, 100)
        assert module.prerequisites == []
        assert module.sub_modules == []

    def test_create_skips_taken_ids(self, fan_out_modules):
        _, module = create_module(fan_out_modules, id_factory=sequence_ids("A", "B", "fresh"))
        assert module.module_id == "fresh"

    def test_duplicate(self, make_module):
        source = make_module("a", x=100, y=200, status=ModuleStatus.COMPLETED, quiz_ids=["q1"])
        modules, copy = duplicate_module([source], "a", id_factory=sequence_ids("a2"))
        assert [m.module_id for m in modules] == ["a", "a2"]
        assert copy.title == "A (Copy)"
        assert copy.status == ModuleStatus.LOCKED
        assert (copy.coordinates.x, copy.coordinates.y) == (160, 260)
        assert copy.quiz_ids == ["q1"]
        assert copy.quiz_ids is not source.quiz_ids

    def test_duplicate_unknown_module(self, fan_out_modules):
        modules, copy = duplicate_module(fan_out_modules, "missing")
        assert copy is None
        assert modules == fan_out_modules


class TestDelete:
    """Tests for removing modules."""

    def test_no_dangling_edges_after_delete(self, fan_out_modules, make_module):
        modules = [*fan_out_modules, make_module("D", ["A", "B"])]
        result = delete_module(modules, "A")
        assert [m.module_id for m in result] == ["B", "C", "D"]
        assert all("A" not in m.prerequisites for m in result)
        assert result[-1].prerequisites == ["B"]

    def test_delete_unknown_module(self, fan_out_modules):
        assert delete_module(fan_out_modules, "missing") == fan_out_modules


class TestUpdate:
    """Tests for strict prerequisite validation on edits."""

    def test_update_replaces_module(self, fan_out_modules):
        patch = fan_out_modules[1].model_copy(update={"title": "Renamed"})
        result = update_module(fan_out_modules, patch)
        assert result[1].title == "Renamed"
        assert fan_out_modules[1].title == "B"

    def test_update_keeps_coordinates(self, make_module):
        modules = [make_module("a", x=10, y=20)]
        patch = make_module("a", title="Moved?", x=900, y=900)
        result = update_module(modules, patch)
        assert result[0].title == "Moved?"
        assert (result[0].coordinates.x, result[0].coordinates.y) == (10, 20)

    def test_unknown_module_is_a_no_op(self, fan_out_modules, make_module):
        assert update_module(fan_out_modules, make_module("missing", ["nope"])) == fan_out_modules

    def test_self_reference_is_rejected(self, fan_out_modules):
        patch = fan_out_modules[0].model_copy(update={"prerequisites": ["A"]})
        with pytest.raises(PrerequisiteError):
            update_module(fan_out_modules, patch)

    def test_dangling_reference_is_rejected(self, fan_out_modules):
        patch = fan_out_modules[1].model_copy(update={"prerequisites": ["A", "ghost"]})
        with pytest.raises(TrackValidationError) as exc_info:
            update_module(fan_out_modules, patch)
        assert exc_info.value.errors == ["ghost"]

    def test_cycle_is_rejected(self, fan_out_modules):
        patch = fan_out_modules[0].model_copy(update={"prerequisites": ["B"]})
        with pytest.raises(CyclicPrerequisiteError) as exc_info:
            update_module(fan_out_modules, patch)
        assert set(exc_info.value.cycle) == {"A", "B"}
        assert fan_out_modules[0].prerequisites == []

    def test_add_prerequisite(self, fan_out_modules):
        result = add_prerequisite(fan_out_modules, "C", "B")
        assert result[2].prerequisites == ["A", "B"]

    def test_add_prerequisite_closing_cycle(self, fan_out_modules):
        with pytest.raises(CyclicPrerequisiteError):
            add_prerequisite(fan_out_modules, "A", "C")

    def test_add_existing_prerequisite_is_a_no_op(self, fan_out_modules):
        assert add_prerequisite(fan_out_modules, "B", "A") == fan_out_modules

    def test_remove_prerequisite(self, fan_out_modules):
        result = remove_prerequisite(fan_out_modules, "B", "A")
        assert result[1].prerequisites == []

    def test_edge_edits_on_unknown_module(self, fan_out_modules):
        assert add_prerequisite(fan_out_modules, "missing", "A") == fan_out_modules
        assert remove_prerequisite(fan_out_modules, "missing", "A") == fan_out_modules


class TestDrag:
    """Tests for the drag state machine."""

    def test_begin_records_offset(self, make_module):
        modules = [make_module("a", x=100, y=100)]
        state = begin_drag(IDLE, modules, "a", (110, 120))
        assert state == Dragging(module_id="a", offset=(10, 20))

    def test_begin_on_unknown_module_keeps_state(self, make_module):
        assert begin_drag(IDLE, [make_module("a")], "missing", (0, 0)) is IDLE

    def test_move_rounds_half_up(self, make_module):
        modules = [make_module("a", x=100, y=100), make_module("b", x=500, y=500)]
        state = begin_drag(IDLE, modules, "a", (110, 120))
        moved = continue_drag(state, modules, (300.5, 50.6))
        assert (moved[0].coordinates.x, moved[0].coordinates.y) == (291, 31)
        assert moved[1] is modules[1]

    def test_move_clamps_to_canvas(self, make_module):
        modules = [make_module("a", x=100, y=100)]
        state = begin_drag(IDLE, modules, "a", (110, 120))
        moved = continue_drag(state, modules, (5, 5))
        assert (moved[0].coordinates.x, moved[0].coordinates.y) == (0, 0)

    def test_move_while_idle_changes_nothing(self, make_module):
        modules = [make_module("a", x=100, y=100)]
        assert continue_drag(IDLE, modules, (400, 400)) == modules

    def test_end_returns_to_idle(self):
        assert end_drag(Dragging(module_id="a", offset=(0, 0))) is IDLE
        assert end_drag(IDLE) is IDLE
