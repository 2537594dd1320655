"""Unit tests for module normalization and layout classification."""

import pytest
from pydantic import ValidationError

from skilltrack.graph.layout import LayoutConfig
from skilltrack.graph.normalization import load_modules, needs_layout, normalize_modules
from skilltrack.schemas.track import ModuleStatus, ModuleType


class TestNormalizeModules:
    """Tests for structural invariants after normalization."""

    def test_fills_defaults_for_missing_and_null_fields(self):
        """Absent or null fields take their defaults."""
        modules = normalize_modules([
            {"moduleId": "a", "title": None, "xpReward": None, "subModules": None, "coordinates": {"x": 5}},
        ])
        module = modules[0]
        assert module.title == "Untitled Module"
        assert module.xp_reward == 100
        assert module.sub_modules == []
        assert module.status == ModuleStatus.LOCKED
        assert module.type == ModuleType.CORE
        assert (module.coordinates.x, module.coordinates.y) == (5, 0)

    def test_duplicate_ids_keep_first(self, make_module):
        modules = normalize_modules([
            make_module("a", title="first"),
            make_module("b"),
            make_module("a", title="second"),
        ])
        assert [m.module_id for m in modules] == ["a", "b"]
        assert modules[0].title == "first"

    def test_dangling_and_self_prerequisites_are_pruned(self, make_module):
        """Unresolvable edges are dropped silently, other edges are kept."""
        modules = normalize_modules([
            make_module("a"),
            make_module("b", ["a", "missing", "b"]),
        ])
        assert modules[1].prerequisites == ["a"]

    def test_cycle_closing_prerequisite_is_pruned(self, make_module):
        """Edges are accepted in list order; the one closing the cycle is dropped."""
        modules = normalize_modules([
            make_module("a", ["c"]),
            make_module("b", ["a"]),
            make_module("c", ["b"]),
        ])
        by_id = {m.module_id: m for m in modules}
        assert by_id["a"].prerequisites == ["c"]
        assert by_id["b"].prerequisites == ["a"]
        assert by_id["c"].prerequisites == []

    def test_input_modules_are_not_modified(self, make_module):
        original = make_module("b", ["missing"])
        normalize_modules([original])
        assert original.prerequisites == ["missing"]

    def test_legacy_values_are_mapped(self):
        modules = normalize_modules([
            {"moduleId": "a", "status": "in_progress", "type": "quiz"},
            {"moduleId": "b", "status": "skipped", "type": "milestone"},
        ])
        assert modules[0].status == ModuleStatus.AVAILABLE
        assert modules[0].type == ModuleType.CORE
        assert modules[1].status == ModuleStatus.COMPLETED
        assert modules[1].type == ModuleType.ACHIEVEMENT

    def test_unknown_status_is_rejected(self):
        with pytest.raises(ValidationError):
            normalize_modules([{"moduleId": "a", "status": "archived"}])


class TestNeedsLayout:
    """Tests for degenerate layout detection."""

    def test_empty_list_needs_nothing(self):
        assert needs_layout([]) is False

    def test_all_zero_coordinates(self, make_module):
        assert needs_layout([make_module("a"), make_module("b")]) is True

    def test_single_module_at_origin(self, make_module):
        assert needs_layout([make_module("a")]) is True

    def test_single_row(self, make_module):
        """y = 100 and y = 110 fall in the same 50-unit bucket."""
        modules = [make_module("a", x=100, y=100), make_module("b", x=400, y=110)]
        assert needs_layout(modules) is True

    def test_distinct_rows(self, make_module):
        modules = [make_module("a", x=100, y=100), make_module("b", x=100, y=300)]
        assert needs_layout(modules) is False

    def test_single_placed_module(self, make_module):
        assert needs_layout([make_module("a", x=100, y=100)]) is False


class TestLoadModules:
    """Tests for the load-time layout decision."""

    def test_manual_layout_is_preserved(self, make_module):
        """Five placed modules keep their coordinates."""
        placed = [
            make_module("a", x=120, y=80),
            make_module("b", ["a"], x=40, y=400),
            make_module("c", ["a"], x=510, y=390),
            make_module("d", ["b"], x=75, y=760),
            make_module("e", ["c", "d"], x=333, y=1100),
        ]
        loaded = load_modules(placed, LayoutConfig())
        assert [(m.coordinates.x, m.coordinates.y) for m in loaded] == [
            (m.coordinates.x, m.coordinates.y) for m in placed
        ]

    def test_degenerate_layout_is_recomputed(self, make_module):
        """Modules at the origin get distinct, non-zero coordinates."""
        modules = [
            make_module("a", level=0),
            make_module("b", ["a"], level=1),
            make_module("c", ["a"], level=1),
            make_module("d", ["b"], level=2),
            make_module("e", ["c"], level=2),
        ]
        loaded = load_modules(modules, LayoutConfig())
        points = [(m.coordinates.x, m.coordinates.y) for m in loaded]
        assert len(set(points)) == len(points)
        assert all(x != 0 and y != 0 for x, y in points)
