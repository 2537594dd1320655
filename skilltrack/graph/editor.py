"""Mutation operations over an in-memory module list.

Each operation takes the current list and returns a new one; inputs are never
modified. Operations naming a module id that is not in the list are no-ops so
that stale references from the editor UI cannot break it.
"""

import math
import uuid
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple, Union

import networkx as nx
import structlog

from skilltrack.core.config import settings
from skilltrack.core.exceptions import CyclicPrerequisiteError, PrerequisiteError
from skilltrack.schemas.track import Coordinates, Module, ModuleStatus, ModuleType

logger = structlog.get_logger()

Point = Tuple[float, float]
IdFactory = Callable[[], str]


def new_module_id() -> str:
    """Generate a fresh module id."""
    return f"mod_{uuid.uuid4().hex[:12]}"


def find_module(modules: Sequence[Module], module_id: str) -> Optional[Module]:
    for module in modules:
        if module.module_id == module_id:
            return module
    return None


def _unused_id(modules: Sequence[Module], id_factory: IdFactory) -> str:
    taken = {m.module_id for m in modules}
    module_id = id_factory()
    while module_id in taken:
        module_id = id_factory()
    return module_id


def create_module(
    modules: Sequence[Module],
    module_type: Union[ModuleType, str] = ModuleType.CORE,
    id_factory: IdFactory = new_module_id
) -> Tuple[List[Module], Module]:
    """Append a blank module and return ``(modules, new_module)``."""
    module = Module(
        module_id=_unused_id(modules, id_factory),
        title="New Module",
        description="",
        level=len(modules),
        type=ModuleType(module_type),
        status=ModuleStatus.LOCKED,
        xp_reward=settings.DEFAULT_MODULE_XP,
        coordinates=Coordinates(x=settings.DEFAULT_MODULE_X, y=settings.DEFAULT_MODULE_Y),
    )
    logger.debug("Module created", module_id=module.module_id, type=module.type.value)
    return [*modules, module], module


def duplicate_module(
    modules: Sequence[Module],
    module_id: str,
    id_factory: IdFactory = new_module_id
) -> Tuple[List[Module], Optional[Module]]:
    """Append a copy of a module placed next to it; ``(modules, None)`` if unknown."""
    source = find_module(modules, module_id)
    if source is None:
        return list(modules), None

    offset = settings.DUPLICATE_OFFSET
    copy = source.model_copy(
        update={
            "module_id": _unused_id(modules, id_factory),
            "title": f"{source.title} (Copy)",
            "status": ModuleStatus.LOCKED,
            "coordinates": Coordinates(x=source.coordinates.x + offset, y=source.coordinates.y + offset),
        },
        deep=True,
    )
    return [*modules, copy], copy


def delete_module(modules: Sequence[Module], module_id: str) -> List[Module]:
    """Remove a module and every edge pointing at it."""
    result = []
    for module in modules:
        if module.module_id == module_id:
            continue
        if module_id in module.prerequisites:
            module = module.model_copy(
                update={"prerequisites": [p for p in module.prerequisites if p != module_id]}
            )
        result.append(module)
    return result


def validate_prerequisites(modules: Sequence[Module], patch: Module) -> None:
    """Check that ``patch`` would keep the graph free of dangling edges and cycles."""
    ids = {m.module_id for m in modules}
    if patch.module_id in patch.prerequisites:
        raise PrerequisiteError(f"Module {patch.module_id} cannot be its own prerequisite")

    dangling = [p for p in patch.prerequisites if p not in ids]
    if dangling:
        raise PrerequisiteError(
            f"Unknown prerequisites for {patch.module_id}: {', '.join(dangling)}",
            errors=dangling,
        )

    graph = nx.DiGraph()
    for module in modules:
        source = patch if module.module_id == patch.module_id else module
        graph.add_node(source.module_id)
        for prerequisite in source.prerequisites:
            graph.add_edge(prerequisite, source.module_id)

    if not nx.is_directed_acyclic_graph(graph):
        cycle = [edge[0] for edge in nx.find_cycle(graph)]
        raise CyclicPrerequisiteError(
            f"Prerequisites of {patch.module_id} would create a cycle: {' -> '.join(cycle)}",
            cycle=cycle,
        )


def update_module(modules: Sequence[Module], patch: Module) -> List[Module]:
    """Replace the module with ``patch.module_id`` by ``patch``, keeping its coordinates.

    Raises:
        PrerequisiteError: the new prerequisites are dangling or self-referencing.
        CyclicPrerequisiteError: the new prerequisites would create a cycle.
    """
    current = find_module(modules, patch.module_id)
    if current is None:
        return list(modules)

    if patch.prerequisites != current.prerequisites:
        validate_prerequisites(modules, patch)

    patch = patch.model_copy(update={"coordinates": current.coordinates})
    return [patch if m.module_id == patch.module_id else m for m in modules]


def add_prerequisite(modules: Sequence[Module], module_id: str, prerequisite_id: str) -> List[Module]:
    """Add the edge ``prerequisite_id -> module_id``."""
    module = find_module(modules, module_id)
    if module is None or prerequisite_id in module.prerequisites:
        return list(modules)
    patch = module.model_copy(update={"prerequisites": [*module.prerequisites, prerequisite_id]})
    return update_module(modules, patch)


def remove_prerequisite(modules: Sequence[Module], module_id: str, prerequisite_id: str) -> List[Module]:
    """Remove the edge ``prerequisite_id -> module_id``."""
    module = find_module(modules, module_id)
    if module is None or prerequisite_id not in module.prerequisites:
        return list(modules)
    patch = module.model_copy(
        update={"prerequisites": [p for p in module.prerequisites if p != prerequisite_id]}
    )
    return update_module(modules, patch)


# --- Drag interaction ---


@dataclass(frozen=True)
class Idle:
    """No module is being dragged."""


@dataclass(frozen=True)
class Dragging:
    """A module is being dragged; ``offset`` is pointer minus box origin."""

    module_id: str
    offset: Point


DragState = Union[Idle, Dragging]
IDLE = Idle()


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def begin_drag(state: DragState, modules: Sequence[Module], module_id: str, pointer: Point) -> DragState:
    """Pointer down on a module: start dragging it."""
    module = find_module(modules, module_id)
    if module is None:
        return state
    return Dragging(
        module_id=module_id,
        offset=(pointer[0] - module.coordinates.x, pointer[1] - module.coordinates.y),
    )


def continue_drag(state: DragState, modules: Sequence[Module], pointer: Point) -> List[Module]:
    """Pointer move: write the dragged module's clamped coordinates."""
    if not isinstance(state, Dragging):
        return list(modules)

    position = Coordinates(
        x=max(0, _round_half_up(pointer[0] - state.offset[0])),
        y=max(0, _round_half_up(pointer[1] - state.offset[1])),
    )
    return [
        m.model_copy(update={"coordinates": position}) if m.module_id == state.module_id else m
        for m in modules
    ]


def end_drag(state: DragState) -> DragState:
    """Pointer up or pointer leaving the canvas."""
    return IDLE
