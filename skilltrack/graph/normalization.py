"""Normalization of raw module lists into a structurally valid track graph.

Every algorithm downstream (layout, status resolution, the cascade) assumes
the output of :func:`normalize_modules`:

* each module carries every field (absent or null values take defaults),
* module ids are unique,
* prerequisites only reference modules of the same list, never the module
  itself, and never close a cycle.

Dangling and self-referencing prerequisites are pruned silently; this is the
documented load-time policy. Edits made through the editor are validated
strictly instead (see :mod:`skilltrack.graph.editor`).
"""

import math
from typing import Any, Iterable, List, Mapping, Optional, Union

import networkx as nx
import structlog

from skilltrack.core.config import settings
from skilltrack.graph.layout import LayoutConfig, compute_layout
from skilltrack.schemas.track import Module

logger = structlog.get_logger()

RawModule = Union[Module, Mapping[str, Any]]


def _coerce(raw: RawModule) -> Module:
    if isinstance(raw, Module):
        return raw
    return Module.model_validate(raw)


def normalize_modules(raw_modules: Iterable[RawModule]) -> List[Module]:
    """Fill defaults and enforce unique ids, resolvable edges and acyclicity."""
    modules: List[Module] = []
    seen = set()
    for raw in raw_modules:
        module = _coerce(raw)
        if module.module_id in seen:
            logger.warning("Dropping duplicate module", module_id=module.module_id)
            continue
        seen.add(module.module_id)
        modules.append(module)

    graph = nx.DiGraph()
    graph.add_nodes_from(module.module_id for module in modules)

    normalized = []
    for module in modules:
        kept = []
        for prerequisite in module.prerequisites:
            if prerequisite == module.module_id or prerequisite not in seen:
                logger.debug(
                    "Pruning unresolvable prerequisite",
                    module_id=module.module_id,
                    prerequisite=prerequisite
                )
                continue
            # The edge prerequisite -> module closes a cycle iff module already reaches prerequisite
            if nx.has_path(graph, module.module_id, prerequisite):
                logger.warning(
                    "Pruning cyclic prerequisite",
                    module_id=module.module_id,
                    prerequisite=prerequisite
                )
                continue
            graph.add_edge(prerequisite, module.module_id)
            kept.append(prerequisite)

        if kept != module.prerequisites:
            module = module.model_copy(update={"prerequisites": kept})
        normalized.append(module)

    return normalized


def _row_bucket(y: float, bucket: int) -> int:
    # Half-up rounding, matching how stored layouts were bucketed by the editor
    return math.floor(y / bucket + 0.5)


def needs_layout(modules: List[Module], bucket: Optional[int] = None) -> bool:
    """Return whether the stored coordinates are too degenerate to trust.

    A layout is degenerate when no module has a non-zero coordinate, or when
    several modules all sit on the same row.
    """
    if not modules:
        return False

    if not any(m.coordinates.x != 0 or m.coordinates.y != 0 for m in modules):
        return True

    bucket = bucket or settings.LAYOUT_ROW_BUCKET
    rows = {_row_bucket(m.coordinates.y, bucket) for m in modules}
    return len(rows) <= 1 and len(modules) > 1


def load_modules(
    raw_modules: Iterable[RawModule],
    config: Optional[LayoutConfig] = None
) -> List[Module]:
    """Normalize freshly loaded modules, re-running the layout only when needed.

    A prior manual arrangement is never discarded: usable coordinates are kept
    as they are.
    """
    modules = normalize_modules(raw_modules)
    if needs_layout(modules):
        logger.info("Degenerate layout detected, applying auto-layout", modules=len(modules))
        return compute_layout(modules, config)
    return modules
