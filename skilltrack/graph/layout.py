"""Layered layout engine for track graphs.

Modules are placed top to bottom by rank, where a module's rank is the
longest prerequisite path leading to it. The steps follow the usual layered
(Sugiyama-style) scheme:

1. build a directed graph, one node per module and one edge per
   ``prerequisite -> module`` relation;
2. when the graph has no edges at all, chain the modules by ``level`` so a
   flat list still reads top to bottom;
3. rank nodes by longest path from the sources;
4. order each rank by the barycenter of its predecessors;
5. convert grid positions to box coordinates.

The result depends only on the module list (order, ids, levels, titles and
prerequisites), never on anything else, so recomputing it is idempotent.
"""

from dataclasses import dataclass
from typing import Dict, Hashable, List, Optional, Sequence, Tuple

import networkx as nx
import structlog

from skilltrack.core.config import Settings, settings
from skilltrack.core.exceptions import CyclicPrerequisiteError
from skilltrack.schemas.track import Coordinates, Module

logger = structlog.get_logger()


@dataclass(frozen=True)
class LayoutConfig:
    """Node size, spacing and margins of the canvas grid."""

    node_width: float = 280
    node_height: float = 140
    node_spacing: float = 100
    rank_spacing: float = 180
    margin_x: float = 150
    margin_y: float = 100
    offset_x: float = 200

    @classmethod
    def from_settings(cls, source: Optional[Settings] = None) -> "LayoutConfig":
        source = source or settings
        return cls(
            node_width=source.LAYOUT_NODE_WIDTH,
            node_height=source.LAYOUT_NODE_HEIGHT,
            node_spacing=source.LAYOUT_NODE_SPACING,
            rank_spacing=source.LAYOUT_RANK_SPACING,
            margin_x=source.LAYOUT_MARGIN_X,
            margin_y=source.LAYOUT_MARGIN_Y,
            offset_x=source.LAYOUT_OFFSET_X,
        )


def build_graph(modules: Sequence[Module]) -> nx.DiGraph:
    """Build the prerequisite graph, chaining by level when it has no edges."""
    graph = nx.DiGraph()
    for index, module in enumerate(modules):
        graph.add_node(module.module_id, index=index, level=module.level, title=module.title)

    for module in modules:
        for prerequisite in module.prerequisites:
            if prerequisite in graph and prerequisite != module.module_id:
                graph.add_edge(prerequisite, module.module_id, virtual=False)

    if graph.number_of_edges() == 0 and len(modules) > 1:
        chain = sorted(modules, key=lambda m: (m.level, m.title))
        for upper, lower in zip(chain, chain[1:]):
            graph.add_edge(upper.module_id, lower.module_id, virtual=True)

    return graph


def assign_ranks(graph: nx.DiGraph) -> Dict[str, int]:
    """Rank each node by its longest path from any source.

    Nodes with no edges at all fall back to their ``level``.
    """
    try:
        order = list(nx.topological_sort(graph))
    except nx.NetworkXUnfeasible as exc:
        cycle = [edge[0] for edge in nx.find_cycle(graph)]
        raise CyclicPrerequisiteError("Prerequisite graph contains a cycle", cycle=cycle) from exc

    ranks: Dict[str, int] = {}
    for node in order:
        predecessors = list(graph.predecessors(node))
        if predecessors:
            ranks[node] = max(ranks[p] for p in predecessors) + 1
        elif graph.out_degree(node) == 0:
            ranks[node] = max(graph.nodes[node]["level"], 0)
        else:
            ranks[node] = 0
    return ranks


def order_ranks(graph: nx.DiGraph, ranks: Dict[str, int]) -> Dict[int, List[str]]:
    """Order the nodes of every rank left to right."""
    by_rank: Dict[int, List[str]] = {}
    for node in graph.nodes:
        by_rank.setdefault(ranks[node], []).append(node)

    positions: Dict[str, int] = {}
    rows: Dict[int, List[str]] = {}
    for rank in sorted(by_rank):

        def sort_key(node: str) -> Tuple[int, float, int]:
            index = graph.nodes[node]["index"]
            placed = [positions[p] for p in graph.predecessors(node) if p in positions]
            if not placed:
                return (1, 0.0, index)
            return (0, sum(placed) / len(placed), index)

        row = sorted(by_rank[rank], key=sort_key)
        for position, node in enumerate(row):
            positions[node] = position
        rows[rank] = row
    return rows


def compute_layout(modules: Sequence[Module], config: Optional[LayoutConfig] = None) -> List[Module]:
    """Return copies of ``modules`` with computed coordinates."""
    if not modules:
        return []

    config = config or LayoutConfig.from_settings()
    graph = build_graph(modules)
    rows = order_ranks(graph, assign_ranks(graph))

    width, height = config.node_width, config.node_height
    step_x = width + config.node_spacing
    step_y = height + config.rank_spacing
    widest = max(len(row) for row in rows.values())
    canvas_width = widest * step_x - config.node_spacing

    placed: Dict[str, Coordinates] = {}
    for rank, row in rows.items():
        row_width = len(row) * step_x - config.node_spacing
        left = config.margin_x + (canvas_width - row_width) / 2
        for position, node in enumerate(row):
            center_x = left + position * step_x + width / 2
            center_y = config.margin_y + rank * step_y + height / 2
            # Stored coordinates are the box's top-left corner, not its center
            placed[node] = Coordinates(
                x=center_x - width / 2 + config.offset_x,
                y=center_y - height / 2,
            )

    logger.debug("Layout computed", modules=len(modules), ranks=len(rows))
    return [m.model_copy(update={"coordinates": placed[m.module_id]}) for m in modules]


def layout_signature(modules: Sequence[Module]) -> Tuple[Hashable, ...]:
    """Structural fingerprint of a module list; equal signatures give equal layouts."""
    return tuple(
        (m.module_id, m.level, tuple(m.prerequisites))
        for m in modules
    )


def redesign(modules: Sequence[Module]) -> List[Module]:
    """Sort by level and renumber levels 0..n-1, leaving coordinates alone."""
    ordered = sorted(modules, key=lambda m: m.level)
    return [m.model_copy(update={"level": index}) for index, m in enumerate(ordered)]
