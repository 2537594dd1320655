"""Stateful editor session over one track."""

import uuid
from typing import Any, List, Mapping, Optional, Union

import structlog

from skilltrack.core.config import settings
from skilltrack.core.exceptions import PersistenceError
from skilltrack.gateway.base import PersistenceGateway
from skilltrack.graph import editor
from skilltrack.graph.editor import IDLE, DragState, Dragging, IdFactory, Point
from skilltrack.graph.importer import apply_import, parse_import
from skilltrack.graph.layout import LayoutConfig, compute_layout, layout_signature, redesign
from skilltrack.graph.normalization import load_modules
from skilltrack.graph.resolver import toggle_status
from skilltrack.schemas.track import Module, ModuleType, Track

logger = structlog.get_logger()


def new_track_id() -> str:
    """Generate a fresh track id."""
    return f"track_{uuid.uuid4().hex[:12]}"


class TrackEditor:
    """Single active editor session.

    Holds the track being edited, the selected module and the drag state.
    Structural edits (modules or edges added or removed, levels changed) mark
    the layout stale; with auto layout enabled the Layout Engine runs right
    away, otherwise it waits for :meth:`apply_layout`.
    """

    def __init__(
        self,
        track: Optional[Track] = None,
        config: Optional[LayoutConfig] = None,
        auto_layout: Optional[bool] = None,
        id_factory: IdFactory = editor.new_module_id
    ):
        self.config = config or LayoutConfig.from_settings()
        self.auto_layout = settings.AUTO_LAYOUT_ON_STRUCTURE_CHANGE if auto_layout is None else auto_layout
        self.id_factory = id_factory

        track = track or Track()
        self.track = track.model_copy(update={"modules": []})
        self.modules: List[Module] = load_modules(track.modules, self.config)
        self.selected_id: Optional[str] = None
        self.drag_state: DragState = IDLE
        self._layout_signature = layout_signature(self.modules)

    # --- State ---

    @property
    def layout_stale(self) -> bool:
        return layout_signature(self.modules) != self._layout_signature

    @property
    def selected(self) -> Optional[Module]:
        if self.selected_id is None:
            return None
        return editor.find_module(self.modules, self.selected_id)

    @property
    def is_dragging(self) -> bool:
        return isinstance(self.drag_state, Dragging)

    def snapshot(self) -> Track:
        """The track as it would be saved."""
        return self.track.model_copy(update={"modules": list(self.modules)})

    def _commit(self, modules: List[Module]) -> None:
        self.modules = modules
        if self.auto_layout and self.layout_stale:
            self.apply_layout()
        if self.selected_id is not None and self.selected is None:
            self.selected_id = None

    def apply_layout(self, force: bool = False) -> bool:
        """Re-run the Layout Engine when the structure changed or ``force`` is set.

        Returns whether coordinates were recomputed.
        """
        if not force and not self.layout_stale:
            return False
        self.modules = compute_layout(self.modules, self.config)
        self._layout_signature = layout_signature(self.modules)
        logger.debug("Layout applied", modules=len(self.modules), forced=force)
        return True

    # --- Mutations ---

    def create(self, module_type: Union[ModuleType, str] = ModuleType.CORE) -> Module:
        modules, module = editor.create_module(self.modules, module_type, self.id_factory)
        self._commit(modules)
        self.selected_id = module.module_id
        return self.selected

    def duplicate(self, module_id: str) -> Optional[Module]:
        modules, copy = editor.duplicate_module(self.modules, module_id, self.id_factory)
        if copy is None:
            return None
        self._commit(modules)
        return editor.find_module(self.modules, copy.module_id)

    def delete(self, module_id: str) -> None:
        if isinstance(self.drag_state, Dragging) and self.drag_state.module_id == module_id:
            self.drag_state = IDLE
        self._commit(editor.delete_module(self.modules, module_id))

    def update(self, patch: Module) -> None:
        self._commit(editor.update_module(self.modules, patch))

    def add_prerequisite(self, module_id: str, prerequisite_id: str) -> None:
        self._commit(editor.add_prerequisite(self.modules, module_id, prerequisite_id))

    def remove_prerequisite(self, module_id: str, prerequisite_id: str) -> None:
        self._commit(editor.remove_prerequisite(self.modules, module_id, prerequisite_id))

    def toggle(self, module_id: str) -> None:
        # Authoring status only; learners go through the completion cascade
        self._commit(toggle_status(self.modules, module_id))

    def redesign(self) -> None:
        """Renumber levels and lay the graph out again."""
        self.modules = redesign(self.modules)
        self.apply_layout(force=True)

    def select(self, module_id: Optional[str]) -> Optional[Module]:
        if module_id is not None and editor.find_module(self.modules, module_id) is None:
            return self.selected
        self.selected_id = module_id
        return self.selected

    # --- Pointer interaction ---

    def pointer_down(self, module_id: str, pointer: Point) -> None:
        self.drag_state = editor.begin_drag(self.drag_state, self.modules, module_id, pointer)
        if self.is_dragging:
            self.selected_id = module_id

    def pointer_move(self, pointer: Point) -> None:
        if self.is_dragging:
            self.modules = editor.continue_drag(self.drag_state, self.modules, pointer)

    def pointer_up(self) -> None:
        self.drag_state = editor.end_drag(self.drag_state)

    def pointer_leave(self) -> None:
        self.drag_state = editor.end_drag(self.drag_state)

    # --- Import and save ---

    def import_json(
        self,
        payload: Union[str, bytes, Mapping[str, Any]],
        subject_id: Optional[str] = None
    ) -> Track:
        """Replace the modules with an imported document; invalid documents change nothing."""
        document = parse_import(payload)
        track = apply_import(document, self.track, subject_id or self.track.subject_id, self.config)
        self.track = track.model_copy(update={"modules": []})
        self.modules = list(track.modules)
        self._layout_signature = layout_signature(self.modules)
        self.selected_id = None
        self.drag_state = IDLE
        return self.snapshot()

    async def save(self, gateway: PersistenceGateway) -> Track:
        """Create the track on first save, update it afterwards.

        Raises:
            PersistenceError: the gateway failed; edits are kept so the caller may retry.
        """
        track = self.snapshot()
        try:
            if track.track_id:
                saved = await gateway.update_track(track.track_id, track)
            else:
                track = track.model_copy(update={"track_id": new_track_id()})
                saved = await gateway.create_track(track)
        except PersistenceError as e:
            logger.error("Failed to save track", track_id=track.track_id, error=str(e))
            raise

        self.track = self.track.model_copy(
            update={
                "track_id": saved.track_id or track.track_id,
                "title": saved.title,
                "icon": saved.icon,
                "description": saved.description,
                "subject_id": saved.subject_id,
            }
        )
        logger.info("Track saved", track_id=self.track.track_id, modules=len(self.modules))
        return self.snapshot()
