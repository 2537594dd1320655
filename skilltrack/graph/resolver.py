"""Module state resolution for authoring and learner views."""

from typing import Dict, List, Optional, Sequence

from skilltrack.schemas.progress import ResolvedStatus, UserProgress
from skilltrack.schemas.track import Module, ModuleStatus

_TOGGLE_CYCLE = {
    ModuleStatus.LOCKED: ModuleStatus.AVAILABLE,
    ModuleStatus.AVAILABLE: ModuleStatus.COMPLETED,
    ModuleStatus.COMPLETED: ModuleStatus.LOCKED,
}


def resolve_status(module: Module, progress: Optional[UserProgress] = None) -> ResolvedStatus:
    """Resolve the status shown for a module.

    Without a progress record the authoring status is returned as is. With
    one, the learner's record decides: completed, else unlocked, else locked.
    """
    if progress is None:
        status = module.status
    elif module.module_id in progress.completed_modules:
        status = ModuleStatus.COMPLETED
    elif module.module_id in progress.unlocked_modules:
        status = ModuleStatus.AVAILABLE
    else:
        status = ModuleStatus.LOCKED

    return ResolvedStatus(
        status=status,
        is_locked=status == ModuleStatus.LOCKED,
        is_completed=status == ModuleStatus.COMPLETED,
    )


def resolve_statuses(
    modules: Sequence[Module],
    progress: Optional[UserProgress] = None
) -> Dict[str, ResolvedStatus]:
    """Resolve every module of a track, keyed by module id."""
    return {m.module_id: resolve_status(m, progress) for m in modules}


def next_status(status: ModuleStatus) -> ModuleStatus:
    """Next authoring status in the admin toggle cycle."""
    return _TOGGLE_CYCLE[ModuleStatus(status)]


def toggle_status(modules: Sequence[Module], module_id: str) -> List[Module]:
    """Advance one module's authoring status; does not run the completion cascade."""
    return [
        m.model_copy(update={"status": next_status(m.status)}) if m.module_id == module_id else m
        for m in modules
    ]
