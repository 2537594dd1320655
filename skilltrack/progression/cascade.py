"""Completion cascade: quiz credit, aggregate rewards and unlock propagation.

Completing a module (by a learner, or by an administrator committing
progress) runs these steps for every newly completed module:

1. a full-credit attempt is recorded for each of its quizzes,
2. the user's aggregate counters are incremented for the attempts that
   were not already on record,
3. downstream modules are unlocked according to the unlock policy,

and the progress record is written back once at the end. Gateway failures
propagate as :class:`~skilltrack.core.exceptions.PersistenceError`.
"""

from typing import Callable, Dict, Iterable, List, Optional, Sequence, Set

import structlog

from skilltrack.core.config import settings
from skilltrack.gateway.base import PersistenceGateway
from skilltrack.progression.rewards import RewardEngine
from skilltrack.schemas.progress import AggregateDeltas, CascadeResult, UserProgress, sub_module_key
from skilltrack.schemas.track import Module, Track

logger = structlog.get_logger()

UnlockPolicy = Callable[[Sequence[Module], Set[str], Set[str]], List[str]]


def unlock_by_prerequisites(
    modules: Sequence[Module],
    completed: Set[str],
    unlocked: Set[str]
) -> List[str]:
    """Unlock every module whose prerequisites are all completed."""
    return [
        m.module_id for m in modules
        if m.module_id not in completed
        and m.module_id not in unlocked
        and set(m.prerequisites) <= completed
    ]


def unlock_sequential(
    modules: Sequence[Module],
    completed: Set[str],
    unlocked: Set[str]
) -> List[str]:
    """Unlock the module following each completed one in list order."""
    newly = []
    for current, following in zip(modules, modules[1:]):
        if current.module_id not in completed:
            continue
        if following.module_id in completed or following.module_id in unlocked:
            continue
        if following.module_id not in newly:
            newly.append(following.module_id)
    return newly


UNLOCK_POLICIES: Dict[str, UnlockPolicy] = {
    "prerequisites": unlock_by_prerequisites,
    "sequential": unlock_sequential,
}


def initial_unlocks(track: Track) -> List[str]:
    """Modules unlocked in a fresh progress record: the roots, else the first module."""
    roots = [m.module_id for m in track.modules if not m.prerequisites]
    if roots:
        return roots
    return [track.modules[0].module_id] if track.modules else []


class CompletionCascade:
    """Runs module completions against a persistence gateway."""

    def __init__(
        self,
        gateway: PersistenceGateway,
        unlock_policy: Optional[str] = None,
        rewards: Optional[RewardEngine] = None,
        passing_threshold: Optional[float] = None
    ):
        policy = unlock_policy or settings.UNLOCK_POLICY
        if policy not in UNLOCK_POLICIES:
            raise ValueError(f"Unknown unlock policy: {policy}")
        self.gateway = gateway
        self.policy_name = policy
        self.unlock_policy = UNLOCK_POLICIES[policy]
        self.rewards = rewards or RewardEngine()
        self.passing_threshold = (
            settings.MODULE_PASSING_THRESHOLD if passing_threshold is None else passing_threshold
        )

    async def get_or_create_progress(self, user_id: str, track: Track) -> UserProgress:
        """Load the learner's progress, creating it with the root modules unlocked."""
        progress = await self.gateway.get_user_progress(user_id, track.track_id)
        if progress is not None:
            return progress

        progress = UserProgress(
            user_id=user_id,
            track_id=track.track_id,
            unlocked_modules=initial_unlocks(track),
        )
        logger.info(
            "Progress created",
            user_id=user_id,
            track_id=track.track_id,
            unlocked=progress.unlocked_modules
        )
        return await self.gateway.update_user_progress(user_id, track.track_id, progress)

    def _propagate(self, track: Track, completed: List[str], unlocked: List[str]) -> List[str]:
        newly = self.unlock_policy(track.modules, set(completed), set(unlocked))
        unlocked.extend(newly)
        return newly

    async def complete_module(self, user_id: str, track: Track, module_id: str) -> CascadeResult:
        """Mark one module completed for a learner and run the cascade."""
        return await self.commit_progress(user_id, track, [module_id])

    async def commit_progress(
        self,
        user_id: str,
        track: Track,
        completed_ids: Iterable[str]
    ) -> CascadeResult:
        """Mark several modules completed; unknown and already completed ids are skipped."""
        progress = await self.get_or_create_progress(user_id, track)
        completed = list(progress.completed_modules)
        unlocked = list(progress.unlocked_modules)

        newly_completed = [
            module_id for module_id in dict.fromkeys(completed_ids)
            if module_id not in completed and track.find_module(module_id) is not None
        ]
        if not newly_completed:
            return CascadeResult(progress=progress)

        quizzes = {}
        if any(track.find_module(module_id).quiz_ids for module_id in newly_completed):
            quizzes = {q.quiz_id: q for q in await self.gateway.list_quizzes(track.subject_id)}

        attempts = 0
        totals = AggregateDeltas()
        for module_id in newly_completed:
            module = track.find_module(module_id)
            credited = 0
            for quiz_id in module.quiz_ids:
                attempt = self.rewards.full_credit_attempt(user_id, module_id, quiz_id, quizzes.get(quiz_id))
                if await self.gateway.record_attempt(attempt):
                    credited += 1
            attempts += credited

            # Quizzes already credited by an earlier, interrupted run earn nothing
            if credited:
                deltas = self.rewards.completion_deltas(credited)
                await self.gateway.update_user_aggregates(user_id, deltas)
                totals = AggregateDeltas(
                    total_attempts=totals.total_attempts + deltas.total_attempts,
                    total_score=totals.total_score + deltas.total_score,
                    xp=totals.xp + deltas.xp,
                )

            completed.append(module_id)
            logger.info("Module completed", user_id=user_id, track_id=track.track_id, module_id=module_id)

        newly_unlocked = self._propagate(track, completed, unlocked)
        saved = await self.gateway.update_user_progress(
            user_id,
            track.track_id,
            progress.model_copy(update={"completed_modules": completed, "unlocked_modules": unlocked}),
        )

        logger.info(
            "Completion cascade finished",
            user_id=user_id,
            track_id=track.track_id,
            completed=newly_completed,
            unlocked=newly_unlocked,
            attempts=attempts,
            xp=totals.xp
        )
        return CascadeResult(
            progress=saved,
            completed=newly_completed,
            unlocked=newly_unlocked,
            attempts_recorded=attempts,
            deltas=totals,
        )

    async def _passed_quizzes(self, user_id: str, quiz_ids: Iterable[str]) -> Set[str]:
        quiz_ids = list(dict.fromkeys(quiz_ids))
        if not quiz_ids:
            return set()
        attempts = await self.gateway.list_attempts(user_id, quiz_ids)
        return {a.quiz_id for a in attempts if a.percentage >= self.passing_threshold}

    @staticmethod
    def _requirements_met(module: Module, sub_keys: Set[str], passed: Set[str]) -> bool:
        subs_done = all(sub_module_key(module.module_id, s.id) in sub_keys for s in module.sub_modules)
        quizzes_passed = all(quiz_id in passed for quiz_id in module.quiz_ids)
        return subs_done and quizzes_passed

    async def complete_submodule(
        self,
        user_id: str,
        track: Track,
        module_id: str,
        sub_module_id: str
    ) -> UserProgress:
        """Record a finished sub-module, completing the module once all its work is done.

        A module is done when every sub-module is recorded and every quiz has
        a passing attempt. No attempts are synthesized here.
        """
        progress = await self.get_or_create_progress(user_id, track)
        module = track.find_module(module_id)
        if module is None or all(s.id != sub_module_id for s in module.sub_modules):
            return progress

        key = sub_module_key(module_id, sub_module_id)
        sub_keys = list(progress.completed_sub_modules)
        completed = list(progress.completed_modules)
        unlocked = list(progress.unlocked_modules)
        if key not in sub_keys:
            sub_keys.append(key)

        if module_id not in completed:
            passed = await self._passed_quizzes(user_id, module.quiz_ids)
            if self._requirements_met(module, set(sub_keys), passed):
                completed.append(module_id)
                newly_unlocked = self._propagate(track, completed, unlocked)
                logger.info(
                    "Module completed",
                    user_id=user_id,
                    track_id=track.track_id,
                    module_id=module_id,
                    unlocked=newly_unlocked
                )
            else:
                logger.debug("Module still pending", user_id=user_id, module_id=module_id)

        return await self.gateway.update_user_progress(
            user_id,
            track.track_id,
            progress.model_copy(update={
                "completed_modules": completed,
                "unlocked_modules": unlocked,
                "completed_sub_modules": sub_keys,
            }),
        )

    async def sync_progress(self, user_id: str, track: Track) -> UserProgress:
        """Re-evaluate every module against recorded sub-modules and passing attempts.

        Heals forward only: completed modules are never reverted. Modules
        with neither sub-modules nor quizzes have nothing to evaluate and are
        left as they are.
        """
        progress = await self.get_or_create_progress(user_id, track)
        completed = list(progress.completed_modules)
        unlocked = list(progress.unlocked_modules)
        sub_keys = set(progress.completed_sub_modules)
        passed = await self._passed_quizzes(
            user_id, (quiz_id for m in track.modules for quiz_id in m.quiz_ids)
        )

        healed = []
        for module in track.modules:
            if module.module_id in completed or not (module.sub_modules or module.quiz_ids):
                continue
            if self._requirements_met(module, sub_keys, passed):
                completed.append(module.module_id)
                healed.append(module.module_id)

        newly_unlocked = self._propagate(track, completed, unlocked)
        if not healed and not newly_unlocked:
            return progress

        logger.info(
            "Progress synchronized",
            user_id=user_id,
            track_id=track.track_id,
            completed=healed,
            unlocked=newly_unlocked
        )
        return await self.gateway.update_user_progress(
            user_id,
            track.track_id,
            progress.model_copy(update={"completed_modules": completed, "unlocked_modules": unlocked}),
        )
