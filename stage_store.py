import logging
from typing import List, Optional, Sequence

from errors import AlreadySet, InvalidState, NotFound
from models import CompletionState, LockState, Stage, StageContent, StageStub

logger = logging.getLogger(__name__)

class StageStore:
    """Ordered stages of one course instance.

    Stage ids are the contiguous range 1..N. Stage 1 starts unlocked and
    stage k+1 is unlocked only by completing stage k. A stage's content is
    its own cache entry and is written at most once.
    """

    def __init__(self):
        self._stages: List[Stage] = []

    def __len__(self) -> int:
        return len(self._stages)

    @property
    def stages(self) -> List[Stage]:
        return list(self._stages)

    def initialize(self, stage_stubs: Sequence[StageStub]) -> None:
        """Replace any prior stages with fresh ones built from the curriculum"""
        if not stage_stubs:
            raise ValueError("Curriculum must contain at least one stage")

        self._stages = [
            Stage(
                id=index,
                title=stub.title,
                description=stub.description,
                lock_state=LockState.UNLOCKED if index == 1 else LockState.LOCKED,
            )
            for index, stub in enumerate(stage_stubs, start=1)
        ]
        logger.info(f"Stage store initialized with {len(self._stages)} stages")

    def clear(self) -> None:
        self._stages = []

    def find(self, stage_id: int) -> Optional[Stage]:
        if 1 <= stage_id <= len(self._stages):
            return self._stages[stage_id - 1]
        return None

    def get(self, stage_id: int) -> Stage:
        stage = self.find(stage_id)
        if stage is None:
            raise NotFound(stage_id)
        return stage

    def set_content(self, stage_id: int, content: StageContent) -> None:
        stage = self.get(stage_id)
        if stage.content is not None:
            raise AlreadySet(stage_id)
        stage.content = content
        logger.debug(f"Cached content for stage {stage_id}")

    def complete(self, stage_id: int, submission: str, score: float, feedback: str) -> None:
        """Record a graded submission and unlock the direct successor"""
        stage = self.get(stage_id)
        if stage.is_locked:
            raise InvalidState(f"Stage {stage_id} is locked")
        if stage.is_completed:
            raise InvalidState(f"Stage {stage_id} is already completed")

        # Replace the whole record so readers never see a half-written stage
        self._stages[stage_id - 1] = stage.model_copy(update={
            "completion_state": CompletionState.COMPLETED,
            "submission": submission,
            "score": score,
            "feedback": feedback,
        })

        successor = self.find(stage_id + 1)
        if successor is not None:
            successor.lock_state = LockState.UNLOCKED
            logger.info(f"Stage {stage_id} completed, stage {successor.id} unlocked")
        else:
            logger.info(f"Stage {stage_id} completed, it was the last stage")

    def is_fully_completed(self) -> bool:
        return bool(self._stages) and all(stage.is_completed for stage in self._stages)
