import os
import re
import logging
from typing import Dict, List, Optional
from datetime import datetime
from pydantic import BaseModel

from models import Language, Stage, StagePhase

logger = logging.getLogger(__name__)

class StageView(BaseModel):
    stage: Stage
    phase: StagePhase
    error: Optional[str] = None

class CourseProgress(BaseModel):
    total_stages: int
    completed_stages: List[int]
    assessment_scores: Dict[int, float]
    average_score: Optional[float] = None
    passed_stages: List[int]
    percent_complete: float
    last_updated: str

class CourseSnapshot(BaseModel):
    """Read-only copy of the course for the presentation layer"""
    idea: str
    language: Language
    active_stage_id: Optional[int] = None
    stages: List[StageView]
    final_artifact: Optional[str] = None
    curriculum_error: Optional[str] = None
    finalization_error: Optional[str] = None
    bootstrapping: bool = False
    generating_plan: bool = False
    fully_completed: bool = False
    progress: CourseProgress

    @property
    def active_stage(self) -> Optional[StageView]:
        for view in self.stages:
            if view.stage.id == self.active_stage_id:
                return view
        return None

class ProgressTracker:
    def __init__(self, storage_dir: str = "plans", passing_score: float = 70.0):
        self.storage_dir = storage_dir
        self.passing_score = passing_score

    def _ensure_storage_dir(self):
        """Ensure the storage directory exists"""
        if not os.path.exists(self.storage_dir):
            os.makedirs(self.storage_dir)

    def summarize(self, stages: List[Stage]) -> CourseProgress:
        """Progress summary over the given stages"""
        completed = [stage for stage in stages if stage.is_completed]
        scores = {stage.id: stage.score for stage in completed if stage.score is not None}
        average = sum(scores.values()) / len(scores) if scores else None

        return CourseProgress(
            total_stages=len(stages),
            completed_stages=[stage.id for stage in completed],
            assessment_scores=scores,
            average_score=average,
            passed_stages=[stage_id for stage_id, score in scores.items() if score >= self.passing_score],
            percent_complete=100.0 * len(completed) / len(stages) if stages else 0.0,
            last_updated=datetime.now().isoformat(),
        )

    def snapshot(self, session, store, phases: Dict[int, StagePhase]) -> CourseSnapshot:
        """Deep copy of the session and stage store"""
        stages = [stage.model_copy(deep=True) for stage in store.stages]
        views = [
            StageView(stage=stage, phase=phases[stage.id], error=session.stage_errors.get(stage.id))
            for stage in stages
        ]
        return CourseSnapshot(
            idea=session.idea,
            language=session.language,
            active_stage_id=session.active_stage_id,
            stages=views,
            final_artifact=session.final_artifact,
            curriculum_error=session.curriculum_error,
            finalization_error=session.finalization_error,
            bootstrapping=session.bootstrapping,
            generating_plan=session.generating_plan,
            fully_completed=store.is_fully_completed(),
            progress=self.summarize(stages),
        )

    def export_plan(self, idea: str, plan: str) -> str:
        """Write the business plan as Markdown and return the file path"""
        try:
            self._ensure_storage_dir()

            slug = re.sub(r"[^a-z0-9]+", "_", idea.lower()).strip("_")[:40] or "startup"
            file_name = f"business_plan_{slug}_{datetime.now().strftime('%Y%m%d_%H%M%S')}.md"
            file_path = os.path.join(self.storage_dir, file_name)

            with open(file_path, 'w', encoding='utf-8') as f:
                f.write(plan)

            logger.info(f"Business plan exported: {file_path}")
            return file_path

        except Exception as e:
            logger.error(f"Error exporting business plan: {str(e)}")
            raise
