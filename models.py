from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field

class Language(str, Enum):
    EN = "en"
    ZH = "zh"

    @property
    def instruction(self) -> str:
        """Sentence appended to every model prompt"""
        if self is Language.ZH:
            return "Respond in Chinese (Simplified)."
        return "Respond in English."

class LockState(str, Enum):
    LOCKED = "locked"
    UNLOCKED = "unlocked"

class CompletionState(str, Enum):
    NOT_COMPLETED = "not_completed"
    COMPLETED = "completed"

class StagePhase(str, Enum):
    """Derived per-stage state, never stored"""
    LOCKED = "locked"
    NO_CONTENT = "no_content"
    CONTENT_LOADING = "content_loading"
    CONTENT_READY = "content_ready"
    GRADING = "grading"
    COMPLETED = "completed"

class ContentSection(BaseModel):
    subtitle: str
    text: str

class StructuredContent(BaseModel):
    title: str
    sections: List[ContentSection]

class StageContent(BaseModel):
    # Model output may use camelCase keys
    model_config = ConfigDict(populate_by_name=True)

    theory: StructuredContent
    case_study: StructuredContent = Field(alias="caseStudy")
    practical_exercise: StructuredContent = Field(alias="practicalExercise")
    assignment: str

class StageStub(BaseModel):
    title: str
    description: str

class GradingResult(BaseModel):
    score: float = Field(ge=0, le=100)
    feedback: str

class CompletedStage(BaseModel):
    id: int
    title: str
    submission: str

class Stage(BaseModel):
    id: int
    title: str
    description: str
    lock_state: LockState = LockState.LOCKED
    completion_state: CompletionState = CompletionState.NOT_COMPLETED
    content: Optional[StageContent] = None
    submission: Optional[str] = None
    score: Optional[float] = None
    feedback: Optional[str] = None

    @property
    def is_locked(self) -> bool:
        return self.lock_state is LockState.LOCKED

    @property
    def is_completed(self) -> bool:
        return self.completion_state is CompletionState.COMPLETED
