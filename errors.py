from typing import Optional

class CourseError(Exception):
    """Base class for all course progression errors"""

class ServiceError(CourseError):
    """An external generation/grading service failed (transport or parsing)"""

class InvalidState(CourseError):
    """An operation was attempted out of sequence"""

class NotFound(InvalidState):
    def __init__(self, stage_id: int):
        super().__init__(f"Stage {stage_id} does not exist")
        self.stage_id = stage_id

class AlreadySet(InvalidState):
    def __init__(self, stage_id: int):
        super().__init__(f"Content for stage {stage_id} is already set")
        self.stage_id = stage_id

class Unavailable(InvalidState):
    """The final artifact cannot be generated yet"""

class CurriculumError(CourseError):
    """Curriculum bootstrap failed; no stages exist"""

class StageError(CourseError):
    def __init__(self, message: str, stage_id: Optional[int] = None):
        super().__init__(message)
        self.stage_id = stage_id

class ContentError(StageError):
    """Content fetch for a single stage failed"""

class GradingError(StageError):
    """A single grading attempt failed; the stage stays incomplete"""

class FinalizationError(CourseError):
    """Plan synthesis failed; completed stages are untouched"""
