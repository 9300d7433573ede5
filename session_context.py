from dataclasses import dataclass, field
from typing import Dict, Optional, Set

from models import Language

@dataclass
class SessionContext:
    """State of one active course, owned and mutated by the controller.

    ``generation`` identifies the course instance; responses started for an
    older generation are discarded.
    """
    idea: str
    language: Language
    generation: int
    active_stage_id: Optional[int] = None
    final_artifact: Optional[str] = None

    # In-flight guards, one entry per stage
    loading_content: Set[int] = field(default_factory=set)
    grading: Set[int] = field(default_factory=set)
    bootstrapping: bool = False
    generating_plan: bool = False

    # Latest user-facing error per scope
    curriculum_error: Optional[str] = None
    stage_errors: Dict[int, str] = field(default_factory=dict)
    finalization_error: Optional[str] = None
