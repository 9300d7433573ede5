import logging
from typing import Dict, List, Optional, TypedDict

from langgraph.graph import END, StateGraph

from course_generator import CourseServices
from errors import (
    ContentError,
    CurriculumError,
    FinalizationError,
    GradingError,
    InvalidState,
    ServiceError,
    Unavailable,
)
from models import CompletedStage, GradingResult, Language, Stage, StageContent, StagePhase, StageStub
from progress_tracker import CourseSnapshot, ProgressTracker
from session_context import SessionContext
from stage_store import StageStore

logger = logging.getLogger(__name__)

class BootstrapState(TypedDict):
    """State of one curriculum bootstrap run"""
    generation: int
    idea: str
    language: Language
    stages: Optional[List[StageStub]]
    current_stage: str
    error: Optional[str]
    stale: bool

class SubmissionState(TypedDict):
    """State of one grading attempt"""
    generation: int
    stage_id: int
    submission: str
    result: Optional[GradingResult]
    current_stage: str
    error: Optional[str]
    stale: bool

BOOTSTRAP_TRANSITIONS = {
    "start": "request_curriculum",
    "curriculum_received": "initialize_stages",
    "stages_initialized": "load_first_stage",
}

SUBMISSION_TRANSITIONS = {
    "start": "grade",
    "graded": "complete",
    # On stage completion, advance selection
    "completed": "advance",
}

def should_continue(state: Dict, transitions: Dict[str, str]) -> str:
    """Determine the next step of a workflow based on its current state"""
    if state.get("stale"):
        return "end"
    if state.get("error"):
        logger.debug(f"Workflow stopped on error: {state['error']}")
        return "end"
    return transitions.get(state.get("current_stage", "start"), "end")

def next_selection(store: StageStore, completed_stage_id: int) -> Optional[int]:
    """Stage to select after ``completed_stage_id`` completes.

    Always the direct successor; None once the last stage is done, which
    signals that the course is waiting for finalization.
    """
    successor = store.find(completed_stage_id + 1)
    return successor.id if successor is not None else None

class ProgressionController:
    """Drives one course from curriculum bootstrap to the final business plan"""

    def __init__(self, services: CourseServices, tracker: Optional[ProgressTracker] = None):
        self.services = services
        self.tracker = tracker or ProgressTracker()
        self.store = StageStore()
        self.session: Optional[SessionContext] = None
        self._generation = 0
        self._bootstrap_workflow = self._build_bootstrap_workflow()
        self._submission_workflow = self._build_submission_workflow()

    # -- workflow graphs ----------------------------------------------------

    def _build_bootstrap_workflow(self):
        def route(state: BootstrapState) -> str:
            return should_continue(state, BOOTSTRAP_TRANSITIONS)

        workflow = StateGraph(BootstrapState)
        workflow.add_node("request_curriculum", self._request_curriculum)
        workflow.add_node("initialize_stages", self._initialize_stages)
        workflow.add_node("load_first_stage", self._load_first_stage)

        workflow.set_entry_point("request_curriculum")
        workflow.add_conditional_edges(
            "request_curriculum", route, {"initialize_stages": "initialize_stages", "end": END}
        )
        workflow.add_conditional_edges(
            "initialize_stages", route, {"load_first_stage": "load_first_stage", "end": END}
        )
        workflow.add_edge("load_first_stage", END)
        return workflow.compile()

    def _build_submission_workflow(self):
        def route(state: SubmissionState) -> str:
            return should_continue(state, SUBMISSION_TRANSITIONS)

        workflow = StateGraph(SubmissionState)
        workflow.add_node("grade", self._grade)
        workflow.add_node("complete", self._complete)
        workflow.add_node("advance", self._advance)

        workflow.set_entry_point("grade")
        workflow.add_conditional_edges("grade", route, {"complete": "complete", "end": END})
        workflow.add_conditional_edges("complete", route, {"advance": "advance", "end": END})
        workflow.add_edge("advance", END)
        return workflow.compile()

    # -- helpers ------------------------------------------------------------

    def _is_current(self, generation: int) -> bool:
        return self.session is not None and self.session.generation == generation

    def _require_session(self) -> SessionContext:
        if self.session is None:
            raise InvalidState("No course has been started")
        return self.session

    def stage_phase(self, stage_id: int) -> StagePhase:
        stage = self.store.get(stage_id)
        if stage.is_completed:
            return StagePhase.COMPLETED
        if stage.is_locked:
            return StagePhase.LOCKED
        session = self.session
        if session is not None and stage_id in session.grading:
            return StagePhase.GRADING
        if stage.content is not None:
            return StagePhase.CONTENT_READY
        if session is not None and stage_id in session.loading_content:
            return StagePhase.CONTENT_LOADING
        return StagePhase.NO_CONTENT

    def snapshot(self) -> Optional[CourseSnapshot]:
        if self.session is None:
            return None
        phases = {stage.id: self.stage_phase(stage.id) for stage in self.store.stages}
        return self.tracker.snapshot(self.session, self.store, phases)

    @property
    def can_generate_final_artifact(self) -> bool:
        return self.session is not None and self.store.is_fully_completed()

    # -- course lifecycle ---------------------------------------------------

    async def start_course(self, idea: str, language: Language = Language.EN) -> None:
        """Discard any current course and bootstrap a new one"""
        idea = (idea or "").strip()
        if not idea:
            raise InvalidState("Course idea must not be empty")

        self._generation += 1
        self.session = SessionContext(idea=idea, language=Language(language), generation=self._generation)
        self.store.clear()
        logger.info(f"Starting course (generation {self._generation}, language {self.session.language.value})")

        await self.bootstrap_curriculum()

    async def change_language(self, language: Language) -> None:
        """Restart the current course in another language, discarding all progress"""
        language = Language(language)
        if self.session is None or self.session.language is language:
            return
        logger.info(f"Language changed to {language.value}, re-bootstrapping the course")
        await self.start_course(self.session.idea, language)

    def restart(self) -> None:
        self.session = None
        self.store.clear()
        logger.info("Course discarded")

    async def bootstrap_curriculum(self) -> None:
        session = self._require_session()
        if session.bootstrapping:
            raise InvalidState("Curriculum generation is already in progress")

        # Responses still in flight for the previous curriculum become stale
        self._generation += 1
        session.generation = self._generation
        session.loading_content = set()
        session.grading = set()

        self.store.clear()
        session.active_stage_id = None
        session.final_artifact = None
        session.curriculum_error = None
        session.stage_errors.clear()
        session.bootstrapping = True
        generation = session.generation
        try:
            state = await self._bootstrap_workflow.ainvoke({
                "generation": generation,
                "idea": session.idea,
                "language": session.language,
                "stages": None,
                "current_stage": "start",
                "error": None,
                "stale": False,
            })
        finally:
            session.bootstrapping = False

        if state.get("stale") or not self._is_current(generation):
            logger.info(f"Discarded curriculum bootstrap for stale generation {generation}")
            return
        if state.get("error"):
            raise CurriculumError(state["error"])

    async def _request_curriculum(self, state: BootstrapState) -> Dict:
        generation = state["generation"]
        if not self._is_current(generation):
            return {"stale": True}
        try:
            stages = await self.services.generate_curriculum(state["idea"], state["language"])
        except ServiceError as e:
            if not self._is_current(generation):
                return {"stale": True}
            message = "Failed to generate the curriculum. Please try again."
            self.session.curriculum_error = message
            logger.error(f"Curriculum generation failed: {str(e)}")
            return {"error": message}

        if not self._is_current(generation):
            logger.info(f"Discarding curriculum response for stale generation {generation}")
            return {"stale": True}
        if not stages:
            message = "The curriculum came back empty. Please try again."
            self.session.curriculum_error = message
            return {"error": message}
        return {"stages": stages, "current_stage": "curriculum_received"}

    async def _initialize_stages(self, state: BootstrapState) -> Dict:
        if not self._is_current(state["generation"]):
            return {"stale": True}
        self.store.initialize(state["stages"])
        self.session.active_stage_id = 1
        return {"current_stage": "stages_initialized"}

    async def _load_first_stage(self, state: BootstrapState) -> Dict:
        if not self._is_current(state["generation"]):
            return {"stale": True}
        try:
            await self.fetch_content(1)
        except ContentError as e:
            # Stage-level failure; the curriculum itself is usable
            logger.warning(f"First stage content failed to load: {str(e)}")
        return {"current_stage": "first_stage_loaded"}

    # -- stage content ------------------------------------------------------

    async def select_stage(self, stage_id: int) -> Optional[StageContent]:
        """Make a stage active, fetching its content unless it is cached"""
        session = self._require_session()
        stage = self.store.find(stage_id)
        if stage is None or stage.is_locked:
            logger.debug(f"Ignoring selection of unavailable stage {stage_id}")
            return None

        session.active_stage_id = stage_id
        if stage.content is not None:
            return stage.content
        return await self.fetch_content(stage_id)

    async def fetch_content(self, stage_id: int) -> Optional[StageContent]:
        """Return the stage content, calling the content service at most once.

        Returns None while another fetch for the same stage is in flight, or
        when the response arrives for a discarded course.
        """
        session = self._require_session()
        stage = self.store.get(stage_id)
        if stage.is_locked:
            raise InvalidState(f"Stage {stage_id} is locked")
        if stage.content is not None:
            return stage.content
        if stage_id in session.loading_content:
            logger.debug(f"Content for stage {stage_id} is already loading")
            return None

        generation = session.generation
        loading = session.loading_content
        loading.add(stage_id)
        session.stage_errors.pop(stage_id, None)
        try:
            logger.info(f"Requesting content for stage {stage_id}: {stage.title}")
            content = await self.services.generate_stage_content(stage.title, session.idea, session.language)
        except ServiceError as e:
            if not self._is_current(generation):
                logger.info(f"Discarding content failure for stale generation {generation}")
                return None
            message = f'Failed to load content for "{stage.title}". Please try again.'
            session.stage_errors[stage_id] = message
            raise ContentError(message, stage_id) from e
        finally:
            loading.discard(stage_id)

        if not self._is_current(generation):
            logger.info(f"Discarding content for stage {stage_id} of stale generation {generation}")
            return None
        self.store.set_content(stage_id, content)
        return content

    # -- grading ------------------------------------------------------------

    async def submit_assignment(self, stage_id: int, submission: str) -> Optional[Stage]:
        """Grade a submission, complete the stage and advance to the next one"""
        session = self._require_session()
        if not submission or not submission.strip():
            raise InvalidState("Submission must not be empty")

        stage = self.store.get(stage_id)
        if stage.is_locked:
            raise InvalidState(f"Stage {stage_id} is locked")
        if stage.is_completed:
            raise InvalidState(f"Stage {stage_id} is already completed")
        if stage.content is None:
            raise InvalidState(f"Stage {stage_id} has no content yet")
        if stage_id in session.grading:
            raise InvalidState(f"Stage {stage_id} is already being graded")

        generation = session.generation
        grading = session.grading
        grading.add(stage_id)
        session.stage_errors.pop(stage_id, None)
        try:
            state = await self._submission_workflow.ainvoke({
                "generation": generation,
                "stage_id": stage_id,
                "submission": submission,
                "result": None,
                "current_stage": "start",
                "error": None,
                "stale": False,
            })
        finally:
            grading.discard(stage_id)

        if state.get("stale") or not self._is_current(generation):
            logger.info(f"Discarded grading result for stale generation {generation}")
            return None
        if state.get("error"):
            raise GradingError(state["error"], stage_id)
        return self.store.get(stage_id)

    async def _grade(self, state: SubmissionState) -> Dict:
        generation = state["generation"]
        if not self._is_current(generation):
            return {"stale": True}
        session = self.session
        stage = self.store.get(state["stage_id"])
        try:
            result = await self.services.grade_submission(
                stage.title, stage.content.assignment, state["submission"], session.idea, session.language
            )
        except ServiceError as e:
            if not self._is_current(generation):
                return {"stale": True}
            message = "Failed to grade your assignment. Please try again."
            session.stage_errors[stage.id] = message
            logger.error(f"Grading failed for stage {stage.id}: {str(e)}")
            return {"error": message}

        if not self._is_current(generation):
            logger.info(f"Discarding grade for stage {stage.id} of stale generation {generation}")
            return {"stale": True}
        return {"result": result, "current_stage": "graded"}

    async def _complete(self, state: SubmissionState) -> Dict:
        if not self._is_current(state["generation"]):
            return {"stale": True}
        result = state["result"]
        self.store.complete(state["stage_id"], state["submission"], result.score, result.feedback)
        return {"current_stage": "completed"}

    async def _advance(self, state: SubmissionState) -> Dict:
        if not self._is_current(state["generation"]):
            return {"stale": True}
        next_id = next_selection(self.store, state["stage_id"])
        if next_id is None:
            self.session.active_stage_id = None
            logger.info("All stages completed, the business plan can now be generated")
        else:
            try:
                await self.select_stage(next_id)
            except ContentError as e:
                logger.warning(f"Content for stage {next_id} failed to load: {str(e)}")
        return {"current_stage": "advanced"}

    # -- finalization -------------------------------------------------------

    async def generate_final_artifact(self) -> Optional[str]:
        """Synthesize the business plan from every stage's submission"""
        session = self._require_session()
        if not self.store.is_fully_completed():
            raise Unavailable("Complete every stage before generating the business plan")
        if session.final_artifact is not None:
            return session.final_artifact
        if session.generating_plan:
            raise InvalidState("The business plan is already being generated")

        completed = [
            CompletedStage(id=stage.id, title=stage.title, submission=stage.submission)
            for stage in self.store.stages
        ]
        generation = session.generation
        session.generating_plan = True
        session.finalization_error = None
        try:
            plan = await self.services.generate_plan(session.idea, completed, session.language)
        except ServiceError as e:
            if not self._is_current(generation):
                return None
            message = "Failed to generate your business plan. Please try again."
            session.finalization_error = message
            raise FinalizationError(message) from e
        finally:
            session.generating_plan = False

        if not self._is_current(generation):
            logger.info(f"Discarding business plan for stale generation {generation}")
            return None
        if not plan or not plan.strip():
            message = "The business plan came back empty. Please try again."
            session.finalization_error = message
            raise FinalizationError(message)

        session.final_artifact = plan
        logger.info("Business plan generated")
        return plan

    def export_final_artifact(self) -> str:
        """Write the business plan to a Markdown file"""
        session = self._require_session()
        if session.final_artifact is None:
            raise Unavailable("The business plan has not been generated yet")
        return self.tracker.export_plan(session.idea, session.final_artifact)
