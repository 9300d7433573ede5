import json
import logging
import re
from typing import Any, List, Optional, Protocol, Sequence

from langchain_community.chat_models import ChatOllama
from langchain_core.messages import HumanMessage, SystemMessage

from config import LLMConfig, Settings, get_settings
from errors import ServiceError
from models import CompletedStage, GradingResult, Language, StageContent, StageStub

logger = logging.getLogger(__name__)

class CourseServices(Protocol):
    """External generation, grading and plan synthesis services"""

    async def generate_curriculum(self, idea: str, language: Language) -> List[StageStub]:
        ...

    async def generate_stage_content(self, stage_title: str, idea: str, language: Language) -> StageContent:
        ...

    async def grade_submission(self, stage_title: str, assignment: str, submission: str,
                               idea: str, language: Language) -> GradingResult:
        ...

    async def generate_plan(self, idea: str, completed_stages: Sequence[CompletedStage],
                            language: Language) -> str:
        ...

def extract_json(text: str) -> Any:
    """Parse JSON from an LLM response, tolerating markdown code fences"""
    cleaned = text.strip()
    fence_match = re.search(r"```(?:json)?\s*(.*?)```", cleaned, re.DOTALL)
    if fence_match:
        cleaned = fence_match.group(1).strip()
    return json.loads(cleaned)

def parse_curriculum(payload: Any, course_length: int) -> List[StageStub]:
    """Turn a decoded curriculum response into ordered stage stubs"""
    if isinstance(payload, dict):
        # Models in JSON mode usually wrap the array in an object
        payload = payload.get("stages") or payload.get("curriculum") or next(
            (value for value in payload.values() if isinstance(value, list)), None
        )
    if not isinstance(payload, list) or not payload:
        raise ValueError("Curriculum response does not contain a list of stages")

    stages = [StageStub.model_validate(item) for item in payload]
    if len(stages) > course_length:
        logger.warning(f"Got {len(stages)} stages, truncating to {course_length}")
        stages = stages[:course_length]
    return stages

def format_submissions(completed_stages: Sequence[CompletedStage]) -> str:
    return "\n\n".join(
        f"Stage {stage.id}: {stage.title}\nStudent's Submission:\n{stage.submission}\n---"
        for stage in completed_stages
    )

class OllamaCourseServices:
    """CourseServices backed by a local Ollama model"""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.course_length = self.settings.course.course_length
        self.passing_score = self.settings.course.passing_score

    def _llm(self, temperature: float, json_mode: bool = True) -> ChatOllama:
        llm_config: LLMConfig = self.settings.llm
        return ChatOllama(
            model=llm_config.model,
            base_url=llm_config.base_url,
            temperature=temperature,
            format="json" if json_mode else None,
        )

    async def _ask(self, system: str, prompt: str, temperature: float, json_mode: bool = True) -> str:
        messages = [
            SystemMessage(content=system),
            HumanMessage(content=prompt),
        ]
        response = await self._llm(temperature, json_mode).ainvoke(messages)
        content = response.content if isinstance(response.content, str) else str(response.content)
        logger.debug(f"LLM response: {content[:500]}")
        if not content.strip():
            raise ValueError("Empty response from model")
        return content

    async def generate_curriculum(self, idea: str, language: Language) -> List[StageStub]:
        try:
            prompt = f"""
            Outline a startup methodology course in exactly {self.course_length} distinct, sequential stages.
            The course guides a founder from idea to scale (0 to 1, then 1 to 10).
            The first stages cover the '0 to 1' phase: ideation, customer discovery, MVP building and product-market fit.
            The later stages cover the '1 to 10' phase: growth, scaling, fundraising and company culture.
            Tailor each stage title and description to this startup idea: "{idea}".

            Return a JSON object of the form:
            {{"stages": [{{"title": "...", "description": "one sentence"}}]}}

            {language.instruction}
            """
            content = await self._ask(
                "You are an expert in startup methodologies, combining Y Combinator's principles with the Lean Startup methodology.",
                prompt,
                self.settings.llm.curriculum_temperature,
            )
            stages = parse_curriculum(extract_json(content), self.course_length)
            logger.info(f"Generated curriculum with {len(stages)} stages")
            return stages

        except Exception as e:
            logger.error(f"Error generating curriculum: {str(e)}", exc_info=True)
            raise ServiceError("Failed to communicate with the AI model for curriculum generation.") from e

    async def generate_stage_content(self, stage_title: str, idea: str, language: Language) -> StageContent:
        try:
            prompt = f"""
            Generate detailed learning content for the stage: "{stage_title}".
            The content is for a founder building a startup with the idea: "{idea}".

            Structure the content into four parts: theory, caseStudy, practicalExercise and assignment.
            theory, caseStudy and practicalExercise each have a "title" and a list of "sections",
            and every section has a "subtitle" and its "text".
            The assignment is a single, specific, graded task that applies "{stage_title}" to the idea
            and asks for a clear deliverable (e.g. 'Write a 300-word value proposition...'). Use Markdown.

            Return a JSON object of the form:
            {{"theory": {{"title": "...", "sections": [{{"subtitle": "...", "text": "..."}}]}},
              "caseStudy": {{...}}, "practicalExercise": {{...}}, "assignment": "..."}}

            {language.instruction}
            """
            content = await self._ask(
                "You are an expert curriculum designer creating focused, practical startup learning content.",
                prompt,
                self.settings.llm.content_temperature,
            )
            return StageContent.model_validate(extract_json(content))

        except Exception as e:
            logger.error(f"Error generating content for stage '{stage_title}': {str(e)}", exc_info=True)
            raise ServiceError("Failed to communicate with the AI model for stage content generation.") from e

    async def grade_submission(self, stage_title: str, assignment: str, submission: str,
                               idea: str, language: Language) -> GradingResult:
        try:
            prompt = f"""
            Evaluate a student's assignment submission.
            - Student's Startup Idea: "{idea}"
            - Current Learning Stage: "{stage_title}"
            - Assignment Prompt: "{assignment}"
            - Student's Submission: "{submission}"

            1. Assess how well the submission answers the assignment prompt.
            2. Evaluate its quality against the principles of the "{stage_title}" stage.
            3. Give a numerical score from 0 to 100. A score of {self.passing_score:g} is passing. Be fair but critical.
            4. Write concise, actionable feedback in Markdown: strengths first, then specific improvements.

            Return a JSON object of the form: {{"score": 0-100, "feedback": "..."}}

            {language.instruction}
            """
            content = await self._ask(
                "You are an AI startup mentor and objective, constructive grader.",
                prompt,
                self.settings.llm.grading_temperature,
            )
            return GradingResult.model_validate(extract_json(content))

        except Exception as e:
            logger.error(f"Error grading assignment for stage '{stage_title}': {str(e)}", exc_info=True)
            raise ServiceError("Failed to communicate with the AI model for assignment grading.") from e

    async def generate_plan(self, idea: str, completed_stages: Sequence[CompletedStage],
                            language: Language) -> str:
        try:
            prompt = f"""
            Generate a comprehensive business plan for a startup based on the founder's coursework.

            **Startup Idea:** "{idea}"

            **Founder's Coursework Summary:**
            The founder completed a {len(completed_stages)}-stage startup course. Their assignment submissions:
            {format_submissions(completed_stages)}

            Write a professional, well-structured plan in Markdown using these exact headers:
            ## 1. Executive Summary
            ## 2. The Problem
            ## 3. The Solution
            ## 4. Target Market
            ## 5. Go-to-Market Strategy
            ## 6. Competitive Landscape
            ## 7. The Team (placeholder for the founder to fill in)
            ## 8. Financial Projections (business model and next steps, do not invent numbers)
            ## 9. Future Roadmap (6, 12 and 18-month milestones)

            Be encouraging but realistic, and reflect the founder's own work throughout.

            {language.instruction}
            """
            return await self._ask(
                "You are an expert startup consultant and business plan writer.",
                prompt,
                self.settings.llm.plan_temperature,
                json_mode=False,
            )

        except Exception as e:
            logger.error(f"Error generating business plan: {str(e)}", exc_info=True)
            raise ServiceError("Failed to communicate with the AI model for business plan generation.") from e
