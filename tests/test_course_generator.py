"""
Tests for the Ollama-backed services: JSON extraction, curriculum parsing,
pydantic validation and ServiceError wrapping. ChatOllama is replaced by
a fake, so no model server is contacted.
"""
import json

import pytest
from factories import make_content
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

import course_generator
from config import CourseConfig, LLMConfig, Settings
from course_generator import OllamaCourseServices, extract_json, format_submissions, parse_curriculum
from errors import ServiceError
from models import CompletedStage, Language


class FakeChat:
    """Stands in for ChatOllama; replies with queued responses"""
    instances = []
    responses = []

    def __init__(self, **kwargs):
        self.kwargs = kwargs
        self.messages = None
        FakeChat.instances.append(self)

    async def ainvoke(self, messages):
        self.messages = messages
        response = FakeChat.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return AIMessage(content=response)


@pytest.fixture
def fake_chat(monkeypatch):
    FakeChat.instances = []
    FakeChat.responses = []
    monkeypatch.setattr(course_generator, "ChatOllama", FakeChat)
    return FakeChat


@pytest.fixture
def llm_services():
    settings = Settings(
        llm=LLMConfig(model="test-model", base_url="http://ollama.test"),
        course=CourseConfig(course_length=3, passing_score=70.0),
        log_level="DEBUG",
    )
    return OllamaCourseServices(settings)


def curriculum_json(count: int) -> str:
    return json.dumps({"stages": [
        {"title": f"Stage {i}", "description": f"Description {i}"} for i in range(1, count + 1)
    ]})


class TestExtractJson:
    def test_plain_json(self):
        assert extract_json('{"score": 80}') == {"score": 80}

    def test_fenced_json(self):
        text = 'Here you go:\n```json\n{"score": 80, "feedback": "ok"}\n```'
        assert extract_json(text) == {"score": 80, "feedback": "ok"}

    def test_invalid_json_raises(self):
        with pytest.raises(ValueError):
            extract_json("not json at all")


class TestParseCurriculum:
    def test_bare_list(self):
        stages = parse_curriculum([{"title": "A", "description": "a"}], 10)
        assert [s.title for s in stages] == ["A"]

    def test_wrapped_in_object_keeps_order(self):
        stages = parse_curriculum(json.loads(curriculum_json(3)), 10)
        assert [s.title for s in stages] == ["Stage 1", "Stage 2", "Stage 3"]

    def test_unknown_wrapper_key(self):
        payload = {"course": [{"title": "A", "description": "a"}]}
        assert len(parse_curriculum(payload, 10)) == 1

    def test_truncated_to_course_length(self):
        stages = parse_curriculum(json.loads(curriculum_json(12)), 10)
        assert len(stages) == 10
        assert stages[-1].title == "Stage 10"

    @pytest.mark.parametrize("payload", [[], {}, {"stages": []}, "text"])
    def test_missing_stages_rejected(self, payload):
        with pytest.raises(ValueError):
            parse_curriculum(payload, 10)


class TestFormatSubmissions:
    def test_lists_stages_in_order(self):
        text = format_submissions([
            CompletedStage(id=1, title="Ideation", submission="idea work"),
            CompletedStage(id=2, title="MVP", submission="mvp work"),
        ])
        assert text.index("Stage 1: Ideation") < text.index("Stage 2: MVP")
        assert "idea work" in text and "mvp work" in text


class TestOllamaCourseServices:
    @pytest.mark.asyncio
    async def test_generate_curriculum(self, fake_chat, llm_services):
        fake_chat.responses = [curriculum_json(3)]
        stages = await llm_services.generate_curriculum("Video dubbing", Language.ZH)

        assert [s.title for s in stages] == ["Stage 1", "Stage 2", "Stage 3"]
        chat = fake_chat.instances[0]
        assert chat.kwargs["model"] == "test-model"
        assert chat.kwargs["base_url"] == "http://ollama.test"
        assert chat.kwargs["format"] == "json"
        assert chat.kwargs["temperature"] == 0.7
        system, human = chat.messages
        assert isinstance(system, SystemMessage) and isinstance(human, HumanMessage)
        assert "Video dubbing" in human.content
        assert "exactly 3" in human.content
        assert Language.ZH.instruction in human.content

    @pytest.mark.asyncio
    async def test_generate_stage_content_accepts_camel_case(self, fake_chat, llm_services):
        content = make_content("MVP")
        fake_chat.responses = [content.model_dump_json(by_alias=True)]
        result = await llm_services.generate_stage_content("MVP", "Video dubbing", Language.EN)
        assert result == content

    @pytest.mark.asyncio
    async def test_generate_stage_content_invalid_shape(self, fake_chat, llm_services):
        fake_chat.responses = ['{"theory": "just a string"}']
        with pytest.raises(ServiceError):
            await llm_services.generate_stage_content("MVP", "Video dubbing", Language.EN)

    @pytest.mark.asyncio
    async def test_grade_submission(self, fake_chat, llm_services):
        fake_chat.responses = ['{"score": 85, "feedback": "Strong problem statement."}']
        result = await llm_services.grade_submission("Ideation", "Write a pitch", "My pitch", "Idea", Language.EN)
        assert result.score == 85
        assert result.feedback == "Strong problem statement."
        prompt = fake_chat.instances[0].messages[1].content
        assert "My pitch" in prompt and "Write a pitch" in prompt
        assert "70 is passing" in prompt

    @pytest.mark.asyncio
    async def test_score_out_of_range_rejected(self, fake_chat, llm_services):
        fake_chat.responses = ['{"score": 140, "feedback": "Too generous"}']
        with pytest.raises(ServiceError):
            await llm_services.grade_submission("Ideation", "a", "b", "c", Language.EN)

    @pytest.mark.asyncio
    async def test_generate_plan_is_free_text(self, fake_chat, llm_services):
        fake_chat.responses = ["## 1. Executive Summary\nWe dub videos."]
        completed = [CompletedStage(id=1, title="Ideation", submission="idea work")]
        plan = await llm_services.generate_plan("Video dubbing", completed, Language.EN)

        assert plan.startswith("## 1. Executive Summary")
        chat = fake_chat.instances[0]
        assert chat.kwargs["format"] is None
        assert "idea work" in chat.messages[1].content

    @pytest.mark.asyncio
    async def test_transport_error_wrapped(self, fake_chat, llm_services):
        fake_chat.responses = [ConnectionError("connection refused")]
        with pytest.raises(ServiceError) as exc_info:
            await llm_services.generate_curriculum("Idea", Language.EN)
        assert isinstance(exc_info.value.__cause__, ConnectionError)

    @pytest.mark.asyncio
    async def test_empty_response_is_an_error(self, fake_chat, llm_services):
        fake_chat.responses = ["   "]
        with pytest.raises(ServiceError):
            await llm_services.generate_plan("Idea", [], Language.EN)
