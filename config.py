import os
from dataclasses import dataclass
from dotenv import load_dotenv

# No-op for variables that are already set
load_dotenv(override=False)

@dataclass(frozen=True)
class LLMConfig:
    model: str
    base_url: str
    curriculum_temperature: float = 0.7
    content_temperature: float = 0.5
    grading_temperature: float = 0.5
    plan_temperature: float = 0.6

@dataclass(frozen=True)
class CourseConfig:
    course_length: int
    passing_score: float

@dataclass(frozen=True)
class Settings:
    llm: LLMConfig
    course: CourseConfig
    log_level: str

def _int_env(name: str, default: int) -> int:
    value = os.getenv(name, "").strip()
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {value!r}")

def _float_env(name: str, default: float) -> float:
    value = os.getenv(name, "").strip()
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {value!r}")

def get_settings() -> Settings:
    """Build settings from the current environment"""
    course_length = _int_env("COURSE_LENGTH", 10)
    if course_length < 1:
        raise ValueError("COURSE_LENGTH must be at least 1")

    return Settings(
        llm=LLMConfig(
            model=os.getenv("OLLAMA_MODEL", "llama3.2"),
            base_url=os.getenv("OLLAMA_BASE_URL", "http://localhost:11434"),
        ),
        course=CourseConfig(
            course_length=course_length,
            passing_score=_float_env("PASSING_SCORE", 70.0),
        ),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
