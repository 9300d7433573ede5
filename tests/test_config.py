"""
Smoke tests for settings loading from the environment.
"""
import pytest

from config import get_settings


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("OLLAMA_MODEL", "OLLAMA_BASE_URL", "COURSE_LENGTH", "PASSING_SCORE", "LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)


class TestDefaults:
    def test_default_values(self):
        s = get_settings()
        assert s.llm.model == "llama3.2"
        assert s.llm.base_url == "http://localhost:11434"
        assert s.course.course_length == 10
        assert s.course.passing_score == 70.0
        assert s.log_level == "INFO"

    def test_settings_are_frozen(self):
        s = get_settings()
        with pytest.raises(Exception):
            s.log_level = "DEBUG"


class TestOverrides:
    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("OLLAMA_MODEL", "mistral")
        monkeypatch.setenv("COURSE_LENGTH", "5")
        monkeypatch.setenv("PASSING_SCORE", "65.5")
        monkeypatch.setenv("LOG_LEVEL", "debug")
        s = get_settings()
        assert s.llm.model == "mistral"
        assert s.course.course_length == 5
        assert s.course.passing_score == 65.5
        assert s.log_level == "DEBUG"

    @pytest.mark.parametrize("value", ["ten", "0", "-3"])
    def test_invalid_course_length(self, monkeypatch, value):
        monkeypatch.setenv("COURSE_LENGTH", value)
        with pytest.raises(ValueError):
            get_settings()

    def test_invalid_passing_score(self, monkeypatch):
        monkeypatch.setenv("PASSING_SCORE", "high")
        with pytest.raises(ValueError):
            get_settings()
