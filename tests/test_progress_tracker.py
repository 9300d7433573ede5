"""
Tests for ProgressTracker summaries and business plan export.
"""
import os

from factories import make_stubs

from progress_tracker import ProgressTracker
from stage_store import StageStore


def build_store(scores):
    store = StageStore()
    store.initialize(make_stubs(["A", "B", "C", "D"]))
    for stage_id, score in enumerate(scores, start=1):
        store.complete(stage_id, f"answer {stage_id}", score, "ok")
    return store


class TestSummarize:
    def test_empty_course(self):
        progress = ProgressTracker().summarize([])
        assert progress.total_stages == 0
        assert progress.percent_complete == 0.0
        assert progress.average_score is None

    def test_partial_progress(self):
        store = build_store([90, 60])
        progress = ProgressTracker(passing_score=70).summarize(store.stages)

        assert progress.total_stages == 4
        assert progress.completed_stages == [1, 2]
        assert progress.assessment_scores == {1: 90, 2: 60}
        assert progress.average_score == 75
        assert progress.passed_stages == [1]
        assert progress.percent_complete == 50.0
        assert progress.last_updated

    def test_passing_threshold_is_inclusive(self):
        store = build_store([70])
        assert ProgressTracker(passing_score=70).summarize(store.stages).passed_stages == [1]


class TestExportPlan:
    def test_writes_markdown_file(self, tmp_path):
        tracker = ProgressTracker(storage_dir=str(tmp_path / "plans"))
        path = tracker.export_plan("AI Video Dubbing!", "# Plan\nDetails")

        assert os.path.dirname(path) == str(tmp_path / "plans")
        assert os.path.basename(path).startswith("business_plan_ai_video_dubbing_")
        with open(path, encoding="utf-8") as f:
            assert f.read() == "# Plan\nDetails"

    def test_idea_without_letters_gets_default_slug(self, tmp_path):
        tracker = ProgressTracker(storage_dir=str(tmp_path))
        path = tracker.export_plan("!!!", "plan")
        assert "business_plan_startup_" in os.path.basename(path)
