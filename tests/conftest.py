"""
Shared pytest fixtures. The LLM services are always replaced by
FakeCourseServices, so no model server is needed.
"""
import os
import sys

_tests_dir = os.path.dirname(__file__)
for _p in (_tests_dir, os.path.join(_tests_dir, "..")):
    if _p not in sys.path:
        sys.path.insert(0, _p)

import pytest

from factories import FakeCourseServices, make_stubs

from progress_tracker import ProgressTracker
from progression import ProgressionController
from stage_store import StageStore


@pytest.fixture
def services():
    return FakeCourseServices()


@pytest.fixture
def controller(services, tmp_path):
    return ProgressionController(services, ProgressTracker(storage_dir=str(tmp_path / "plans")))


@pytest.fixture
def store():
    store = StageStore()
    store.initialize(make_stubs())
    return store
