"""Shared fixtures for the feedback wizard test suite."""

import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pytest

# Add the project root to the path so tests can import main and the package
sys.path.insert(0, str(Path(__file__).parent.parent))

from feedback_wizard.config import WizardConfig
from feedback_wizard.gateway import SubmissionGateway
from feedback_wizard.models import (
    Question,
    Section,
    StorageError,
    SubmissionPayload,
    SubmissionResult,
)
from feedback_wizard.scheduler import ManualScheduler
from feedback_wizard.storage import KeyValueStore, MemoryStore
from feedback_wizard.wizard_logging import observability_hooks, performance_monitor

START_MS = 1_700_000_000_000

EVENT_TYPES = (
    "draft_restored",
    "draft_discarded",
    "draft_saved",
    "draft_cleared",
    "draft_save_failed",
    "wizard_mounted",
    "wizard_unmounted",
    "wizard_step_changed",
    "feedback_submitted",
    "feedback_submit_failed",
    "gesture_recognized",
)


class CountingStore(MemoryStore):
    """MemoryStore that counts writes."""

    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        super().__init__(initial)
        self.writes: List[Tuple[str, str]] = []

    def set(self, key: str, value: str) -> None:
        self.writes.append((key, value))
        super().set(key, value)


class FailingStore(KeyValueStore):
    """Store whose every operation fails, like a full or disabled localStorage."""

    def get(self, key: str) -> Optional[str]:
        raise StorageError("storage disabled")

    def set(self, key: str, value: str) -> None:
        raise StorageError("quota exceeded")

    def delete(self, key: str) -> None:
        raise StorageError("storage disabled")


class RecordingGateway(SubmissionGateway):
    """Gateway that records payloads and optionally fails."""

    def __init__(self, error: Optional[Exception] = None, response: Optional[Dict[str, Any]] = None) -> None:
        self.error = error
        self.response = response
        self.payloads: List[SubmissionPayload] = []

    async def submit(self, payload: SubmissionPayload) -> SubmissionResult:
        self.payloads.append(payload)
        if self.error is not None:
            raise self.error
        return SubmissionResult.from_dict(self.response or {"success": True, "approved": payload.approved})


@pytest.fixture
def scheduler():
    """Virtual clock starting at a fixed epoch."""
    return ManualScheduler(start_ms=START_MS)


@pytest.fixture
def store():
    return CountingStore()


@pytest.fixture
def gateway():
    return RecordingGateway()


@pytest.fixture
def config(tmp_path):
    """Config with default timings and drafts under tmp_path."""
    return WizardConfig(storage_dir=tmp_path / "drafts")


@pytest.fixture
def sections():
    return [
        Section("hero", "Header & Hero", "First impression"),
        Section("services", "Services", "What you offer"),
        Section("contact", "Contact", "How to reach you"),
    ]


@pytest.fixture
def questions():
    return [
        Question("tone", "Does the tone of voice fit your brand?"),
        Question("mobile", "Does the page work well on your phone?", "Open the preview on a phone"),
    ]


@pytest.fixture
def events():
    """Capture wizard events emitted through the global observability hooks."""
    recorded: List[Tuple[str, Dict[str, Any]]] = []
    callbacks = {}

    for event_type in EVENT_TYPES:
        def hook(_event_type=event_type, **data):
            recorded.append((_event_type, data))

        callbacks[event_type] = hook
        observability_hooks.register_hook(event_type, hook)

    yield recorded

    for event_type, hook in callbacks.items():
        observability_hooks.unregister_hook(event_type, hook)


@pytest.fixture(autouse=True)
def reset_metrics():
    performance_monitor.reset()
    yield
    performance_monitor.reset()


def event_names(recorded) -> List[str]:
    return [name for name, _ in recorded]
