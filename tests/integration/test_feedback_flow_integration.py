"""
Integration tests for the complete design feedback flow.

These tests drive the session manager against a real file-backed draft
store and the HTTP gateway (over an httpx mock transport), the way the
MCP server wires them together.
"""

import json
import sys
from pathlib import Path

import httpx
import pytest

# Add the project root to the path so we can import the main module
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from feedback_wizard.config import WizardConfig
from feedback_wizard.controller import DRAFT_KEY
from feedback_wizard.drafts import draft_key, read_draft
from feedback_wizard.gateway import HttpSubmissionGateway
from feedback_wizard.scheduler import ManualScheduler
from feedback_wizard.sessions import FeedbackSessionManager
from feedback_wizard.storage import FileStore

SUBMIT_URL = "https://studio.example.com/api/project-feedback"
SECTIONS = [
    {"id": "hero", "displayName": "Header & Hero"},
    {"id": "services", "displayName": "Services"},
]


class TestFeedbackFlowIntegration:
    """Integration tests for the feedback wizard end to end."""

    @pytest.fixture
    def requests(self):
        """Requests received by the fake project feedback endpoint."""
        return []

    @pytest.fixture
    def config(self, tmp_path):
        return WizardConfig(storage_dir=tmp_path / "drafts", submit_url=SUBMIT_URL)

    @pytest.fixture
    def scheduler(self):
        return ManualScheduler(start_ms=1_700_000_000_000)

    def _manager(self, config, scheduler, requests, status=200):
        def handler(request):
            requests.append(json.loads(request.content))
            if status >= 400:
                return httpx.Response(status, json={"error": "Database unavailable"})
            return httpx.Response(200, json={"success": True, "approved": requests[-1]["approved"]})

        return FeedbackSessionManager(
            config,
            store=FileStore(config.storage_dir),
            gateway=HttpSubmissionGateway(config.submit_url, transport=httpx.MockTransport(handler)),
            scheduler=scheduler,
            clock=scheduler.now,
        )

    @pytest.mark.asyncio
    async def test_feedback_with_one_change(self, config, scheduler, requests):
        """
        Given: Two sections and no questions
        When: The client approves the first section, asks to fix the colors
              of the second and submits
        Then: One change is sent, both rated sections are in the payload and
              the draft is gone for the next visit
        """
        manager = self._manager(config, scheduler, requests)
        manager.start_feedback("proj-1", sections=SECTIONS)
        manager.begin_review("proj-1")
        manager.rate_section("proj-1", "good")
        manager.next_section("proj-1")
        manager.rate_section("proj-1", "change")
        manager.toggle_preset("proj-1", "colors")
        manager.comment_section("proj-1", "fix colors")
        summary = manager.next_section("proj-1")

        assert summary["step"] == "summary"
        assert summary["change_count"] == 1
        assert summary["primary_action"] == "submit_feedback"

        result = await manager.submit("proj-1")
        await manager.gateway.close()

        assert result["outcome"] == "changes_requested"
        assert result["change_count"] == 1
        assert result["message"] == "Feedback sent"
        body = requests[0]
        assert body["approved"] is False
        assert body["type"] == "design"
        assert [f["sectionId"] for f in body["sectionFeedback"]] == ["hero", "services"]
        assert body["sectionFeedback"][1] == {
            "sectionId": "services",
            "rating": "change",
            "comment": "fix colors",
            "presets": ["colors"],
        }

        fresh = read_draft(FileStore(config.storage_dir), draft_key(DRAFT_KEY, "proj-1"), None)
        assert not fresh.was_restored
        reopened = manager.start_feedback("proj-1", sections=SECTIONS)
        assert reopened["was_restored"] is False
        assert reopened["step"] == "intro"
        manager.close_all()

    def test_progress_survives_restart(self, config, scheduler, requests):
        """
        Given: A client who rated a section and the autosave fired
        When: The server restarts without a clean shutdown
        Then: A new manager on the same directory resumes the draft
        """
        first = self._manager(config, scheduler, requests)
        first.start_feedback("proj-1", sections=SECTIONS)
        first.begin_review("proj-1")
        first.rate_section("proj-1", "change")
        scheduler.advance(config.debounce_ms)

        second = self._manager(config, scheduler, requests)
        resumed = second.start_feedback("proj-1", sections=SECTIONS)

        assert resumed["was_restored"] is True
        assert resumed["step"] == "sections"
        assert resumed["change_count"] == 1
        second.close_all()

    def test_stale_draft_is_ignored(self, config, scheduler, requests):
        """
        Given: A saved draft older than the maximum age
        When: The client comes back
        Then: The wizard starts fresh and the old file is removed
        """
        manager = self._manager(config, scheduler, requests)
        manager.start_feedback("proj-1", sections=SECTIONS)
        manager.begin_review("proj-1")
        manager.save_and_exit("proj-1")
        store = FileStore(config.storage_dir)
        path = store.path_for(draft_key(DRAFT_KEY, "proj-1"))
        assert path.exists()

        scheduler.advance(config.max_age_ms + 1)
        resumed = manager.start_feedback("proj-1", sections=SECTIONS)

        assert resumed["was_restored"] is False
        assert resumed["step"] == "intro"
        assert not path.exists()
        manager.close_all()

    @pytest.mark.asyncio
    async def test_failed_submission_can_be_retried(self, config, scheduler, requests):
        """
        Given: An endpoint returning HTTP 500
        When: The client submits
        Then: The error is reported, the draft is kept on disk and the
              session stays open on the summary
        """
        manager = self._manager(config, scheduler, requests, status=500)
        manager.start_feedback("proj-1", sections=SECTIONS)
        manager.begin_review("proj-1")
        manager.rate_section("proj-1", "good")

        result = await manager.submit("proj-1")
        await manager.gateway.close()

        assert result["error"] == "Database unavailable"
        assert result["step"] == "summary"
        scheduler.advance(config.debounce_ms)
        stored = FileStore(config.storage_dir).get(draft_key(DRAFT_KEY, "proj-1"))
        assert json.loads(stored)["data"]["step"] == "summary"
        manager.close_all()
