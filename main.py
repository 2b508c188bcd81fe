"""MCP server exposing the design feedback wizard as tools."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from mcp.server.fastmcp import FastMCP

from feedback_wizard.config import WizardConfig
from feedback_wizard.sessions import FeedbackSessionManager
from feedback_wizard.wizard_logging import setup_logging

logger = logging.getLogger("feedback_wizard.server")

mcp = FastMCP("feedback-wizard")

_MANAGER: Optional[FeedbackSessionManager] = None


def _manager() -> FeedbackSessionManager:
    global _MANAGER
    if _MANAGER is None:
        _MANAGER = FeedbackSessionManager(WizardConfig.from_env())
    return _MANAGER


@mcp.tool()
def start_feedback(
    project_id: str,
    preview_url: Optional[str] = None,
    sections: Optional[List[Dict[str, Any]]] = None,
    questions: Optional[List[Dict[str, Any]]] = None,
) -> Dict[str, Any]:
    """STEP 1: Open the design feedback wizard for a project, resuming a saved draft if one exists.
    Sections are {id, displayName, description}; questions are {id, question, helpText}.
    Without sections the default website sections are used."""

    return _manager().start_feedback(project_id, preview_url, sections, questions)


@mcp.tool()
def begin_review(project_id: str) -> Dict[str, Any]:
    """STEP 2: Leave the intro and start rating sections."""

    return _manager().begin_review(project_id)


@mcp.tool()
def rate_section(project_id: str, rating: Optional[str], section_id: Optional[str] = None) -> Dict[str, Any]:
    """Rate a section 'good' or 'change' (null clears it). Defaults to the current section."""

    return _manager().rate_section(project_id, rating, section_id)


@mcp.tool()
def comment_section(project_id: str, comment: str, section_id: Optional[str] = None) -> Dict[str, Any]:
    """Set the free-text comment for a section. Defaults to the current section."""

    return _manager().comment_section(project_id, comment, section_id)


@mcp.tool()
def toggle_preset(project_id: str, preset_id: str, section_id: Optional[str] = None) -> Dict[str, Any]:
    """Add or remove a canned feedback tag (see feedback-wizard://presets) on a section."""

    return _manager().toggle_preset(project_id, preset_id, section_id)


@mcp.tool()
def toggle_editor(project_id: str, section_id: Optional[str] = None) -> Dict[str, Any]:
    """Expand or collapse the comment and preset editor of a section."""

    return _manager().toggle_editor(project_id, section_id)


@mcp.tool()
def next_section(project_id: str) -> Dict[str, Any]:
    """Move to the next section; after the last one go to the questions, or to the summary when there are none."""

    return _manager().next_section(project_id)


@mcp.tool()
def previous_section(project_id: str) -> Dict[str, Any]:
    """Move back one section."""

    return _manager().previous_section(project_id)


@mcp.tool()
def swipe(
    project_id: str,
    start_x: float,
    start_y: float,
    start_ms: float,
    end_x: float,
    end_y: float,
    end_ms: float,
) -> Dict[str, Any]:
    """Replay one touch gesture; a fast horizontal swipe left advances, right goes back."""

    return _manager().swipe(project_id, start_x, start_y, start_ms, end_x, end_y, end_ms)


@mcp.tool()
def answer_question(project_id: str, question_id: str, answer: Optional[str]) -> Dict[str, Any]:
    """STEP 3 (optional): Answer a question 'yes' or 'no' (null clears it)."""

    return _manager().answer_question(project_id, question_id, answer)


@mcp.tool()
def comment_question(project_id: str, question_id: str, comment: str) -> Dict[str, Any]:
    """Attach a comment to a question answer."""

    return _manager().comment_question(project_id, question_id, comment)


@mcp.tool()
def set_general_comment(project_id: str, comment: str) -> Dict[str, Any]:
    """Set the general comment sent along with the decision."""

    return _manager().set_general_comment(project_id, comment)


@mcp.tool()
def view_summary(project_id: str) -> Dict[str, Any]:
    """STEP 4: Go from the questions to the summary."""

    return _manager().view_summary(project_id)


@mcp.tool()
def edit_section(project_id: str, section: str) -> Dict[str, Any]:
    """From the summary, jump back to a section by id or index. Nothing entered is lost."""

    return _manager().edit_section(project_id, section)


@mcp.tool()
def edit_questions(project_id: str) -> Dict[str, Any]:
    """From the summary, jump back to the question list."""

    return _manager().edit_questions(project_id)


@mcp.tool()
def wizard_status(project_id: str) -> Dict[str, Any]:
    """Return the full wizard state, counters and draft save status."""

    return _manager().status(project_id)


@mcp.tool()
def save_and_exit(project_id: str) -> Dict[str, Any]:
    """Save the draft immediately and close the session; start_feedback resumes it later."""

    return _manager().save_and_exit(project_id)


@mcp.tool()
async def submit_feedback(project_id: str, action: Optional[str] = None) -> Dict[str, Any]:
    """STEP 5 (FINAL): Submit the decision.
    Without an action, approves when nothing needs changing and sends feedback otherwise.
    action='submit_feedback' sends feedback even when everything was rated good."""

    return await _manager().submit(project_id, action)


@mcp.tool()
def close_feedback(project_id: str) -> Dict[str, Any]:
    """Close a session, flushing unsaved changes to the draft."""

    return _manager().close(project_id)


@mcp.resource("feedback-wizard://presets")
def resource_presets() -> str:
    """Resource view listing the canned feedback tags."""

    lines = ["Feedback presets"]
    for preset in _manager().presets():
        lines.append(f"- {preset['id']}: {preset['label']} ({preset['description']})")
    return "\n".join(lines)


def main() -> None:
    global _MANAGER
    config = WizardConfig.from_env()
    setup_logging(config.log_level, config.log_file)
    _MANAGER = FeedbackSessionManager(config, flush_at_exit=True)
    logger.info(f"Serving feedback wizard; drafts in {config.storage_dir}, submitting to {config.submit_url}")
    try:
        mcp.run(transport="stdio")
    finally:
        _MANAGER.close_all()


if __name__ == "__main__":
    main()
