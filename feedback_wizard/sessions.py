"""Session orchestration for the feedback wizard.

This module keeps one :class:`WizardController` per project and exposes
every wizard action as a call returning a plain dict, ready to hand to
a tool caller. Errors are reported in the dict instead of raised.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional

from .config import WizardConfig
from .controller import WizardController
from .gateway import HttpSubmissionGateway, SubmissionGateway
from .gestures import Point
from .models import (
    FEEDBACK_PRESETS,
    FeedbackWizardError,
    Question,
    Section,
    WizardStep,
    catalog_to_dicts,
)
from .scheduler import AsyncioScheduler, Scheduler, epoch_ms
from .storage import FileStore, KeyValueStore
from .wizard_logging import log_error_with_context, log_operation

logger = logging.getLogger("feedback_wizard.sessions")


class SessionNotFoundError(FeedbackWizardError, KeyError):
    """No open session exists for the project."""

STEP_GUIDANCE: Dict[WizardStep, Dict[str, str]] = {
    WizardStep.INTRO: {
        "next_suggested_step": "begin_review",
        "workflow_tip": "Start the review to rate the design section by section",
    },
    WizardStep.SECTIONS: {
        "next_suggested_step": "rate_section",
        "workflow_tip": "Rate the current section 'good' or 'change', then use next_section or swipe left",
    },
    WizardStep.QUESTIONS: {
        "next_suggested_step": "answer_question",
        "workflow_tip": "Answer each question 'yes' or 'no', then call view_summary",
    },
    WizardStep.SUMMARY: {
        "next_suggested_step": "submit_feedback",
        "workflow_tip": "Review the summary; edit a section or submit the decision",
    },
}


class FeedbackSessionManager:
    """Manages feedback wizard sessions keyed by project id."""

    def __init__(
        self,
        config: Optional[WizardConfig] = None,
        *,
        store: Optional[KeyValueStore] = None,
        gateway: Optional[SubmissionGateway] = None,
        scheduler: Optional[Scheduler] = None,
        clock: Callable[[], int] = epoch_ms,
        flush_at_exit: bool = False,
    ):
        """Initialize the manager; stores and gateway default from config.

        With ``flush_at_exit`` every session flushes its unsaved draft when
        the interpreter exits.
        """
        self.config = config or WizardConfig.from_env()
        self.store = store if store is not None else FileStore(self.config.storage_dir)
        self.gateway = gateway or HttpSubmissionGateway(self.config.submit_url, timeout=self.config.submit_timeout)
        self.scheduler = scheduler or AsyncioScheduler()
        self.clock = clock
        self.flush_at_exit = flush_at_exit
        self._sessions: Dict[str, WizardController] = {}

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _session(self, project_id: str) -> WizardController:
        controller = self._sessions.get(project_id)
        if controller is None or controller.is_closed:
            raise SessionNotFoundError(project_id)
        return controller

    def _report(self, controller: WizardController, message: str, **extra: Any) -> Dict[str, Any]:
        result = controller.snapshot()
        if controller.outcome is None:
            result.update(STEP_GUIDANCE[controller.step])
        result.update(extra)
        result["message"] = message
        return result

    def _error(self, operation: str, project_id: str, error: BaseException) -> Dict[str, Any]:
        if isinstance(error, SessionNotFoundError):
            return {
                "error": f"No open feedback session for project '{project_id}'",
                "suggestion": "Start or resume the session first",
                "next_suggested_step": "start_feedback",
                "message": f"Error: no open session for '{project_id}'",
            }
        log_error_with_context(error, {"operation": operation, "project_id": project_id})
        response: Dict[str, Any] = {
            "error": str(error),
            "error_type": type(error).__name__,
            "message": f"Error: {error}",
        }
        controller = self._sessions.get(project_id)
        if controller is not None and not controller.is_closed:
            response["step"] = controller.step.value
            response.update(STEP_GUIDANCE[controller.step])
        return response

    def _run(self, operation: str, project_id: str, action: Callable[[WizardController], str]) -> Dict[str, Any]:
        try:
            with log_operation(operation, project_id=project_id):
                controller = self._session(project_id)
                message = action(controller)
                return self._report(controller, message)
        except (FeedbackWizardError, ValueError) as e:
            return self._error(operation, project_id, e)

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def start_feedback(
        self,
        project_id: str,
        preview_url: Optional[str] = None,
        sections: Optional[List[Dict[str, Any]]] = None,
        questions: Optional[List[Dict[str, Any]]] = None,
    ) -> Dict[str, Any]:
        """Open (or resume) the feedback session for a project."""
        existing = self._sessions.get(project_id)
        if existing is not None and not existing.is_closed:
            return self._report(existing, f"Feedback session for '{project_id}' is already open")

        try:
            with log_operation("start_feedback", project_id=project_id):
                controller = WizardController(
                    project_id,
                    self.gateway,
                    sections=[Section.from_dict(s) for s in sections] if sections else None,
                    questions=[Question.from_dict(q) for q in questions or []],
                    preview_url=preview_url,
                    store=self.store,
                    config=self.config,
                    scheduler=self.scheduler,
                    clock=self.clock,
                    flush_at_exit=self.flush_at_exit,
                )
        except (FeedbackWizardError, KeyError, ValueError) as e:
            log_error_with_context(e, {"operation": "start_feedback", "project_id": project_id})
            return {
                "error": f"Failed to start feedback: {e}",
                "suggestion": "Check the section and question catalogs",
                "next_suggested_step": "start_feedback",
                "message": f"Error: {e}",
            }

        self._sessions[project_id] = controller
        logger.info(f"Opened feedback session for project {project_id} ({len(self._sessions)} open)")
        if controller.was_restored:
            message = f"Resumed saved feedback at step '{controller.step.value}'"
        else:
            message = f"Started feedback with {len(controller.sections)} sections and {len(controller.questions)} questions"
        return self._report(controller, message, sections=catalog_to_dicts(controller.sections),
                            questions=catalog_to_dicts(controller.questions))

    def status(self, project_id: str) -> Dict[str, Any]:
        return self._run("wizard_status", project_id, lambda c: f"Feedback is at step '{c.step.value}'")

    def save_and_exit(self, project_id: str) -> Dict[str, Any]:
        try:
            controller = self._session(project_id)
            saved = controller.save_and_exit()
        except FeedbackWizardError as e:
            return self._error("save_and_exit", project_id, e)
        self._sessions.pop(project_id, None)
        return {
            "project_id": project_id,
            "saved": saved,
            "next_suggested_step": "start_feedback",
            "workflow_tip": "Call start_feedback again to resume where you left off",
            "message": "Progress saved" if saved else "Progress could not be saved; storage is unavailable",
        }

    def close(self, project_id: str) -> Dict[str, Any]:
        controller = self._sessions.pop(project_id, None)
        if controller is None:
            return {"project_id": project_id, "closed": False, "message": f"No session for '{project_id}'"}
        controller.unmount()
        return {"project_id": project_id, "closed": True, "message": "Session closed"}

    def close_all(self) -> None:
        for project_id in list(self._sessions):
            self.close(project_id)

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def begin_review(self, project_id: str) -> Dict[str, Any]:
        def action(c: WizardController) -> str:
            c.start()
            return "Review started"

        return self._run("begin_review", project_id, action)

    def next_section(self, project_id: str) -> Dict[str, Any]:
        def action(c: WizardController) -> str:
            step = c.advance()
            if step is WizardStep.SECTIONS:
                return f"Moved to section '{c.current_section.display_name}'"
            return f"All sections reviewed, now at '{step.value}'"

        return self._run("next_section", project_id, action)

    def previous_section(self, project_id: str) -> Dict[str, Any]:
        def action(c: WizardController) -> str:
            if c.retreat():
                return f"Moved back to section '{c.current_section.display_name}'"
            return "Already at the first section"

        return self._run("previous_section", project_id, action)

    def swipe(
        self,
        project_id: str,
        start_x: float,
        start_y: float,
        start_ms: float,
        end_x: float,
        end_y: float,
        end_ms: float,
    ) -> Dict[str, Any]:
        def action(c: WizardController) -> str:
            intent = c.swipe(Point(start_x, start_y), start_ms, Point(end_x, end_y), end_ms)
            return f"Gesture recognised as '{intent.value}'"

        return self._run("swipe", project_id, action)

    def view_summary(self, project_id: str) -> Dict[str, Any]:
        def action(c: WizardController) -> str:
            c.view_summary()
            return "Showing summary"

        return self._run("view_summary", project_id, action)

    def edit_section(self, project_id: str, section: str) -> Dict[str, Any]:
        target: Any = int(section) if section.isdecimal() else section

        def action(c: WizardController) -> str:
            c.edit_section(target)
            return f"Editing section '{c.current_section.display_name}'"

        return self._run("edit_section", project_id, action)

    def edit_questions(self, project_id: str) -> Dict[str, Any]:
        def action(c: WizardController) -> str:
            c.edit_questions()
            return "Editing questions"

        return self._run("edit_questions", project_id, action)

    # ------------------------------------------------------------------
    # Feedback entry
    # ------------------------------------------------------------------

    def rate_section(self, project_id: str, rating: Optional[str], section_id: Optional[str] = None) -> Dict[str, Any]:
        def action(c: WizardController) -> str:
            feedback = c.rate_section(rating, section_id)
            return f"Section '{feedback.section_id}' rated {feedback.rating.value if feedback.rating else 'unanswered'}"

        return self._run("rate_section", project_id, action)

    def comment_section(self, project_id: str, comment: str, section_id: Optional[str] = None) -> Dict[str, Any]:
        return self._run(
            "comment_section",
            project_id,
            lambda c: f"Comment saved for section '{c.comment_section(comment, section_id).section_id}'",
        )

    def toggle_preset(self, project_id: str, preset_id: str, section_id: Optional[str] = None) -> Dict[str, Any]:
        def action(c: WizardController) -> str:
            feedback = c.toggle_preset(preset_id, section_id)
            state = "added" if preset_id in feedback.presets else "removed"
            return f"Preset '{preset_id}' {state} for section '{feedback.section_id}'"

        return self._run("toggle_preset", project_id, action)

    def toggle_editor(self, project_id: str, section_id: Optional[str] = None) -> Dict[str, Any]:
        return self._run(
            "toggle_editor",
            project_id,
            lambda c: "Editor expanded" if c.toggle_editor(section_id) else "Editor collapsed",
        )

    def answer_question(self, project_id: str, question_id: str, answer: Optional[str]) -> Dict[str, Any]:
        def action(c: WizardController) -> str:
            result = c.answer_question(question_id, answer)
            return f"Question '{question_id}' answered {result.answer.value if result.answer else 'unanswered'}"

        return self._run("answer_question", project_id, action)

    def comment_question(self, project_id: str, question_id: str, comment: str) -> Dict[str, Any]:
        def action(c: WizardController) -> str:
            c.comment_question(question_id, comment)
            return f"Comment saved for question '{question_id}'"

        return self._run("comment_question", project_id, action)

    def set_general_comment(self, project_id: str, comment: str) -> Dict[str, Any]:
        def action(c: WizardController) -> str:
            c.set_general_comment(comment)
            return "General comment saved"

        return self._run("set_general_comment", project_id, action)

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    async def submit(self, project_id: str, action: Optional[str] = None) -> Dict[str, Any]:
        """Submit the decision; a failed submission keeps the session open for retry."""
        try:
            controller = self._session(project_id)
            with log_operation("submit_feedback", project_id=project_id, action=action):
                result = await controller.submit(action)
        except (FeedbackWizardError, ValueError) as e:
            return self._error("submit_feedback", project_id, e)

        if result is None:
            return self._report(
                controller,
                f"Submission failed: {controller.last_error}",
                error=controller.last_error,
                suggestion="Your feedback is kept; try submitting again",
            )

        self._sessions.pop(project_id, None)
        outcome = controller.outcome.value if controller.outcome else None
        logger.info(f"Closed feedback session for project {project_id} with outcome {outcome}")
        return {
            "project_id": project_id,
            "outcome": outcome,
            "change_count": controller.change_count,
            "result": result.to_dict(),
            "next_suggested_step": None,
            "message": "Design approved" if outcome == "approved" else "Feedback sent",
        }

    def presets(self) -> List[Dict[str, str]]:
        return catalog_to_dicts(FEEDBACK_PRESETS)
