"""Step machine for the design feedback flow.

Flow: ``intro -> sections -> [questions] -> summary -> submitted``.
The questions step exists only when the catalog has questions. From the
summary the user may jump back to a specific section or to the question
list without losing anything already entered.

Every state change goes through :meth:`DraftStore.set_data`, so the draft
always mirrors the whole state and autosaves on its own schedule.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Callable, Dict, Iterable, Optional, Sequence, Tuple, Union

from .config import WizardConfig
from .drafts import DraftStore, draft_key
from .gateway import SubmissionGateway
from .gestures import GestureNavigator, Point
from .models import (
    DEFAULT_SECTIONS,
    PRESET_IDS,
    Answer,
    DraftRejectedError,
    InvalidTransitionError,
    Question,
    QuestionAnswer,
    Rating,
    Section,
    SectionFeedback,
    SubmissionError,
    SubmissionOutcome,
    SubmissionPayload,
    SubmissionResult,
    SubmitAction,
    WizardBusyError,
    WizardClosedError,
    WizardState,
    WizardStep,
)
from .scheduler import Scheduler, epoch_ms
from .storage import KeyValueStore, MemoryStore
from .wizard_logging import log_error_with_context, log_step_change, log_wizard_event

logger = logging.getLogger("feedback_wizard.controller")

DRAFT_KEY = "design_feedback"


def ensure_absolute_url(url: str) -> str:
    if not url:
        return ""
    if url.startswith("http://") or url.startswith("https://"):
        return url
    return f"https://{url}"


def catalog_decoder(sections: Sequence[Section], questions: Sequence[Question]) -> Callable[[Any], WizardState]:
    """Build a draft decoder that only trusts drafts shaped like this catalog.

    A draft whose section ids or question ids differ from the current
    catalog is rejected whole, so answers to questions that no longer
    exist are never restored.
    """
    section_ids = tuple(s.id for s in sections)
    question_ids = tuple(q.id for q in questions)

    def decode(data: Any) -> WizardState:
        state = WizardState.from_dict(data)
        if tuple(f.section_id for f in state.section_feedback) != section_ids:
            raise DraftRejectedError("section catalog changed since the draft was saved")
        if tuple(a.question_id for a in state.question_answers) != question_ids:
            raise DraftRejectedError("question catalog changed since the draft was saved")
        return state

    return decode


def _unique(items: Iterable[Any], kind: str) -> Tuple[Any, ...]:
    items = tuple(items)
    seen = set()
    for item in items:
        if item.id in seen:
            raise ValueError(f"Duplicate {kind} id '{item.id}'")
        seen.add(item.id)
    return items


class WizardController:
    """Owns one client's feedback session for one design preview."""

    def __init__(
        self,
        project_id: str,
        gateway: SubmissionGateway,
        *,
        sections: Optional[Iterable[Section]] = None,
        questions: Iterable[Question] = (),
        preview_url: Optional[str] = None,
        store: Optional[KeyValueStore] = None,
        config: Optional[WizardConfig] = None,
        scheduler: Optional[Scheduler] = None,
        clock: Callable[[], int] = epoch_ms,
        flush_at_exit: bool = False,
    ) -> None:
        if not project_id:
            raise ValueError("project_id is required")
        self.project_id = project_id
        self.gateway = gateway
        self.config = config or WizardConfig()
        self.sections: Tuple[Section, ...] = _unique(sections or DEFAULT_SECTIONS, "section")
        self.questions: Tuple[Question, ...] = _unique(questions, "question")
        if not self.sections:
            raise ValueError("At least one section is required")
        self.preview_url = ensure_absolute_url(preview_url) if preview_url else None

        self.drafts: DraftStore[WizardState] = DraftStore.open(
            store if store is not None else MemoryStore(),
            draft_key(DRAFT_KEY, self.preview_url or project_id),
            WizardState.fresh(self.sections, self.questions),
            version=self.config.draft_version,
            max_age_ms=self.config.max_age_ms,
            debounce_ms=self.config.debounce_ms,
            scheduler=scheduler,
            clock=clock,
            encode=WizardState.to_dict,
            decode=catalog_decoder(self.sections, self.questions),
            flush_at_exit=flush_at_exit,
        )
        self.gestures = GestureNavigator(
            self.advance,
            self.retreat,
            config=self.config.gestures,
            enabled=self._swipe_enabled,
        )

        self.expanded_section_id: Optional[str] = None
        self.is_submitting = False
        self.last_error: Optional[str] = None
        self.outcome: Optional[SubmissionOutcome] = None
        self.result: Optional[SubmissionResult] = None
        self._unmounted = False

        if self.drafts.was_restored:
            logger.info(f"Resumed feedback for project {project_id} at step '{self.step.value}'")
        log_wizard_event(
            "wizard_mounted",
            project_id=project_id,
            restored=self.drafts.was_restored,
            step=self.step.value,
        )

    # ------------------------------------------------------------------
    # Read-only view
    # ------------------------------------------------------------------

    @property
    def state(self) -> WizardState:
        return self.drafts.data

    @property
    def was_restored(self) -> bool:
        return self.drafts.was_restored

    @property
    def step(self) -> WizardStep:
        return self.state.step

    @property
    def current_section_index(self) -> int:
        return self.state.current_section_index

    @property
    def current_section(self) -> Section:
        return self.sections[self.state.current_section_index]

    @property
    def current_feedback(self) -> SectionFeedback:
        return self.state.section_feedback[self.state.current_section_index]

    @property
    def has_questions(self) -> bool:
        return len(self.questions) > 0

    @property
    def change_count(self) -> int:
        return self.state.change_count

    @property
    def answered_count(self) -> int:
        return self.state.answered_count

    @property
    def all_good(self) -> bool:
        return self.state.all_good

    @property
    def primary_action(self) -> SubmitAction:
        return self.state.primary_action

    @property
    def progress(self) -> Tuple[int, int]:
        """(current section number, section count), 1-based."""
        return self.state.current_section_index + 1, len(self.sections)

    @property
    def is_closed(self) -> bool:
        return self._unmounted or self.outcome is not None

    def _swipe_enabled(self) -> bool:
        return self.step is WizardStep.SECTIONS and not self.is_submitting and not self.is_closed

    # ------------------------------------------------------------------
    # Guards and state plumbing
    # ------------------------------------------------------------------

    def _ensure_mutable(self) -> None:
        if self.is_closed:
            raise WizardClosedError(f"Feedback for project {self.project_id} is already closed")
        if self.is_submitting:
            raise WizardBusyError("A submission is in progress")

    def _require_step(self, *steps: WizardStep) -> None:
        self._ensure_mutable()
        if self.step not in steps:
            allowed = ", ".join(s.value for s in steps)
            raise InvalidTransitionError(f"Action requires step {allowed}, current step is '{self.step.value}'")

    def _update(self, updater: Callable[[WizardState], WizardState]) -> WizardState:
        before = self.step
        state = self.drafts.set_data(updater)
        if state.step is not before:
            log_step_change(self.project_id, before.value, state.step.value)
        return state

    def _section_index(self, section_id: Optional[str]) -> int:
        if section_id is None:
            return self.state.current_section_index
        for index, section in enumerate(self.sections):
            if section.id == section_id:
                return index
        raise InvalidTransitionError(f"Unknown section '{section_id}'")

    def _question_index(self, question_id: str) -> int:
        for index, question in enumerate(self.questions):
            if question.id == question_id:
                return index
        raise InvalidTransitionError(f"Unknown question '{question_id}'")

    def _update_feedback(self, index: int, updater: Callable[[SectionFeedback], SectionFeedback]) -> WizardState:
        def apply(state: WizardState) -> WizardState:
            feedback = list(state.section_feedback)
            feedback[index] = updater(feedback[index])
            return replace(state, section_feedback=tuple(feedback))

        return self._update(apply)

    def _update_answer(self, index: int, updater: Callable[[QuestionAnswer], QuestionAnswer]) -> WizardState:
        def apply(state: WizardState) -> WizardState:
            answers = list(state.question_answers)
            answers[index] = updater(answers[index])
            return replace(state, question_answers=tuple(answers))

        return self._update(apply)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def start(self) -> WizardStep:
        self._require_step(WizardStep.INTRO)
        return self._update(lambda s: replace(s, step=WizardStep.SECTIONS)).step

    def advance(self) -> WizardStep:
        """Next section; past the last one, go to questions (if any) or the summary."""
        self._require_step(WizardStep.SECTIONS)
        last_index = len(self.sections) - 1

        def apply(state: WizardState) -> WizardState:
            if state.current_section_index < last_index:
                return replace(state, current_section_index=state.current_section_index + 1)
            next_step = WizardStep.QUESTIONS if self.has_questions else WizardStep.SUMMARY
            return replace(state, step=next_step)

        return self._update(apply).step

    def retreat(self) -> bool:
        """Previous section. Returns False on the first section."""
        self._require_step(WizardStep.SECTIONS)
        if self.state.current_section_index == 0:
            return False
        self._update(lambda s: replace(s, current_section_index=s.current_section_index - 1))
        return True

    def view_summary(self) -> WizardStep:
        self._require_step(WizardStep.QUESTIONS)
        return self._update(lambda s: replace(s, step=WizardStep.SUMMARY)).step

    def edit_section(self, target: Union[int, str]) -> WizardStep:
        """Jump from the summary back to one section, by index or id."""
        self._require_step(WizardStep.SUMMARY)
        index = target if isinstance(target, int) else self._section_index(target)
        if not 0 <= index < len(self.sections):
            raise InvalidTransitionError(f"Section index {index} out of range 0..{len(self.sections) - 1}")
        return self._update(lambda s: replace(s, step=WizardStep.SECTIONS, current_section_index=index)).step

    def edit_questions(self) -> WizardStep:
        self._require_step(WizardStep.SUMMARY)
        if not self.has_questions:
            raise InvalidTransitionError("This feedback flow has no questions")
        return self._update(lambda s: replace(s, step=WizardStep.QUESTIONS)).step

    # ------------------------------------------------------------------
    # Section feedback
    # ------------------------------------------------------------------

    def rate_section(self, rating: Union[Rating, str, None], section_id: Optional[str] = None) -> SectionFeedback:
        self._require_step(WizardStep.SECTIONS)
        index = self._section_index(section_id)
        value = Rating(rating) if rating is not None else None
        state = self._update_feedback(index, lambda f: replace(f, rating=value))
        if value is Rating.CHANGE:
            self.expanded_section_id = self.sections[index].id
        return state.section_feedback[index]

    def comment_section(self, comment: str, section_id: Optional[str] = None) -> SectionFeedback:
        self._require_step(WizardStep.SECTIONS)
        index = self._section_index(section_id)
        return self._update_feedback(index, lambda f: replace(f, comment=comment)).section_feedback[index]

    def toggle_preset(self, preset_id: str, section_id: Optional[str] = None) -> SectionFeedback:
        self._require_step(WizardStep.SECTIONS)
        if preset_id not in PRESET_IDS:
            raise ValueError(f"Unknown feedback preset '{preset_id}'")
        index = self._section_index(section_id)
        return self._update_feedback(index, lambda f: f.toggle_preset(preset_id)).section_feedback[index]

    def toggle_editor(self, section_id: Optional[str] = None) -> bool:
        """Expand or collapse the comment/preset editor. Not persisted."""
        self._require_step(WizardStep.SECTIONS)
        target = self.sections[self._section_index(section_id)].id
        self.expanded_section_id = None if self.expanded_section_id == target else target
        return self.expanded_section_id == target

    # ------------------------------------------------------------------
    # Questions and general comment
    # ------------------------------------------------------------------

    def answer_question(self, question_id: str, answer: Union[Answer, str, None]) -> QuestionAnswer:
        self._require_step(WizardStep.QUESTIONS)
        index = self._question_index(question_id)
        value = Answer(answer) if answer is not None else None
        return self._update_answer(index, lambda a: replace(a, answer=value)).question_answers[index]

    def comment_question(self, question_id: str, comment: str) -> QuestionAnswer:
        self._require_step(WizardStep.QUESTIONS)
        index = self._question_index(question_id)
        return self._update_answer(index, lambda a: replace(a, comment=comment)).question_answers[index]

    def set_general_comment(self, comment: str) -> str:
        self._require_step(WizardStep.SECTIONS, WizardStep.QUESTIONS, WizardStep.SUMMARY)
        return self._update(lambda s: replace(s, general_comment=comment)).general_comment

    # ------------------------------------------------------------------
    # Gestures
    # ------------------------------------------------------------------

    def swipe(self, start: Point, start_ms: float, end: Point, end_ms: float):
        """Feed one complete touch gesture through the navigator."""
        self.gestures.on_gesture_start(start, start_ms)
        return self.gestures.on_gesture_end(end, end_ms)

    # ------------------------------------------------------------------
    # Submission and teardown
    # ------------------------------------------------------------------

    def build_payload(self, action: Optional[SubmitAction] = None) -> SubmissionPayload:
        action = SubmitAction(action) if action is not None else self.primary_action
        if action is SubmitAction.APPROVE and self.change_count > 0:
            raise InvalidTransitionError(
                f"Cannot approve while {self.change_count} change(s) are requested"
            )
        return SubmissionPayload.from_state(
            self.project_id, self.state, approved=action is SubmitAction.APPROVE
        )

    async def submit(self, action: Optional[Union[SubmitAction, str]] = None) -> Optional[SubmissionResult]:
        """Send the decision. Returns None and sets ``last_error`` on failure."""
        self._ensure_mutable()
        payload = self.build_payload(SubmitAction(action) if action is not None else None)

        self.is_submitting = True
        self.last_error = None
        try:
            result = await self.gateway.submit(payload)
        except SubmissionError as e:
            self.last_error = e.detail or str(e)
            log_error_with_context(e, {
                "operation": "submit_feedback",
                "project_id": self.project_id,
                "approved": payload.approved,
            })
            log_wizard_event(
                "feedback_submit_failed",
                project_id=self.project_id,
                status_code=e.status_code,
            )
            if not self.is_closed and self.step is not WizardStep.SUMMARY:
                self._update(lambda s: replace(s, step=WizardStep.SUMMARY))
            return None
        finally:
            self.is_submitting = False

        self.result = result
        self.outcome = SubmissionOutcome.APPROVED if payload.approved else SubmissionOutcome.CHANGES_REQUESTED
        self.drafts.clear()
        self.drafts.close()
        log_wizard_event(
            "feedback_submitted",
            project_id=self.project_id,
            outcome=self.outcome.value,
            change_count=self.change_count,
        )
        return result

    async def approve(self) -> Optional[SubmissionResult]:
        return await self.submit(SubmitAction.APPROVE)

    async def submit_feedback(self) -> Optional[SubmissionResult]:
        """Feedback path; also the "submit anyway" route when nothing needs changing."""
        return await self.submit(SubmitAction.SUBMIT_FEEDBACK)

    def save_and_exit(self) -> bool:
        self._ensure_mutable()
        saved = self.drafts.save_now()
        self.unmount()
        return saved

    def unmount(self) -> None:
        """Tear down: cancel the debounce timer and flush unsaved changes."""
        if self._unmounted:
            return
        self._unmounted = True
        self.drafts.close()
        log_wizard_event("wizard_unmounted", project_id=self.project_id, outcome=self.outcome.value if self.outcome else None)

    def __enter__(self) -> "WizardController":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.unmount()

    # ------------------------------------------------------------------
    # Snapshot
    # ------------------------------------------------------------------

    def snapshot(self) -> Dict[str, Any]:
        state = self.state
        return {
            "project_id": self.project_id,
            "preview_url": self.preview_url,
            "step": state.step.value,
            "current_section_index": state.current_section_index,
            "current_section": self.current_section.to_dict(),
            "section_count": len(self.sections),
            "progress": f"{state.current_section_index + 1}/{len(self.sections)}",
            "question_count": len(self.questions),
            "answered_count": state.answered_count,
            "change_count": state.change_count,
            "all_good": state.all_good,
            "primary_action": state.primary_action.value,
            "expanded_section_id": self.expanded_section_id,
            "state": state.to_dict(),
            "was_restored": self.drafts.was_restored,
            "has_unsaved_changes": self.drafts.has_unsaved_changes,
            "last_saved": self.drafts.last_saved.isoformat() if self.drafts.last_saved else None,
            "is_submitting": self.is_submitting,
            "last_error": self.last_error,
            "outcome": self.outcome.value if self.outcome else None,
        }
