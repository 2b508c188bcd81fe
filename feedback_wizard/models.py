"""Data models for the design feedback wizard.

This module contains the core data structures used throughout the wizard:
catalog entries, per-section feedback, question answers, the persisted
wizard state, the draft envelope and the submission payload.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Generic, Iterable, List, Optional, Tuple, TypeVar

T = TypeVar("T")


# ----------------------------------------------------------------------
# Errors
# ----------------------------------------------------------------------


class FeedbackWizardError(Exception):
    """Base class for all feedback wizard errors."""


class StorageError(FeedbackWizardError):
    """Raised by a key-value store when it cannot read, write or delete."""


class DraftRejectedError(FeedbackWizardError):
    """Raised by a draft decoder when a stored payload cannot be trusted."""


class InvalidTransitionError(FeedbackWizardError, ValueError):
    """Raised when an action is not legal for the current wizard step."""


class WizardBusyError(FeedbackWizardError):
    """Raised when the wizard is waiting on a submission."""


class WizardClosedError(FeedbackWizardError):
    """Raised when the wizard has already been submitted or unmounted."""


class SubmissionError(FeedbackWizardError):
    """Raised when the submission endpoint rejects or cannot be reached."""

    def __init__(self, status_code: int, detail: str):
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"Submission failed ({status_code}): {detail}")


# ----------------------------------------------------------------------
# Enumerations
# ----------------------------------------------------------------------


class WizardStep(str, Enum):
    """The closed set of wizard phases."""

    INTRO = "intro"
    SECTIONS = "sections"
    QUESTIONS = "questions"
    SUMMARY = "summary"

    @classmethod
    def parse(cls, value: Any) -> "WizardStep":
        try:
            return cls(value)
        except ValueError:
            raise DraftRejectedError(f"Unknown wizard step: {value!r}") from None


class Rating(str, Enum):
    GOOD = "good"
    CHANGE = "change"


class Answer(str, Enum):
    YES = "yes"
    NO = "no"


class SubmitAction(str, Enum):
    """Which submit affordance the user picked."""

    APPROVE = "approve"
    SUBMIT_FEEDBACK = "submit_feedback"


class SubmissionOutcome(str, Enum):
    APPROVED = "approved"
    CHANGES_REQUESTED = "changes_requested"


def _parse_optional(enum_cls, value: Any, label: str):
    if value is None:
        return None
    try:
        return enum_cls(value)
    except ValueError:
        raise DraftRejectedError(f"Invalid {label}: {value!r}") from None


# ----------------------------------------------------------------------
# Catalogs
# ----------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class Section:
    """A reviewable part of the design preview."""

    id: str
    display_name: str
    description: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {"id": self.id, "displayName": self.display_name, "description": self.description}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Section":
        return cls(
            id=str(data["id"]),
            display_name=str(data.get("displayName") or data.get("display_name") or data.get("name") or data["id"]),
            description=str(data.get("description", "")),
        )


@dataclass(slots=True, frozen=True)
class Question:
    """A yes/no question asked after the section review."""

    id: str
    question: str
    help_text: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {"id": self.id, "question": self.question, "helpText": self.help_text}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Question":
        return cls(
            id=str(data["id"]),
            question=str(data["question"]),
            help_text=str(data.get("helpText") or data.get("help_text") or ""),
        )


@dataclass(slots=True, frozen=True)
class FeedbackPreset:
    """Canned tag a client can attach to a section asking for changes."""

    id: str
    label: str
    description: str

    def to_dict(self) -> Dict[str, str]:
        return {"id": self.id, "label": self.label, "description": self.description}


FEEDBACK_PRESETS: Tuple[FeedbackPreset, ...] = (
    FeedbackPreset("colors", "Colors", "Different colors wanted"),
    FeedbackPreset("text", "Text", "Adjust or rewrite the copy"),
    FeedbackPreset("image", "Image", "Different photo or image"),
    FeedbackPreset("layout", "Layout", "Change layout or position"),
    FeedbackPreset("font", "Font", "Different typeface wanted"),
    FeedbackPreset("size", "Size", "Make it bigger or smaller"),
    FeedbackPreset("remove", "Remove", "Remove this section"),
    FeedbackPreset("spacing", "Spacing", "More or less whitespace"),
)

PRESET_IDS = frozenset(preset.id for preset in FEEDBACK_PRESETS)

DEFAULT_SECTIONS: Tuple[Section, ...] = (
    Section("hero", "Header & Hero", "Logo, navigation and the first impression"),
    Section("about", "About / Intro", "Introduction and who you are"),
    Section("services", "Services / Offering", "What you offer"),
    Section("features", "Features / USPs", "Why customers choose you"),
    Section("testimonials", "Reviews / References", "What others say"),
    Section("contact", "Contact", "Contact details and form"),
    Section("footer", "Footer", "Bottom of the page"),
)


# ----------------------------------------------------------------------
# Feedback state
# ----------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class SectionFeedback:
    """Rating, comment and preset tags for one section."""

    section_id: str
    rating: Optional[Rating] = None
    comment: str = ""
    presets: frozenset = field(default_factory=frozenset)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sectionId": self.section_id,
            "rating": self.rating.value if self.rating else None,
            "comment": self.comment,
            "presets": sorted(self.presets),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SectionFeedback":
        presets = data.get("presets", [])
        if not isinstance(presets, list):
            raise DraftRejectedError("Section presets must be a list")
        return cls(
            section_id=str(data["sectionId"]),
            rating=_parse_optional(Rating, data.get("rating"), "rating"),
            comment=str(data.get("comment", "")),
            presets=frozenset(str(p) for p in presets),
        )

    def toggle_preset(self, preset_id: str) -> "SectionFeedback":
        if preset_id in self.presets:
            return replace(self, presets=self.presets - {preset_id})
        return replace(self, presets=self.presets | {preset_id})


@dataclass(slots=True, frozen=True)
class QuestionAnswer:
    """Answer to a catalog question; the question text is pinned at creation."""

    question_id: str
    question: str
    answer: Optional[Answer] = None
    comment: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "questionId": self.question_id,
            "question": self.question,
            "answer": self.answer.value if self.answer else None,
            "comment": self.comment,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QuestionAnswer":
        return cls(
            question_id=str(data["questionId"]),
            question=str(data["question"]),
            answer=_parse_optional(Answer, data.get("answer"), "answer"),
            comment=str(data.get("comment", "")),
        )


@dataclass(slots=True, frozen=True)
class WizardState:
    """Everything the wizard persists between sessions."""

    step: WizardStep = WizardStep.INTRO
    current_section_index: int = 0
    section_feedback: Tuple[SectionFeedback, ...] = ()
    question_answers: Tuple[QuestionAnswer, ...] = ()
    general_comment: str = ""

    @classmethod
    def fresh(cls, sections: Iterable[Section], questions: Iterable[Question]) -> "WizardState":
        """Default state for a catalog: intro step, nothing answered."""
        return cls(
            section_feedback=tuple(SectionFeedback(section_id=s.id) for s in sections),
            question_answers=tuple(QuestionAnswer(question_id=q.id, question=q.question) for q in questions),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step": self.step.value,
            "currentSectionIndex": self.current_section_index,
            "sectionFeedback": [f.to_dict() for f in self.section_feedback],
            "questionAnswers": [a.to_dict() for a in self.question_answers],
            "generalComment": self.general_comment,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "WizardState":
        """Rebuild a state from its persisted form; any malformed field rejects it whole."""
        if not isinstance(data, dict):
            raise DraftRejectedError("Wizard state must be an object")
        try:
            feedback = tuple(SectionFeedback.from_dict(item) for item in data["sectionFeedback"])
            answers = tuple(QuestionAnswer.from_dict(item) for item in data.get("questionAnswers", []))
            index = data["currentSectionIndex"]
            general_comment = data.get("generalComment", "")
        except (KeyError, TypeError, AttributeError) as exc:
            raise DraftRejectedError(f"Malformed wizard state: {exc}") from exc
        if not isinstance(index, int) or isinstance(index, bool):
            raise DraftRejectedError("currentSectionIndex must be an integer")
        if not 0 <= index < max(len(feedback), 1):
            raise DraftRejectedError(f"currentSectionIndex {index} out of range")
        return cls(
            step=WizardStep.parse(data.get("step")),
            current_section_index=index,
            section_feedback=feedback,
            question_answers=answers,
            general_comment=str(general_comment),
        )

    # Derived counters -------------------------------------------------

    @property
    def change_count(self) -> int:
        sections = sum(1 for f in self.section_feedback if f.rating is Rating.CHANGE)
        questions = sum(1 for a in self.question_answers if a.answer is Answer.NO)
        return sections + questions

    @property
    def answered_count(self) -> int:
        return sum(1 for f in self.section_feedback if f.rating is not None)

    @property
    def all_good(self) -> bool:
        return self.answered_count == len(self.section_feedback) and self.change_count == 0

    @property
    def primary_action(self) -> SubmitAction:
        return SubmitAction.APPROVE if self.change_count == 0 else SubmitAction.SUBMIT_FEEDBACK


# ----------------------------------------------------------------------
# Persistence envelope
# ----------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class DraftEnvelope(Generic[T]):
    """A draft payload plus the metadata needed to decide whether to trust it."""

    data: T
    timestamp: int
    version: int

    def to_dict(self) -> Dict[str, Any]:
        return {"data": self.data, "timestamp": self.timestamp, "version": self.version}

    @classmethod
    def from_dict(cls, data: Any) -> "DraftEnvelope[Any]":
        if not isinstance(data, dict) or "data" not in data:
            raise DraftRejectedError("Draft envelope must be an object with a data field")
        timestamp = data.get("timestamp")
        version = data.get("version")
        if not isinstance(timestamp, (int, float)) or isinstance(timestamp, bool):
            raise DraftRejectedError("Draft envelope timestamp must be numeric")
        if not math.isfinite(timestamp):
            raise DraftRejectedError("Draft envelope timestamp must be finite")
        if not isinstance(version, int) or isinstance(version, bool):
            raise DraftRejectedError("Draft envelope version must be an integer")
        return cls(data=data["data"], timestamp=int(timestamp), version=version)

    def is_valid(self, *, version: int, now: int, max_age: int) -> bool:
        return self.version == version and now - self.timestamp <= max_age


# ----------------------------------------------------------------------
# Submission
# ----------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class SubmissionPayload:
    """JSON body sent to the project feedback endpoint."""

    project_id: str
    approved: bool
    section_feedback: Tuple[SectionFeedback, ...]
    question_answers: Tuple[QuestionAnswer, ...]
    general_comment: str = ""
    type: str = "design"

    @classmethod
    def from_state(cls, project_id: str, state: WizardState, *, approved: bool) -> "SubmissionPayload":
        """Build a payload keeping only the answered sections and questions."""
        return cls(
            project_id=project_id,
            approved=approved,
            section_feedback=tuple(f for f in state.section_feedback if f.rating is not None),
            question_answers=tuple(a for a in state.question_answers if a.answer is not None),
            general_comment=state.general_comment,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "projectId": self.project_id,
            "approved": self.approved,
            "type": self.type,
            "sectionFeedback": [f.to_dict() for f in self.section_feedback],
            "generalComment": self.general_comment,
            "questionAnswers": [a.to_dict() for a in self.question_answers],
        }


@dataclass(slots=True)
class SubmissionResult:
    """What the endpoint reported back for a successful submission."""

    success: bool = True
    approved: Optional[bool] = None
    design_approved_at: Optional[str] = None
    payment_url: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "approved": self.approved,
            "designApprovedAt": self.design_approved_at,
            "paymentUrl": self.payment_url,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SubmissionResult":
        return cls(
            success=bool(data.get("success", True)),
            approved=data.get("approved"),
            design_approved_at=data.get("designApprovedAt"),
            payment_url=data.get("paymentUrl"),
            raw=dict(data),
        )


def catalog_to_dicts(items: Iterable[Any]) -> List[Dict[str, Any]]:
    return [item.to_dict() for item in items]
