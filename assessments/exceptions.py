"""
Domain exceptions for template composition, sessions and scoring.

Views translate these into HTTP responses; services never swallow them.
"""
from __future__ import annotations


class AssessmentError(Exception):
    """Base class for assessment pipeline errors."""


class InvalidQuestion(AssessmentError, ValueError):
    """A question or scenario payload failed validation."""


class GenerationFailure(AssessmentError):
    """The content generator failed or returned empty/malformed data."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Question generation failed: {reason}")


class InvalidTemplate(AssessmentError):
    """A template cannot be scored (for example it has no questions)."""


class TemplateImmutable(AssessmentError):
    """Raised when code tries to modify an already persisted template or result."""


class PersistenceFailure(AssessmentError):
    """
    A store write failed.

    ``step`` names the write that failed so callers can retry only that step;
    ``template`` is set when the template was already saved.
    """

    def __init__(self, step: str, message: str, template=None):
        self.step = step
        self.template = template
        super().__init__(f"Failed to persist {step}: {message}")


class NotFound(AssessmentError):
    """A candidate link does not resolve to a stored candidate."""

    def __init__(self, candidate_uuid):
        self.candidate_uuid = candidate_uuid
        super().__init__(f"Candidate '{candidate_uuid}' not found")


class DuplicateSubmission(AssessmentError):
    """A result already exists for the candidate; carries the existing result."""

    def __init__(self, result):
        self.result = result
        super().__init__(f"Result already recorded for candidate {result.candidate_id}")


class SessionStateError(AssessmentError):
    """An action is not allowed in the session's current state."""


class SessionClosed(SessionStateError):
    def __init__(self, state: str):
        self.state = state
        super().__init__(f"Session is {state}")


class ConfirmationRequired(SessionStateError):
    """Finishing with unanswered questions needs an explicit confirmation."""

    def __init__(self, unanswered: int):
        self.unanswered = unanswered
        super().__init__(
            f"{unanswered} question(s) unanswered; confirm to finish anyway"
        )
