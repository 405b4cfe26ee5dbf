"""
Candidate session state machine.

    not_started -> running -> completed
                           -> expired

The deadline is enforced on the server. A close at or after the deadline is
an expiry and needs no confirmation. Selections are still accepted for a
short grace period after it; once that is over, the next mutating call
expires the session and ``expire_overdue_sessions`` sweeps sessions whose
browser went away. Finishing and expiring lock the session row so a session
is scored exactly once.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable

from django.core.exceptions import ValidationError
from django.db import DatabaseError, transaction
from django.utils import timezone

from assessments.constants import CandidateStatus
from assessments.exceptions import (
    AssessmentError,
    ConfirmationRequired,
    DuplicateSubmission,
    SessionClosed,
    SessionStateError,
)
from assessments.models import AssessmentResult, Candidate
from assessments.scoring import UNANSWERED, normalize_selection
from assessments.services import (
    complete_submission,
    mark_candidate_completed,
    record_submission,
)

from .models import CandidateSession, ConsentLog
from .utils import normalize_ip, session_duration_seconds, submission_grace_seconds

logger = logging.getLogger(__name__)

LINK_NOT_FOUND = "not_found"
LINK_COMPLETED = "completed"
LINK_SESSION = "session"


@dataclass
class SessionLink:
    kind: str
    candidate: Candidate | None = None
    session: CandidateSession | None = None
    result: AssessmentResult | None = None


class SessionRunner:
    """Drives one ``CandidateSession``. ``clock`` defaults to ``timezone.now``."""

    def __init__(self, session: CandidateSession, *, clock: Callable | None = None):
        self.session = session
        self.clock = clock or timezone.now

    # -- read side ---------------------------------------------------------

    @property
    def candidate(self) -> Candidate:
        return self.session.candidate

    @property
    def questions(self):
        return self.candidate.template.question_set

    @property
    def state(self) -> str:
        return self.session.state

    def remaining_seconds(self) -> int:
        if self.session.state == CandidateSession.STATE_NOT_STARTED:
            return self.session.duration_seconds or session_duration_seconds()
        if self.session.is_terminal or self.session.deadline_at is None:
            return 0
        remaining = (self.session.deadline_at - self.clock()).total_seconds()
        return max(0, math.ceil(remaining))

    def answered_count(self) -> int:
        answers = self.session.answers or {}
        return sum(
            1
            for question in self.questions
            if normalize_selection(answers.get(question.id)) != UNANSWERED
        )

    def unanswered_count(self) -> int:
        return len(self.questions) - self.answered_count()

    def is_past_deadline(self) -> bool:
        """The countdown reached zero; any close from here on is an expiry."""
        if self.session.deadline_at is None:
            return False
        return self.clock() >= self.session.deadline_at

    def is_overdue(self) -> bool:
        """The grace period after the deadline is over; late selections are refused."""
        if self.session.deadline_at is None:
            return False
        grace = timedelta(seconds=submission_grace_seconds())
        return self.clock() > self.session.deadline_at + grace

    # -- transitions -------------------------------------------------------

    def start(self) -> CandidateSession:
        """Start the countdown, or resume a session that is already running."""
        if self.session.is_running:
            self._ensure_running()
            return self.session
        if self.session.is_terminal:
            raise SessionClosed(self.session.state)

        now = self.clock()
        duration = session_duration_seconds()
        self.session.state = CandidateSession.STATE_RUNNING
        self.session.started_at = now
        self.session.duration_seconds = duration
        self.session.deadline_at = now + timedelta(seconds=duration)
        self.session.current_index = 0
        self.session.answers = {}
        self.session.last_activity_at = now
        self.session.save(
            update_fields=[
                "state",
                "started_at",
                "duration_seconds",
                "deadline_at",
                "current_index",
                "answers",
                "last_activity_at",
                "updated_at",
            ]
        )
        logger.info(
            "Session started for candidate %s (%ss)", self.candidate.uuid, duration
        )
        return self.session

    def tick(self) -> AssessmentResult | None:
        """Expire the session if its deadline (plus grace) has passed."""
        if self.session.is_running and self.is_overdue():
            return self.expire()
        return None

    def go_to(self, index: int) -> int:
        self._ensure_running()
        if isinstance(index, bool) or not isinstance(index, int):
            raise SessionStateError("Question index must be an integer")
        if not 0 <= index < len(self.questions):
            raise SessionStateError(f"Question index {index} is out of range")
        self.session.current_index = index
        self._touch("current_index")
        return index

    def next(self) -> int:
        return self.go_to(self.session.current_index + 1)

    def previous(self) -> int:
        return self.go_to(self.session.current_index - 1)

    def select(self, question_id: str, option_index: int) -> None:
        """Record an answer. Selecting again overwrites the previous choice."""
        self._ensure_running()
        question = next((q for q in self.questions if q.id == question_id), None)
        if question is None:
            raise SessionStateError(f"Unknown question '{question_id}'")
        if isinstance(option_index, bool) or not isinstance(option_index, int):
            raise SessionStateError("Option index must be an integer")
        if not 0 <= option_index < len(question.options):
            raise SessionStateError(
                f"Option {option_index} is out of range for question '{question_id}'"
            )
        answers = dict(self.session.answers or {})
        answers[question_id] = option_index
        self.session.answers = answers
        self._touch("answers")

    def finish(self, confirm: bool = False, scenario_response: str = "") -> AssessmentResult:
        """
        Close the session and score it.

        Before the deadline the session closes as completed. From the deadline
        on it closes as expired and unanswered questions need no confirmation.

        Raises:
            ConfirmationRequired: If questions are unanswered before the
                deadline and ``confirm`` is False
            SessionStateError: If the session was never started
        """
        return self._close(
            expire=False, confirm=confirm, scenario_response=scenario_response
        )

    def expire(self) -> AssessmentResult:
        """Close the session as expired and score whatever was answered."""
        return self._close(expire=True, confirm=True)

    # -- internals ---------------------------------------------------------

    def _ensure_running(self) -> None:
        self.tick()
        if self.session.is_terminal:
            raise SessionClosed(self.session.state)
        if not self.session.is_running:
            raise SessionStateError("Session has not started")

    def _touch(self, *fields: str) -> None:
        self.session.last_activity_at = self.clock()
        self.session.save(update_fields=[*fields, "last_activity_at", "updated_at"])

    def _close(self, *, expire: bool, confirm: bool, scenario_response: str = "") -> AssessmentResult:
        candidate = self.candidate
        fresh = False
        with transaction.atomic():
            session = CandidateSession.objects.select_for_update().get(pk=self.session.pk)
            session.candidate = candidate
            self.session = session

            if session.is_terminal:
                result = AssessmentResult.objects.filter(candidate=candidate).first()
                if result is None:
                    raise SessionClosed(session.state)
            else:
                if session.state == CandidateSession.STATE_NOT_STARTED:
                    raise SessionStateError("Session has not started")
                expired = expire or self.is_past_deadline()
                if not expired and not confirm:
                    unanswered = self.unanswered_count()
                    if unanswered:
                        raise ConfirmationRequired(unanswered)

                reason = (
                    AssessmentResult.REASON_EXPIRED if expired
                    else AssessmentResult.REASON_COMPLETED
                )
                try:
                    result = record_submission(
                        candidate,
                        dict(session.answers or {}),
                        finish_reason=reason,
                        scenario_response=scenario_response,
                    )
                    fresh = True
                except DuplicateSubmission as exc:
                    result = exc.result

                now = self.clock()
                session.state = (
                    CandidateSession.STATE_EXPIRED if expired
                    else CandidateSession.STATE_COMPLETED
                )
                session.finished_at = now
                session.last_activity_at = now
                session.answers = {}
                session.save(
                    update_fields=[
                        "state",
                        "finished_at",
                        "last_activity_at",
                        "answers",
                        "updated_at",
                    ]
                )
                logger.info(
                    "Session for candidate %s closed as %s", candidate.uuid, session.state
                )

        if fresh:
            complete_submission(result)
        else:
            mark_candidate_completed(candidate)
        return result


def resolve_session_link(candidate_uuid, *, clock: Callable | None = None) -> SessionLink:
    """
    Resolve a candidate link without starting the timer.

    Completed candidates short-circuit; anyone else gets a fresh or
    resumable session bound to their template.
    """
    try:
        candidate = (
            Candidate.objects.select_related("template")
            .filter(uuid=candidate_uuid)
            .first()
        )
    except (ValueError, ValidationError):
        candidate = None
    if candidate is None:
        return SessionLink(kind=LINK_NOT_FOUND)

    if candidate.status == CandidateStatus.COMPLETED:
        result = AssessmentResult.objects.filter(candidate=candidate).first()
        return SessionLink(kind=LINK_COMPLETED, candidate=candidate, result=result)

    session, _ = CandidateSession.objects.get_or_create(
        candidate=candidate,
        defaults={"duration_seconds": session_duration_seconds()},
    )
    session.candidate = candidate
    runner = SessionRunner(session, clock=clock)
    runner.tick()
    if runner.session.is_terminal:
        # A previous close stored the result but may have missed the status flip.
        mark_candidate_completed(candidate)
        result = AssessmentResult.objects.filter(candidate=candidate).first()
        return SessionLink(kind=LINK_COMPLETED, candidate=candidate, result=result)
    return SessionLink(kind=LINK_SESSION, candidate=candidate, session=runner.session)


def record_consent(candidate: Candidate, request) -> ConsentLog:
    return ConsentLog.objects.create(
        candidate=candidate,
        email=candidate.email,
        user_agent=request.META.get("HTTP_USER_AGENT", "")[:500],
        ip_address=normalize_ip(request),
    )


def expire_overdue_sessions(now=None) -> dict:
    """
    Force-submit running sessions whose deadline and grace period have passed.

    Sessions that were never started are left alone.
    """
    now = now or timezone.now()
    cutoff = now - timedelta(seconds=submission_grace_seconds())
    overdue = CandidateSession.objects.select_related("candidate__template").filter(
        state=CandidateSession.STATE_RUNNING, deadline_at__lt=cutoff
    )

    stats = {"expired": 0, "errors": 0}
    for session in overdue:
        try:
            SessionRunner(session, clock=lambda: now).expire()
            stats["expired"] += 1
        except (AssessmentError, DatabaseError) as exc:
            logger.error(
                "Failed to expire session for candidate %s: %s",
                session.candidate.uuid, exc,
            )
            stats["errors"] += 1
    return stats
