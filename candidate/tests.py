import uuid
from datetime import datetime, timedelta, timezone as dt_timezone
from io import StringIO
from unittest.mock import patch

from django.core.management import call_command
from django.db import DatabaseError
from django.test import RequestFactory, TestCase
from django.urls import reverse
from rest_framework.test import APIClient

from assessments.constants import CandidateStatus
from assessments.exceptions import (
    ConfirmationRequired,
    SessionClosed,
    SessionStateError,
)
from assessments.models import AssessmentResult, Candidate
from assessments.services import record_submission
from assessments.tests import correct_answers, make_candidate, make_template
from .models import CandidateSession, ConsentLog
from .session import (
    LINK_COMPLETED,
    LINK_NOT_FOUND,
    LINK_SESSION,
    SessionRunner,
    expire_overdue_sessions,
    record_consent,
    resolve_session_link,
)

START = datetime(2025, 3, 10, 9, 0, tzinfo=dt_timezone.utc)


class FakeClock:
    def __init__(self, now=START):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class SessionRunnerTests(TestCase):
    def setUp(self):
        self.template = make_template()
        self.candidate = make_candidate(self.template)
        self.questions = self.template.question_set
        self.clock = FakeClock()

    def open_session(self):
        link = resolve_session_link(self.candidate.uuid, clock=self.clock)
        self.assertEqual(link.kind, LINK_SESSION)
        return SessionRunner(link.session, clock=self.clock)

    def started(self):
        runner = self.open_session()
        runner.start()
        return runner

    def test_link_resolution_does_not_start_timer(self):
        runner = self.open_session()
        self.assertEqual(runner.state, CandidateSession.STATE_NOT_STARTED)
        self.assertIsNone(runner.session.started_at)
        self.assertEqual(runner.remaining_seconds(), 3600)
        self.assertEqual(self.candidate.progress_status, CandidateStatus.PENDING)

    def test_unknown_link(self):
        self.assertEqual(resolve_session_link(uuid.uuid4()).kind, LINK_NOT_FOUND)
        self.assertEqual(resolve_session_link("not-a-uuid").kind, LINK_NOT_FOUND)

    def test_start_and_resume(self):
        runner = self.started()
        self.assertEqual(runner.session.deadline_at, START + timedelta(seconds=3600))
        self.assertEqual(runner.session.answers, {})
        runner.select(self.questions[0].id, 2)

        self.clock.advance(minutes=10)
        resumed = self.open_session()
        resumed.start()
        self.assertEqual(resumed.session.deadline_at, START + timedelta(seconds=3600))
        self.assertEqual(resumed.session.answers, {self.questions[0].id: 2})
        self.assertEqual(resumed.remaining_seconds(), 3000)
        self.candidate.refresh_from_db()
        self.assertEqual(self.candidate.progress_status, CandidateStatus.IN_PROGRESS)

    def test_actions_require_a_started_session(self):
        runner = self.open_session()
        with self.assertRaises(SessionStateError):
            runner.select(self.questions[0].id, 0)
        with self.assertRaises(SessionStateError):
            runner.finish(confirm=True)

    def test_select_overwrites_and_validates(self):
        runner = self.started()
        question_id = self.questions[3].id
        runner.select(question_id, 1)
        runner.select(question_id, 0)
        self.assertEqual(runner.session.answers, {question_id: 0})
        with self.assertRaises(SessionStateError):
            runner.select("missing", 0)
        with self.assertRaises(SessionStateError):
            runner.select(question_id, 4)

    def test_free_navigation(self):
        runner = self.started()
        self.assertEqual(runner.go_to(24), 24)
        self.assertEqual(runner.previous(), 23)
        self.assertEqual(runner.next(), 24)
        with self.assertRaises(SessionStateError):
            runner.next()
        with self.assertRaises(SessionStateError):
            runner.go_to(-1)

    def test_remaining_seconds_never_negative(self):
        runner = self.started()
        self.clock.advance(seconds=3599)
        self.assertEqual(runner.remaining_seconds(), 1)
        self.clock.advance(seconds=20)
        self.assertEqual(runner.remaining_seconds(), 0)

    def test_finish_requires_confirmation_when_unanswered(self):
        runner = self.started()
        runner.select(self.questions[0].id, 0)
        with self.assertRaises(ConfirmationRequired) as ctx:
            runner.finish()
        self.assertEqual(ctx.exception.unanswered, 24)
        self.assertEqual(runner.state, CandidateSession.STATE_RUNNING)
        self.assertFalse(AssessmentResult.objects.exists())

    def test_finish_scores_and_closes(self):
        runner = self.started()
        for question_id, option in correct_answers(self.questions).items():
            runner.select(question_id, option)
        result = runner.finish(scenario_response="Standardize the close.")

        self.assertEqual(result.score, 50.0)
        self.assertEqual(result.finish_reason, AssessmentResult.REASON_COMPLETED)
        self.assertEqual(result.scenario_response, "Standardize the close.")
        session = CandidateSession.objects.get()
        self.assertEqual(session.state, CandidateSession.STATE_COMPLETED)
        self.assertEqual(session.answers, {})
        self.candidate.refresh_from_db()
        self.assertEqual(self.candidate.status, CandidateStatus.COMPLETED)
        self.assertEqual(resolve_session_link(self.candidate.uuid).kind, LINK_COMPLETED)

    def test_finish_is_idempotent(self):
        runner = self.started()
        first = runner.finish(confirm=True)
        second = runner.finish(confirm=True)
        third = SessionRunner(CandidateSession.objects.get(), clock=self.clock).expire()
        self.assertEqual(first.pk, second.pk)
        self.assertEqual(first.pk, third.pk)
        self.assertEqual(AssessmentResult.objects.count(), 1)
        self.assertEqual(
            CandidateSession.objects.get().state, CandidateSession.STATE_COMPLETED
        )

    def test_expiry_scores_partial_answers(self):
        runner = self.started()
        for question in self.questions[:10]:
            runner.select(question.id, question.correct_answer_index)

        self.clock.advance(seconds=3600 + 31)
        result = runner.tick()

        self.assertIsNotNone(result)
        self.assertEqual(result.finish_reason, AssessmentResult.REASON_EXPIRED)
        self.assertEqual(len(result.answers), 25)
        self.assertEqual(sum(1 for a in result.answers if a["outcome"] == "unanswered"), 15)
        self.assertEqual(result.score, 20.0)
        self.assertEqual(runner.state, CandidateSession.STATE_EXPIRED)
        self.candidate.refresh_from_db()
        self.assertEqual(self.candidate.status, CandidateStatus.COMPLETED)

    def test_selection_accepted_within_grace(self):
        runner = self.started()
        self.clock.advance(seconds=3600 + 10)
        runner.select(self.questions[0].id, 0)
        self.assertEqual(runner.state, CandidateSession.STATE_RUNNING)

        self.clock.advance(seconds=30)
        with self.assertRaises(SessionClosed) as ctx:
            runner.select(self.questions[1].id, 0)
        self.assertEqual(ctx.exception.state, CandidateSession.STATE_EXPIRED)
        result = AssessmentResult.objects.get()
        self.assertEqual(result.answers[0]["outcome"], "correct")

    def test_late_finish_is_recorded_as_expired(self):
        runner = self.started()
        self.clock.advance(hours=2)
        result = runner.finish()
        self.assertEqual(result.finish_reason, AssessmentResult.REASON_EXPIRED)

    def test_finish_at_deadline_expires_without_confirmation(self):
        runner = self.started()
        runner.select(self.questions[0].id, self.questions[0].correct_answer_index)
        self.clock.advance(seconds=3600 + 5)

        self.assertEqual(runner.remaining_seconds(), 0)
        self.assertIsNone(runner.tick())
        result = runner.finish()

        self.assertEqual(result.finish_reason, AssessmentResult.REASON_EXPIRED)
        self.assertEqual(runner.state, CandidateSession.STATE_EXPIRED)
        self.assertEqual(sum(1 for a in result.answers if a["outcome"] == "unanswered"), 24)

    def test_confirmed_finish_at_exact_deadline_is_expired(self):
        runner = self.started()
        self.clock.advance(seconds=3600)
        result = runner.finish(confirm=True)
        self.assertEqual(result.finish_reason, AssessmentResult.REASON_EXPIRED)

    def test_terminal_session_cannot_restart(self):
        runner = self.started()
        runner.finish(confirm=True)
        with self.assertRaises(SessionClosed):
            runner.start()

    def test_resolve_expires_overdue_session(self):
        self.started()
        self.clock.advance(hours=3)
        link = resolve_session_link(self.candidate.uuid, clock=self.clock)
        self.assertEqual(link.kind, LINK_COMPLETED)
        self.assertEqual(link.result.finish_reason, AssessmentResult.REASON_EXPIRED)


class ExpireOverdueSessionsTests(TestCase):
    def setUp(self):
        template = make_template()
        self.overdue = make_candidate(template, name="Overdue", email="o@example.com")
        self.fresh = make_candidate(template, name="Fresh", email="f@example.com")
        self.idle = make_candidate(template, name="Idle", email="i@example.com")

        for candidate, started in ((self.overdue, START), (self.fresh, START + timedelta(minutes=50))):
            link = resolve_session_link(candidate.uuid)
            SessionRunner(link.session, clock=FakeClock(started)).start()
        resolve_session_link(self.idle.uuid)

    def test_only_overdue_running_sessions_expire(self):
        stats = expire_overdue_sessions(now=START + timedelta(minutes=61))
        self.assertEqual(stats, {"expired": 1, "errors": 0})

        statuses = dict(Candidate.objects.values_list("name", "status"))
        self.assertEqual(statuses["Overdue"], CandidateStatus.COMPLETED)
        self.assertEqual(statuses["Fresh"], CandidateStatus.PENDING)
        self.assertEqual(statuses["Idle"], CandidateStatus.PENDING)
        self.assertEqual(
            CandidateSession.objects.get(candidate=self.idle).state,
            CandidateSession.STATE_NOT_STARTED,
        )
        self.assertEqual(AssessmentResult.objects.get().candidate, self.overdue)

    def test_store_error_on_one_session_does_not_stop_the_sweep(self):
        calls = []

        def flaky(*args, **kwargs):
            calls.append(args[0])
            if len(calls) == 1:
                raise DatabaseError("deadlock detected")
            return record_submission(*args, **kwargs)

        with patch("candidate.session.record_submission", side_effect=flaky):
            stats = expire_overdue_sessions(now=START + timedelta(hours=5))

        self.assertEqual(stats, {"expired": 1, "errors": 1})
        self.assertEqual(len(calls), 2)
        self.assertEqual(AssessmentResult.objects.count(), 1)
        self.assertEqual(
            CandidateSession.objects.filter(state=CandidateSession.STATE_RUNNING).count(), 1
        )

    def test_command(self):
        out = StringIO()
        with patch("candidate.session.timezone.now", return_value=START + timedelta(hours=5)):
            call_command("expire_sessions", stdout=out)
        self.assertIn("Expired 2 session(s)", out.getvalue())

        out = StringIO()
        call_command("expire_sessions", stdout=out)
        self.assertIn("No overdue sessions", out.getvalue())


class ConsentTests(TestCase):
    def test_consent_records_forwarded_ip(self):
        candidate = make_candidate()
        request = RequestFactory().post(
            "/", HTTP_X_FORWARDED_FOR="203.0.113.9, 10.0.0.1", HTTP_USER_AGENT="Firefox"
        )
        log = record_consent(candidate, request)
        self.assertEqual(log.ip_address, "203.0.113.9")
        self.assertEqual(log.user_agent, "Firefox")
        self.assertEqual(log.email, candidate.email)


class CandidateAPITests(TestCase):
    def setUp(self):
        self.candidate = make_candidate()
        self.questions = self.candidate.template.question_set
        self.client = APIClient()

    def url(self, name):
        return reverse(f"candidate:{name}", args=[self.candidate.uuid])

    def start(self):
        response = self.client.post(self.url("session-start"), {"consent": True}, format="json")
        self.assertEqual(response.status_code, 200, response.data)
        return response

    def test_entry_hides_answer_key(self):
        response = self.client.get(self.url("session-entry"))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["state"], "not_started")
        self.assertEqual(response.data["total_questions"], 25)
        self.assertNotIn("correct_answer_index", response.data["questions"][0])

    def test_unknown_link_is_404(self):
        response = self.client.get(reverse("candidate:session-entry", args=[uuid.uuid4()]))
        self.assertEqual(response.status_code, 404)

    def test_start_requires_consent(self):
        response = self.client.post(self.url("session-start"), {"consent": False}, format="json")
        self.assertEqual(response.status_code, 400)
        self.assertFalse(ConsentLog.objects.exists())

        response = self.start()
        self.assertEqual(response.data["state"], "running")
        self.assertEqual(response.data["remaining_seconds"], 3600)
        self.assertEqual(ConsentLog.objects.count(), 1)

    def test_answer_navigate_and_finish(self):
        self.start()
        response = self.client.post(
            self.url("session-answer"),
            {"question_id": self.questions[0].id, "option": 0},
            format="json",
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["answered"], 1)

        response = self.client.post(self.url("session-navigate"), {"index": 5}, format="json")
        self.assertEqual(response.data["current_index"], 5)
        response = self.client.post(
            self.url("session-navigate"), {"direction": "previous"}, format="json"
        )
        self.assertEqual(response.data["current_index"], 4)

        response = self.client.post(self.url("session-finish"), {}, format="json")
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data["unanswered"], 24)

        response = self.client.post(self.url("session-finish"), {"confirm": True}, format="json")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data, {"state": "completed", "score": 2.0})

    def test_invalid_answer_is_400(self):
        self.start()
        response = self.client.post(
            self.url("session-answer"), {"question_id": "nope", "option": 0}, format="json"
        )
        self.assertEqual(response.status_code, 400)

    def test_closed_session_returns_410(self):
        self.start()
        self.client.post(self.url("session-finish"), {"confirm": True}, format="json")

        response = self.client.post(
            self.url("session-answer"),
            {"question_id": self.questions[0].id, "option": 0},
            format="json",
        )
        self.assertEqual(response.status_code, 410)
        self.assertEqual(response.data["state"], "completed")

        response = self.client.get(self.url("session-entry"))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["state"], "completed")

    def test_expired_session_returns_410(self):
        self.start()
        later = CandidateSession.objects.get().deadline_at + timedelta(minutes=5)
        with patch("django.utils.timezone.now", return_value=later):
            response = self.client.post(
                self.url("session-answer"),
                {"question_id": self.questions[0].id, "option": 0},
                format="json",
            )
        self.assertEqual(response.status_code, 410)
        self.assertEqual(response.data["state"], "expired")
        self.assertEqual(
            AssessmentResult.objects.get().finish_reason, AssessmentResult.REASON_EXPIRED
        )

    def test_entry_reports_overdue_session_as_expired(self):
        self.start()
        later = CandidateSession.objects.get().deadline_at + timedelta(minutes=5)
        with patch("django.utils.timezone.now", return_value=later):
            response = self.client.get(self.url("session-entry"))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["state"], "expired")
        self.assertEqual(
            AssessmentResult.objects.get().finish_reason, AssessmentResult.REASON_EXPIRED
        )
