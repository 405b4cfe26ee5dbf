from __future__ import annotations

from django.http import Http404
from rest_framework import status
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from assessments.exceptions import (
    ConfirmationRequired,
    InvalidTemplate,
    PersistenceFailure,
    SessionClosed,
    SessionStateError,
)
from .models import CandidateSession
from .serializers import (
    AnswerSerializer,
    FinishSerializer,
    NavigateSerializer,
    StartSessionSerializer,
)
from .session import (
    LINK_COMPLETED,
    LINK_NOT_FOUND,
    SessionRunner,
    record_consent,
    resolve_session_link,
)


def completed_payload(link) -> dict:
    session = getattr(link.candidate, "session", None)
    return {
        "state": session.state if session else CandidateSession.STATE_COMPLETED,
        "candidate": link.candidate.name,
        "completed_at": link.result.completed_at if link.result else None,
    }


def session_payload(runner: SessionRunner) -> dict:
    template = runner.candidate.template
    scenario = template.scenario
    return {
        "state": runner.state,
        "candidate": runner.candidate.name,
        "module": template.module,
        "level": template.level,
        "remaining_seconds": runner.remaining_seconds(),
        "current_index": runner.session.current_index,
        "total_questions": len(runner.questions),
        "answered": runner.answered_count(),
        "questions": [question.to_public_dict() for question in runner.questions],
        "answers": dict(runner.session.answers or {}),
        "scenario": (
            {
                "title": scenario.title,
                "description": scenario.description,
                "guidelines": scenario.guidelines,
            }
            if scenario
            else None
        ),
    }


class CandidateSessionAPIView(APIView):
    """Base for link-authorized candidate endpoints. The uuid in the URL is the credential."""

    permission_classes = [AllowAny]
    authentication_classes: list = []

    def get_runner(self, candidate_uuid) -> SessionRunner:
        link = resolve_session_link(candidate_uuid)
        if link.kind == LINK_NOT_FOUND:
            raise Http404("Assessment link not found")
        if link.kind == LINK_COMPLETED:
            raise SessionClosed(completed_payload(link)["state"])
        return SessionRunner(link.session)

    def handle_exception(self, exc):
        if isinstance(exc, SessionClosed):
            return Response({"detail": str(exc), "state": exc.state}, status=status.HTTP_410_GONE)
        if isinstance(exc, ConfirmationRequired):
            return Response(
                {"detail": str(exc), "unanswered": exc.unanswered},
                status=status.HTTP_409_CONFLICT,
            )
        if isinstance(exc, SessionStateError):
            return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)
        if isinstance(exc, InvalidTemplate):
            return Response({"detail": str(exc)}, status=status.HTTP_422_UNPROCESSABLE_ENTITY)
        if isinstance(exc, PersistenceFailure):
            return Response({"detail": str(exc)}, status=status.HTTP_503_SERVICE_UNAVAILABLE)
        return super().handle_exception(exc)


class SessionEntryView(CandidateSessionAPIView):
    """
    Show the session behind a link without starting the timer.

    Resolving the link runs the deadline check, so a GET on a running session
    whose grace period is over expires and scores it before responding. The
    response then reports the expired state.
    """

    def get(self, request, candidate_uuid):
        link = resolve_session_link(candidate_uuid)
        if link.kind == LINK_NOT_FOUND:
            raise Http404("Assessment link not found")
        if link.kind == LINK_COMPLETED:
            return Response(completed_payload(link))
        return Response(session_payload(SessionRunner(link.session)))


class SessionStartView(CandidateSessionAPIView):
    def post(self, request, candidate_uuid):
        serializer = StartSessionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        runner = self.get_runner(candidate_uuid)
        if runner.state == CandidateSession.STATE_NOT_STARTED:
            record_consent(runner.candidate, request)
        runner.start()
        return Response(session_payload(runner))


class SessionAnswerView(CandidateSessionAPIView):
    def post(self, request, candidate_uuid):
        serializer = AnswerSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        runner = self.get_runner(candidate_uuid)
        runner.select(
            serializer.validated_data["question_id"],
            serializer.validated_data["option"],
        )
        return Response(
            {
                "answered": runner.answered_count(),
                "remaining_seconds": runner.remaining_seconds(),
            }
        )


class SessionNavigateView(CandidateSessionAPIView):
    def post(self, request, candidate_uuid):
        serializer = NavigateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        runner = self.get_runner(candidate_uuid)
        data = serializer.validated_data
        if "index" in data:
            index = runner.go_to(data["index"])
        elif data["direction"] == "next":
            index = runner.next()
        else:
            index = runner.previous()
        return Response(
            {"current_index": index, "remaining_seconds": runner.remaining_seconds()}
        )


class SessionFinishView(CandidateSessionAPIView):
    def post(self, request, candidate_uuid):
        serializer = FinishSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        runner = self.get_runner(candidate_uuid)
        result = runner.finish(
            confirm=serializer.validated_data["confirm"],
            scenario_response=serializer.validated_data["scenario_response"],
        )
        return Response({"state": runner.state, "score": round(result.score, 2)})
