from __future__ import annotations

import logging

from django.core.exceptions import ValidationError
from django.db.models.deletion import ProtectedError
from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.permissions import IsAdminUser
from rest_framework.response import Response
from rest_framework.views import APIView

from .exceptions import GenerationFailure, PersistenceFailure
from .models import AssessmentTemplate, Candidate
from .serializers import (
    AssessmentResultSerializer,
    BankGenerateSerializer,
    CandidateCreateSerializer,
    CandidateSerializer,
    TemplateDetailSerializer,
    TemplateSummarySerializer,
)
from .services import (
    build_candidate_report,
    compare_candidates,
    create_candidate_assessment,
    generate_bank_pack,
)

logger = logging.getLogger(__name__)


class OperatorAPIView(APIView):
    permission_classes = [IsAdminUser]


class CandidateListCreateView(OperatorAPIView):
    def get(self, request):
        candidates = Candidate.objects.select_related("template", "session")
        status_filter = request.query_params.get("status")
        if status_filter:
            candidates = candidates.filter(status=status_filter)
        return Response(CandidateSerializer(candidates, many=True).data)

    def post(self, request):
        serializer = CandidateCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            created = create_candidate_assessment(**serializer.validated_data)
        except GenerationFailure as exc:
            logger.error("Candidate creation aborted: %s", exc)
            return Response(
                {"detail": str(exc), "reason": exc.reason},
                status=status.HTTP_502_BAD_GATEWAY,
            )
        except PersistenceFailure as exc:
            payload = {"detail": str(exc), "step": exc.step}
            if exc.template is not None:
                payload["template"] = str(exc.template.uuid)
            return Response(payload, status=status.HTTP_503_SERVICE_UNAVAILABLE)
        return Response(
            CandidateSerializer(created.candidate).data, status=status.HTTP_201_CREATED
        )


class CandidateDetailView(OperatorAPIView):
    def get(self, request, candidate_uuid):
        candidate = get_object_or_404(Candidate, uuid=candidate_uuid)
        return Response(CandidateSerializer(candidate).data)

    def delete(self, request, candidate_uuid):
        candidate = get_object_or_404(Candidate, uuid=candidate_uuid)
        logger.info("Deleting candidate %s", candidate.uuid)
        candidate.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


class CandidateReportView(OperatorAPIView):
    def get(self, request, candidate_uuid):
        candidate = get_object_or_404(Candidate, uuid=candidate_uuid)
        report = build_candidate_report(candidate)
        if report is None:
            return Response(
                {"detail": "Candidate has not completed the assessment."},
                status=status.HTTP_404_NOT_FOUND,
            )
        return Response(
            {
                "candidate": CandidateSerializer(candidate).data,
                "result": AssessmentResultSerializer(report.result).data,
                "approved": report.approval.approved,
                "threshold": report.approval.threshold,
                "chart": report.chart,
            }
        )


class CandidateCompareView(OperatorAPIView):
    def get(self, request):
        ids = [value.strip() for value in request.query_params.get("ids", "").split(",") if value.strip()]
        if not ids:
            return Response(
                {"detail": "Pass candidate uuids as ?ids=a,b"},
                status=status.HTTP_400_BAD_REQUEST,
            )
        try:
            candidates = list(Candidate.objects.filter(uuid__in=ids))
        except ValidationError:
            return Response({"detail": "Invalid candidate id."}, status=status.HTTP_400_BAD_REQUEST)
        order = {value: index for index, value in enumerate(ids)}
        candidates.sort(key=lambda candidate: order.get(str(candidate.uuid), len(order)))
        return Response(compare_candidates(candidates))


class TemplateListView(OperatorAPIView):
    def get(self, request):
        templates = AssessmentTemplate.objects.all()
        return Response(TemplateSummarySerializer(templates, many=True).data)


class TemplateDetailView(OperatorAPIView):
    def get(self, request, template_uuid):
        template = get_object_or_404(AssessmentTemplate, uuid=template_uuid)
        return Response(TemplateDetailSerializer(template).data)

    def delete(self, request, template_uuid):
        template = get_object_or_404(AssessmentTemplate, uuid=template_uuid)
        try:
            template.delete()
        except ProtectedError:
            return Response(
                {"detail": "Template is still assigned to candidates."},
                status=status.HTTP_409_CONFLICT,
            )
        return Response(status=status.HTTP_204_NO_CONTENT)


class BankGenerateView(OperatorAPIView):
    def post(self, request):
        serializer = BankGenerateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            pack = generate_bank_pack(**serializer.validated_data)
        except GenerationFailure as exc:
            logger.error("Bank generation aborted: %s", exc)
            return Response(
                {"detail": str(exc), "reason": exc.reason},
                status=status.HTTP_502_BAD_GATEWAY,
            )
        except PersistenceFailure as exc:
            return Response(
                {"detail": str(exc), "step": exc.step},
                status=status.HTTP_503_SERVICE_UNAVAILABLE,
            )
        return Response(
            {
                "banked": len(pack.questions),
                "template": TemplateSummarySerializer(pack.template).data,
            },
            status=status.HTTP_201_CREATED,
        )
