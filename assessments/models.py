from __future__ import annotations

import uuid

from django.conf import settings
from django.db import models
from django.db.models import Q
from django.urls import reverse
from django.utils import timezone
from django.utils.functional import cached_property

from .constants import (
    CROSS_INDUSTRY,
    Block,
    CandidateStatus,
    DeploymentType,
    ModuleCategory,
    SeniorityLevel,
)
from .exceptions import TemplateImmutable
from .questions import Question, Scenario


class TimeStampedModel(models.Model):
    """Base class to track creation and modification times."""

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class SAPModule(TimeStampedModel):
    """Lookup list of SAP modules candidates can apply for."""

    code = models.SlugField(max_length=32, unique=True)
    name = models.CharField(max_length=120)
    category = models.CharField(
        max_length=16,
        choices=ModuleCategory.choices,
        default=ModuleCategory.FUNCTIONAL,
    )
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ("name",)

    def __str__(self):
        return self.name


class Industry(TimeStampedModel):
    code = models.SlugField(max_length=32, unique=True)
    name = models.CharField(max_length=120)
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ("name",)
        verbose_name_plural = "industries"

    def __str__(self):
        return self.name


class BankQuestionQuerySet(models.QuerySet):
    def active(self):
        return self.filter(is_active=True)

    def matching(self, *, module: str, industry: str, deployment_type: str):
        """Questions for a module/deployment; cross-industry questions always match."""
        return self.active().filter(
            Q(industry=industry) | Q(industry=CROSS_INDUSTRY),
            module=module,
            deployment_type=deployment_type,
        )


class BankQuestion(TimeStampedModel):
    """Reusable multiple-choice question kept in the question bank."""

    text = models.TextField()
    options = models.JSONField(default=list)
    correct_answer_index = models.PositiveSmallIntegerField(default=0)
    block = models.CharField(max_length=16, choices=Block.choices)
    seniority = models.CharField(max_length=10, choices=SeniorityLevel.choices)
    industry = models.CharField(max_length=32, default=CROSS_INDUSTRY)
    module = models.CharField(max_length=32)
    deployment_type = models.CharField(max_length=16, choices=DeploymentType.choices)
    weight = models.FloatField(default=1.0)
    explanation = models.TextField(blank=True)
    ai_generated = models.BooleanField(default=False)
    is_active = models.BooleanField(default=True)

    objects = BankQuestionQuerySet.as_manager()

    class Meta:
        ordering = ("module", "block", "-created_at")
        indexes = [
            models.Index(
                fields=["module", "deployment_type", "block"],
                name="bankq_module_deploy_block_idx",
            )
        ]

    def __str__(self):
        return self.text[:80]

    def to_question(self) -> Question:
        return Question(
            id=f"bank-{self.pk}",
            text=self.text,
            options=tuple(self.options or ()),
            correct_answer_index=self.correct_answer_index,
            block=self.block,
            seniority=self.seniority,
            industry=self.industry,
            module=self.module,
            deployment_type=self.deployment_type,
            weight=self.weight,
            explanation=self.explanation,
        )


class BankScenarioQuerySet(models.QuerySet):
    def matching(self, *, module: str, level: str, industry: str):
        return self.filter(module=module, level=level, industry=industry)


class BankScenario(TimeStampedModel):
    """Case study reused across templates for the same module/level/industry."""

    uuid = models.UUIDField(default=uuid.uuid4, unique=True, editable=False)
    module = models.CharField(max_length=32)
    level = models.CharField(max_length=10, choices=SeniorityLevel.choices)
    industry = models.CharField(max_length=32)
    deployment_type = models.CharField(
        max_length=16, choices=DeploymentType.choices, blank=True
    )
    title = models.CharField(max_length=200)
    description = models.TextField()
    guidelines = models.TextField(blank=True)
    rubric = models.JSONField(default=list, blank=True)
    ai_generated = models.BooleanField(default=False)

    objects = BankScenarioQuerySet.as_manager()

    class Meta:
        ordering = ("-created_at",)

    def __str__(self):
        return self.title

    def to_scenario(self) -> Scenario:
        return Scenario(
            id=f"scenario-{self.uuid}",
            module_id=self.module,
            level=self.level,
            industry=self.industry,
            title=self.title,
            description=self.description,
            guidelines=self.guidelines,
            rubric=tuple(self.rubric or ()),
        )


class AssessmentTemplate(models.Model):
    """
    Frozen bundle of questions (and at most one scenario) a candidate is scored against.

    Results reference templates, so a template is written once and never
    edited; compositional changes produce a new template.
    """

    uuid = models.UUIDField(default=uuid.uuid4, unique=True, editable=False)
    name = models.CharField(max_length=200)
    module = models.CharField(max_length=32)
    industry = models.CharField(max_length=32)
    level = models.CharField(max_length=10, choices=SeniorityLevel.choices)
    deployment_type = models.CharField(max_length=16, choices=DeploymentType.choices)
    questions = models.JSONField(default=list)
    scenarios = models.JSONField(default=list, blank=True)
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ("-created_at",)

    def __str__(self):
        return self.name

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise TemplateImmutable(f"Template {self.uuid} cannot be modified")
        super().save(*args, **kwargs)

    @cached_property
    def question_set(self) -> tuple[Question, ...]:
        return tuple(Question.from_dict(item) for item in self.questions or [])

    @cached_property
    def scenario(self) -> Scenario | None:
        if not self.scenarios:
            return None
        return Scenario.from_dict(self.scenarios[0])

    def question_count(self) -> int:
        return len(self.questions or [])

    def block_counts(self) -> dict[str, int]:
        counts = {block.value: 0 for block in Block}
        for question in self.question_set:
            counts[question.block.value] += 1
        return counts


class Candidate(TimeStampedModel):
    uuid = models.UUIDField(default=uuid.uuid4, unique=True, editable=False)
    name = models.CharField(max_length=160)
    email = models.EmailField()
    applied_module = models.CharField(max_length=32)
    applied_industry = models.CharField(max_length=32)
    applied_level = models.CharField(max_length=10, choices=SeniorityLevel.choices)
    deployment_type = models.CharField(max_length=16, choices=DeploymentType.choices)
    job_context = models.TextField(blank=True)
    template = models.ForeignKey(
        AssessmentTemplate,
        on_delete=models.PROTECT,
        related_name="candidates",
    )
    # IN_PROGRESS is never stored; see ``progress_status``.
    status = models.CharField(
        max_length=16,
        choices=CandidateStatus.choices,
        default=CandidateStatus.PENDING,
    )

    class Meta:
        ordering = ("-created_at",)
        indexes = [models.Index(fields=["status"], name="candidate_status_idx")]

    def __str__(self):
        return f"{self.name} <{self.email}>"

    @property
    def test_link(self) -> str:
        base_url = getattr(settings, "ASSESSMENT_PUBLIC_BASE_URL", "").rstrip("/")
        return f"{base_url}{reverse('candidate:session-entry', args=[self.uuid])}"

    @property
    def progress_status(self) -> str:
        if self.status == CandidateStatus.COMPLETED:
            return CandidateStatus.COMPLETED
        session = getattr(self, "session", None)
        if session is not None and session.is_running:
            return CandidateStatus.IN_PROGRESS
        return CandidateStatus.PENDING


class AssessmentResult(models.Model):
    """Scored outcome of one candidate's session. Written once per candidate."""

    REASON_COMPLETED = "completed"
    REASON_EXPIRED = "expired"
    REASON_CHOICES = [
        (REASON_COMPLETED, "Completed by candidate"),
        (REASON_EXPIRED, "Time expired"),
    ]

    uuid = models.UUIDField(default=uuid.uuid4, unique=True, editable=False)
    candidate = models.OneToOneField(
        Candidate, on_delete=models.CASCADE, related_name="result"
    )
    template = models.ForeignKey(
        AssessmentTemplate, on_delete=models.PROTECT, related_name="results"
    )
    score = models.FloatField()
    block_scores = models.JSONField(default=dict)
    answers = models.JSONField(default=list)
    finish_reason = models.CharField(
        max_length=16, choices=REASON_CHOICES, default=REASON_COMPLETED
    )
    scenario_response = models.TextField(blank=True)
    report_sent_to = models.EmailField(blank=True)
    completed_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ("-completed_at",)

    def __str__(self):
        return f"{self.candidate.name}: {self.score:.1f}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise TemplateImmutable(f"Result {self.uuid} cannot be modified")
        super().save(*args, **kwargs)

    @property
    def approval(self):
        from .approval import evaluate

        return evaluate(self.candidate.applied_level, self.score)
