from django.db import models

from assessments.models import Candidate, TimeStampedModel


class CandidateSession(TimeStampedModel):
    """Server-side timer and answer sheet for one candidate's attempt."""

    STATE_NOT_STARTED = "not_started"
    STATE_RUNNING = "running"
    STATE_COMPLETED = "completed"
    STATE_EXPIRED = "expired"
    STATE_CHOICES = [
        (STATE_NOT_STARTED, "Not started"),
        (STATE_RUNNING, "Running"),
        (STATE_COMPLETED, "Completed"),
        (STATE_EXPIRED, "Expired"),
    ]
    TERMINAL_STATES = {STATE_COMPLETED, STATE_EXPIRED}

    candidate = models.OneToOneField(
        Candidate, related_name="session", on_delete=models.CASCADE
    )
    state = models.CharField(
        max_length=16, choices=STATE_CHOICES, default=STATE_NOT_STARTED
    )
    started_at = models.DateTimeField(null=True, blank=True)
    deadline_at = models.DateTimeField(null=True, blank=True)
    duration_seconds = models.PositiveIntegerField(default=3600)
    current_index = models.PositiveIntegerField(default=0)
    # question id -> option index; emptied once the session is terminal
    answers = models.JSONField(default=dict, blank=True)
    finished_at = models.DateTimeField(null=True, blank=True)
    last_activity_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ("-created_at",)
        indexes = [
            models.Index(fields=["state", "deadline_at"], name="session_state_deadline_idx")
        ]

    def __str__(self):
        return f"{self.candidate} ({self.state})"

    @property
    def is_running(self) -> bool:
        return self.state == self.STATE_RUNNING

    @property
    def is_terminal(self) -> bool:
        return self.state in self.TERMINAL_STATES


class ConsentLog(TimeStampedModel):
    """Audit row written when a candidate accepts the data-processing terms."""

    candidate = models.ForeignKey(
        Candidate, related_name="consent_logs", on_delete=models.CASCADE
    )
    email = models.EmailField()
    user_agent = models.CharField(max_length=500, blank=True)
    ip_address = models.GenericIPAddressField(null=True, blank=True)

    class Meta:
        ordering = ("-created_at",)

    def __str__(self):
        return f"Consent from {self.email}"
