from __future__ import annotations

from django.conf import settings


def normalize_ip(request) -> str | None:
    forwarded = request.META.get("HTTP_X_FORWARDED_FOR")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.META.get("REMOTE_ADDR")


def session_duration_seconds() -> int:
    return int(getattr(settings, "ASSESSMENT_SESSION_SECONDS", 3600))


def submission_grace_seconds() -> int:
    return int(getattr(settings, "ASSESSMENT_SUBMISSION_GRACE_SECONDS", 30))
