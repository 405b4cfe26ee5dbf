from django.apps import AppConfig


class CandidateConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "candidate"
    verbose_name = "Candidate Sessions"
