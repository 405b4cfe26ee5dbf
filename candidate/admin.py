from django.contrib import admin

from .models import CandidateSession, ConsentLog


@admin.register(CandidateSession)
class CandidateSessionAdmin(admin.ModelAdmin):
    list_display = ("candidate", "state", "started_at", "deadline_at", "finished_at")
    list_filter = ("state",)
    search_fields = ("candidate__name", "candidate__email")
    readonly_fields = ("created_at", "updated_at", "last_activity_at")


@admin.register(ConsentLog)
class ConsentLogAdmin(admin.ModelAdmin):
    list_display = ("email", "candidate", "ip_address", "created_at")
    search_fields = ("email",)
    readonly_fields = ("candidate", "email", "user_agent", "ip_address", "created_at")
