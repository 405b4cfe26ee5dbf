from django.contrib import admin

from .models import (
    AssessmentResult,
    AssessmentTemplate,
    BankQuestion,
    BankScenario,
    Candidate,
    Industry,
    SAPModule,
)


class ReadOnlyAdminMixin:
    """Templates and results are written once by the pipeline and never edited."""

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False


@admin.register(SAPModule)
class SAPModuleAdmin(admin.ModelAdmin):
    list_display = ("name", "code", "category", "is_active")
    list_filter = ("category", "is_active")
    search_fields = ("name", "code")


@admin.register(Industry)
class IndustryAdmin(admin.ModelAdmin):
    list_display = ("name", "code", "is_active")
    search_fields = ("name", "code")


@admin.register(BankQuestion)
class BankQuestionAdmin(admin.ModelAdmin):
    list_display = ("text", "module", "block", "seniority", "industry", "deployment_type", "weight", "is_active")
    list_filter = ("module", "block", "seniority", "deployment_type", "ai_generated", "is_active")
    search_fields = ("text",)


@admin.register(BankScenario)
class BankScenarioAdmin(admin.ModelAdmin):
    list_display = ("title", "module", "level", "industry", "ai_generated", "created_at")
    list_filter = ("module", "level", "industry")
    readonly_fields = ("uuid", "created_at", "updated_at")


@admin.register(AssessmentTemplate)
class AssessmentTemplateAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = ("name", "module", "level", "deployment_type", "question_count", "created_at")
    list_filter = ("module", "level", "deployment_type")
    search_fields = ("name", "uuid")
    readonly_fields = ("uuid", "created_at")


class AssessmentResultInline(admin.StackedInline):
    model = AssessmentResult
    extra = 0
    can_delete = False
    readonly_fields = ("score", "block_scores", "finish_reason", "completed_at", "report_sent_to")
    fields = readonly_fields

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Candidate)
class CandidateAdmin(admin.ModelAdmin):
    list_display = ("name", "email", "applied_module", "applied_level", "status", "created_at")
    list_filter = ("status", "applied_module", "applied_level", "deployment_type")
    search_fields = ("name", "email")
    readonly_fields = ("uuid", "template", "created_at", "updated_at")
    inlines = [AssessmentResultInline]

    def has_add_permission(self, request):
        return False


@admin.register(AssessmentResult)
class AssessmentResultAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = ("candidate", "score", "finish_reason", "completed_at")
    list_filter = ("finish_reason",)
    search_fields = ("candidate__name", "candidate__email")
    readonly_fields = ("uuid", "completed_at")
