from rest_framework import serializers

from .constants import CROSS_INDUSTRY, Block, DeploymentType, SeniorityLevel
from .models import AssessmentResult, AssessmentTemplate, Candidate, SAPModule


class CandidateCreateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=160)
    email = serializers.EmailField()
    module_id = serializers.SlugField(max_length=32)
    industry_id = serializers.SlugField(max_length=32, default=CROSS_INDUSTRY)
    level = serializers.ChoiceField(choices=SeniorityLevel.choices)
    deployment_type = serializers.ChoiceField(
        choices=DeploymentType.choices, default=DeploymentType.PUBLIC_CLOUD
    )
    include_scenario = serializers.BooleanField(default=True)
    use_question_bank = serializers.BooleanField(default=False)
    job_context = serializers.CharField(required=False, allow_blank=True, default="")
    block_counts = serializers.DictField(
        child=serializers.IntegerField(min_value=0, max_value=50), required=False
    )

    def validate_module_id(self, value):
        modules = SAPModule.objects.filter(is_active=True)
        if modules.exists() and not modules.filter(code=value).exists():
            raise serializers.ValidationError(f"Unknown SAP module '{value}'.")
        return value

    def validate_block_counts(self, value):
        unknown = sorted(set(value) - set(Block.values))
        if unknown:
            raise serializers.ValidationError(f"Unknown block(s): {', '.join(unknown)}")
        if not any(value.values()):
            raise serializers.ValidationError("Request at least one question.")
        return value


class BankGenerateSerializer(serializers.Serializer):
    module_id = serializers.SlugField(max_length=32)
    industry_id = serializers.SlugField(max_length=32, default=CROSS_INDUSTRY)
    level = serializers.ChoiceField(choices=SeniorityLevel.choices)
    deployment_type = serializers.ChoiceField(
        choices=DeploymentType.choices, default=DeploymentType.PUBLIC_CLOUD
    )
    include_scenario = serializers.BooleanField(default=False)
    block_counts = serializers.DictField(
        child=serializers.IntegerField(min_value=0, max_value=50), required=False
    )

    validate_module_id = CandidateCreateSerializer.validate_module_id
    validate_block_counts = CandidateCreateSerializer.validate_block_counts


class CandidateSerializer(serializers.ModelSerializer):
    template = serializers.SlugRelatedField(slug_field="uuid", read_only=True)
    progress_status = serializers.ReadOnlyField()
    test_link = serializers.ReadOnlyField()

    class Meta:
        model = Candidate
        fields = [
            "uuid",
            "name",
            "email",
            "applied_module",
            "applied_industry",
            "applied_level",
            "deployment_type",
            "status",
            "progress_status",
            "test_link",
            "template",
            "created_at",
        ]


class TemplateSummarySerializer(serializers.ModelSerializer):
    question_count = serializers.ReadOnlyField()
    block_counts = serializers.ReadOnlyField()

    class Meta:
        model = AssessmentTemplate
        fields = [
            "uuid",
            "name",
            "module",
            "industry",
            "level",
            "deployment_type",
            "question_count",
            "block_counts",
            "created_at",
        ]


class TemplateDetailSerializer(TemplateSummarySerializer):
    class Meta(TemplateSummarySerializer.Meta):
        fields = TemplateSummarySerializer.Meta.fields + ["questions", "scenarios"]


class AssessmentResultSerializer(serializers.ModelSerializer):
    class Meta:
        model = AssessmentResult
        fields = [
            "uuid",
            "score",
            "block_scores",
            "answers",
            "finish_reason",
            "scenario_response",
            "report_sent_to",
            "completed_at",
        ]
