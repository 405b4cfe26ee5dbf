import uuid

import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models

SENIORITY_CHOICES = [("junior", "Junior"), ("pleno", "Mid (Pleno)"), ("senior", "Senior")]
DEPLOYMENT_CHOICES = [
    ("private_cloud", "S/4HANA Private Cloud"),
    ("public_cloud", "S/4HANA Public Cloud"),
]
BLOCK_CHOICES = [
    ("master_data", "Master Data"),
    ("process", "Process"),
    ("soft_skill", "Soft Skill"),
    ("sap_activate", "SAP Activate"),
    ("clean_core", "Clean Core"),
]


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="SAPModule",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("code", models.SlugField(max_length=32, unique=True)),
                ("name", models.CharField(max_length=120)),
                (
                    "category",
                    models.CharField(
                        choices=[
                            ("technical", "Technical"),
                            ("functional", "Functional"),
                            ("management", "Management"),
                        ],
                        default="functional",
                        max_length=16,
                    ),
                ),
                ("is_active", models.BooleanField(default=True)),
            ],
            options={"ordering": ("name",)},
        ),
        migrations.CreateModel(
            name="Industry",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("code", models.SlugField(max_length=32, unique=True)),
                ("name", models.CharField(max_length=120)),
                ("is_active", models.BooleanField(default=True)),
            ],
            options={"ordering": ("name",), "verbose_name_plural": "industries"},
        ),
        migrations.CreateModel(
            name="BankQuestion",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("text", models.TextField()),
                ("options", models.JSONField(default=list)),
                ("correct_answer_index", models.PositiveSmallIntegerField(default=0)),
                ("block", models.CharField(choices=BLOCK_CHOICES, max_length=16)),
                ("seniority", models.CharField(choices=SENIORITY_CHOICES, max_length=10)),
                ("industry", models.CharField(default="cross", max_length=32)),
                ("module", models.CharField(max_length=32)),
                ("deployment_type", models.CharField(choices=DEPLOYMENT_CHOICES, max_length=16)),
                ("weight", models.FloatField(default=1.0)),
                ("explanation", models.TextField(blank=True)),
                ("ai_generated", models.BooleanField(default=False)),
                ("is_active", models.BooleanField(default=True)),
            ],
            options={
                "ordering": ("module", "block", "-created_at"),
                "indexes": [
                    models.Index(
                        fields=["module", "deployment_type", "block"],
                        name="bankq_module_deploy_block_idx",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="BankScenario",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("uuid", models.UUIDField(default=uuid.uuid4, editable=False, unique=True)),
                ("module", models.CharField(max_length=32)),
                ("level", models.CharField(choices=SENIORITY_CHOICES, max_length=10)),
                ("industry", models.CharField(max_length=32)),
                (
                    "deployment_type",
                    models.CharField(blank=True, choices=DEPLOYMENT_CHOICES, max_length=16),
                ),
                ("title", models.CharField(max_length=200)),
                ("description", models.TextField()),
                ("guidelines", models.TextField(blank=True)),
                ("rubric", models.JSONField(blank=True, default=list)),
                ("ai_generated", models.BooleanField(default=False)),
            ],
            options={"ordering": ("-created_at",)},
        ),
        migrations.CreateModel(
            name="AssessmentTemplate",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("uuid", models.UUIDField(default=uuid.uuid4, editable=False, unique=True)),
                ("name", models.CharField(max_length=200)),
                ("module", models.CharField(max_length=32)),
                ("industry", models.CharField(max_length=32)),
                ("level", models.CharField(choices=SENIORITY_CHOICES, max_length=10)),
                ("deployment_type", models.CharField(choices=DEPLOYMENT_CHOICES, max_length=16)),
                ("questions", models.JSONField(default=list)),
                ("scenarios", models.JSONField(blank=True, default=list)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
            ],
            options={"ordering": ("-created_at",)},
        ),
        migrations.CreateModel(
            name="Candidate",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("uuid", models.UUIDField(default=uuid.uuid4, editable=False, unique=True)),
                ("name", models.CharField(max_length=160)),
                ("email", models.EmailField(max_length=254)),
                ("applied_module", models.CharField(max_length=32)),
                ("applied_industry", models.CharField(max_length=32)),
                ("applied_level", models.CharField(choices=SENIORITY_CHOICES, max_length=10)),
                ("deployment_type", models.CharField(choices=DEPLOYMENT_CHOICES, max_length=16)),
                ("job_context", models.TextField(blank=True)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("in_progress", "In progress"),
                            ("completed", "Completed"),
                        ],
                        default="pending",
                        max_length=16,
                    ),
                ),
                (
                    "template",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="candidates",
                        to="assessments.assessmenttemplate",
                    ),
                ),
            ],
            options={
                "ordering": ("-created_at",),
                "indexes": [models.Index(fields=["status"], name="candidate_status_idx")],
            },
        ),
        migrations.CreateModel(
            name="AssessmentResult",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("uuid", models.UUIDField(default=uuid.uuid4, editable=False, unique=True)),
                ("score", models.FloatField()),
                ("block_scores", models.JSONField(default=dict)),
                ("answers", models.JSONField(default=list)),
                (
                    "finish_reason",
                    models.CharField(
                        choices=[("completed", "Completed by candidate"), ("expired", "Time expired")],
                        default="completed",
                        max_length=16,
                    ),
                ),
                ("scenario_response", models.TextField(blank=True)),
                ("report_sent_to", models.EmailField(blank=True, max_length=254)),
                ("completed_at", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "candidate",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="result",
                        to="assessments.candidate",
                    ),
                ),
                (
                    "template",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="results",
                        to="assessments.assessmenttemplate",
                    ),
                ),
            ],
            options={"ordering": ("-completed_at",)},
        ),
    ]
