from django.urls import path

from . import views

app_name = "assessments"

urlpatterns = [
    path("candidates/", views.CandidateListCreateView.as_view(), name="candidate-list"),
    path("candidates/compare/", views.CandidateCompareView.as_view(), name="candidate-compare"),
    path(
        "candidates/<uuid:candidate_uuid>/",
        views.CandidateDetailView.as_view(),
        name="candidate-detail",
    ),
    path(
        "candidates/<uuid:candidate_uuid>/report/",
        views.CandidateReportView.as_view(),
        name="candidate-report",
    ),
    path("bank/generate/", views.BankGenerateView.as_view(), name="bank-generate"),
    path("templates/", views.TemplateListView.as_view(), name="template-list"),
    path(
        "templates/<uuid:template_uuid>/",
        views.TemplateDetailView.as_view(),
        name="template-detail",
    ),
]
