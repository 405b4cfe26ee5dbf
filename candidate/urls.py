from django.urls import path

from . import views

app_name = "candidate"

urlpatterns = [
    path("<uuid:candidate_uuid>/", views.SessionEntryView.as_view(), name="session-entry"),
    path("<uuid:candidate_uuid>/start/", views.SessionStartView.as_view(), name="session-start"),
    path("<uuid:candidate_uuid>/answer/", views.SessionAnswerView.as_view(), name="session-answer"),
    path(
        "<uuid:candidate_uuid>/navigate/",
        views.SessionNavigateView.as_view(),
        name="session-navigate",
    ),
    path("<uuid:candidate_uuid>/finish/", views.SessionFinishView.as_view(), name="session-finish"),
]
