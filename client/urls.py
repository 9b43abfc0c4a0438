# client/urls.py
from django.urls import path
from .executorRecommendation import TopExecutorsView, ProjectInvitesView

urlpatterns = [
    path('projects/<int:project_id>/top-executors/', TopExecutorsView.as_view(), name='project-top-executors'),
    path('projects/<int:project_id>/invites/', ProjectInvitesView.as_view(), name='project-invites'),
]
