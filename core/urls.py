from django.urls import path
from .views import (
    CurrentUserView,
    MarkNotificationAsRead,
    NotificationListView,
    ProjectDetailView,
    ProjectListCreateView,
    ProjectProposalsView,
)

urlpatterns = [
    path('users/me/', CurrentUserView.as_view(), name='current-user'),

    # Projects
    path('projects/', ProjectListCreateView.as_view(), name='projects'),
    path('projects/<int:project_id>/', ProjectDetailView.as_view(), name='project-detail'),
    path('projects/<int:project_id>/proposals/', ProjectProposalsView.as_view(), name='project-proposals'),

    # Notifications
    path('notifications/', NotificationListView.as_view(), name='notification-list'),
    path('notifications/<int:notification_id>/mark-as-read/', MarkNotificationAsRead.as_view(), name='mark-notification-as-read'),
]
