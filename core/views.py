import logging

from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from rest_framework import status

from .exceptions import NotFoundError
from .models import Notification, Project
from .repositories import ProjectRepository
from .serializers import (
    NotificationSerializer, ProfileUpdateSerializer, ProjectCreateSerializer, ProjectSerializer,
    ProposalSerializer,
)
from .services.project_service import ProjectService

logger = logging.getLogger(__name__)


class CurrentUserView(APIView):
    """Identity, plan, boost state and wallet of the signed-in user"""
    permission_classes = [IsAuthenticated]

    def get(self, request):
        return Response(self.serialize_profile(request.user))

    def put(self, request):
        serializer = ProfileUpdateSerializer(request.user, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        user = serializer.save()
        logger.info(f"User {user.id} updated profile fields {sorted(serializer.validated_data)}")
        return Response(self.serialize_profile(user))

    @staticmethod
    def serialize_profile(user):
        wallet = getattr(user, 'wallet', None)
        return {
            'id': user.id,
            'username': user.username,
            'email': user.email,
            'first_name': user.first_name,
            'last_name': user.last_name,
            'display_name': user.display_name,
            'avatar': user.avatar,
            'bio': user.bio,
            'role': user.role,
            'plan': user.plan,
            'boosted_until': user.boosted_until.isoformat() if user.boosted_until else None,
            'is_boosted': user.is_boosted,
            'wallet': {
                'balance': str(wallet.balance),
                'pending': str(wallet.pending),
                'currency': wallet.currency,
            } if wallet else None,
        }


class ProjectListCreateView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        # Clients see their own projects, everyone else the latest open ones
        if request.user.role == 'client':
            projects = Project.objects.filter(client=request.user)
        else:
            projects = Project.objects.all()
        projects = projects.select_related('client')[:50]
        return Response(ProjectSerializer(projects, many=True).data)

    def post(self, request):
        serializer = ProjectCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        project = ProjectService().create_project(request.user.id, serializer.validated_data)
        return Response(ProjectSerializer(project).data, status=status.HTTP_201_CREATED)


class ProjectDetailView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, project_id):
        project = ProjectRepository().get(project_id)
        return Response(ProjectSerializer(project).data)


class ProjectProposalsView(APIView):
    """Proposals on a project, visible to its owner only"""
    permission_classes = [IsAuthenticated]

    def get(self, request, project_id):
        proposals = ProjectService().list_proposals(request.user.id, project_id)
        return Response(ProposalSerializer(proposals, many=True).data)


class NotificationListView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        notifications = Notification.objects.filter(user=request.user).order_by('-created_at')
        if request.query_params.get('unread') in ('1', 'true'):
            notifications = notifications.filter(is_read=False)
        serializer = NotificationSerializer(notifications, many=True)
        return Response(serializer.data)


# Mark a specific notification as read
class MarkNotificationAsRead(APIView):
    permission_classes = [IsAuthenticated]

    def patch(self, request, notification_id):
        try:
            notification = Notification.objects.get(id=notification_id, user=request.user)
        except Notification.DoesNotExist:
            raise NotFoundError('Notification not found')
        notification.mark_as_read()
        return Response(status=status.HTTP_204_NO_CONTENT)
