# Recommend executors for a client's project

from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from rest_framework import status

from .serializers import InviteCreateSerializer, ProjectInviteSerializer
from .services import ExecutorService


class TopExecutorsView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, project_id):
        result = ExecutorService().top_executors(
            request.user.id,
            project_id,
            limit=request.query_params.get('limit'),
        )
        return Response({
            "project_id": result.project_id,
            "total_candidates": result.total_candidates,
            "invite_quota": result.invite_quota.as_dict(),
            "recommended": [executor.as_dict() for executor in result.recommended],
        })


class ProjectInvitesView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, project_id):
        invites, quota = ExecutorService().list_invites(request.user.id, project_id)
        return Response({
            "project_id": int(project_id),
            "invite_quota": quota.as_dict(),
            "invites": ProjectInviteSerializer(invites, many=True).data,
        })

    def post(self, request, project_id):
        serializer = InviteCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        invite, quota = ExecutorService().invite_freelancer(
            request.user.id,
            project_id,
            serializer.validated_data['freelancer_id'],
            serializer.validated_data.get('message', ''),
        )
        return Response({
            "invite": ProjectInviteSerializer(invite).data,
            "invite_quota": quota.as_dict(),
        }, status=status.HTTP_201_CREATED)
