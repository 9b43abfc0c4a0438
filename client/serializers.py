from rest_framework import serializers
from core.models import ProjectInvite, User


class InvitedFreelancerSerializer(serializers.ModelSerializer):
    display_name = serializers.CharField(read_only=True)
    is_boosted = serializers.BooleanField(read_only=True)

    class Meta:
        model = User
        fields = ['id', 'username', 'display_name', 'avatar', 'boosted_until', 'is_boosted']


class ProjectInviteSerializer(serializers.ModelSerializer):
    freelancer = InvitedFreelancerSerializer(read_only=True)

    class Meta:
        model = ProjectInvite
        fields = ['id', 'project', 'freelancer', 'message', 'created_at']


class InviteCreateSerializer(serializers.Serializer):
    freelancer_id = serializers.IntegerField()
    message = serializers.CharField(max_length=500, required=False, allow_blank=True)
