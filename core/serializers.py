from rest_framework import serializers
from .models import User, Project, Proposal, Notification


class UserSummarySerializer(serializers.ModelSerializer):
    display_name = serializers.CharField(read_only=True)
    is_boosted = serializers.BooleanField(read_only=True)

    class Meta:
        model = User
        fields = ['id', 'username', 'display_name', 'avatar', 'role', 'boosted_until', 'is_boosted']


class ProfileUpdateSerializer(serializers.ModelSerializer):
    """Only the self-editable profile fields; role, plan and boost stay server-owned"""

    class Meta:
        model = User
        fields = ['first_name', 'last_name', 'bio']
        extra_kwargs = {'bio': {'max_length': 2000}}


class ProjectSerializer(serializers.ModelSerializer):
    client = UserSummarySerializer(read_only=True)

    class Meta:
        model = Project
        fields = [
            'id', 'client', 'title', 'description', 'budget', 'skills',
            'max_proposals', 'automation_type', 'created_at', 'updated_at',
        ]
        read_only_fields = fields


class ProjectCreateSerializer(serializers.Serializer):
    title = serializers.CharField(max_length=255)
    description = serializers.CharField()
    budget = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0, required=False, default=0)
    skills = serializers.ListField(child=serializers.CharField(max_length=50), required=False, default=list)
    max_proposals = serializers.IntegerField(min_value=1, required=False, allow_null=True)
    automation_type = serializers.ChoiceField(choices=Project.AUTOMATION_TYPE_CHOICES, required=False, allow_blank=True)
    bot_stage = serializers.CharField(max_length=100, required=False, allow_blank=True)
    main_goal = serializers.CharField(max_length=500, required=False, allow_blank=True)
    integrations = serializers.ListField(child=serializers.CharField(max_length=50), required=False, default=list)
    deadline_days = serializers.IntegerField(min_value=1, required=False, allow_null=True)
    support_needed = serializers.BooleanField(required=False, allow_null=True, default=None)


class ProposalSerializer(serializers.ModelSerializer):
    freelancer = UserSummarySerializer(read_only=True)

    class Meta:
        model = Proposal
        fields = ['id', 'project', 'freelancer', 'content', 'price', 'created_at']
        read_only_fields = fields


class ProposalCreateSerializer(serializers.Serializer):
    content = serializers.CharField()
    price = serializers.DecimalField(max_digits=12, decimal_places=2)


class NotificationSerializer(serializers.ModelSerializer):
    class Meta:
        model = Notification
        fields = ['id', 'type', 'title', 'notification_text', 'is_read', 'created_at', 'priority', 'related_model_id', 'metadata']
