from rest_framework import serializers

from .models import Deal, Dispute


class DealSerializer(serializers.ModelSerializer):
    sender_name = serializers.CharField(source='sender.display_name', read_only=True)
    receiver_name = serializers.CharField(source='receiver.display_name', read_only=True)
    project_title = serializers.CharField(source='project.title', read_only=True)

    class Meta:
        model = Deal
        fields = [
            'id', 'project', 'project_title', 'proposal', 'sender', 'sender_name',
            'receiver', 'receiver_name', 'amount', 'currency', 'status',
            'escrow_payment_id', 'created_at', 'updated_at',
        ]
        read_only_fields = fields


class DealCreateSerializer(serializers.Serializer):
    proposal_id = serializers.IntegerField()
    amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    currency = serializers.CharField(max_length=3, required=False, allow_blank=True)


class DisputeSerializer(serializers.ModelSerializer):
    deal_status = serializers.CharField(source='deal.status', read_only=True)

    class Meta:
        model = Dispute
        fields = [
            'id', 'deal', 'deal_status', 'filed_by', 'title', 'description', 'status',
            'resolution', 'awarded_amount', 'resolved_by', 'resolved_at', 'created_at',
        ]
        read_only_fields = fields


class DisputeCreateSerializer(serializers.Serializer):
    title = serializers.CharField(max_length=255)
    description = serializers.CharField()


class DisputeResolveSerializer(serializers.Serializer):
    resolution = serializers.CharField(max_length=20)
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, allow_null=True)
