import logging

from django.conf import settings
from django.views.decorators.csrf import csrf_exempt
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes, authentication_classes
from rest_framework.permissions import IsAuthenticated, AllowAny
from rest_framework.response import Response

from .serializers import (
    DealSerializer, DealCreateSerializer, DisputeSerializer,
    DisputeCreateSerializer, DisputeResolveSerializer,
)
from .services.deal_service import DealService
from .services.dispute_service import DisputeService

logger = logging.getLogger(__name__)


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def deals(request):
    """List the user's deals, or create a deal from a proposal (client only)"""
    service = DealService()

    if request.method == 'GET':
        user_deals = service.list_deals(request.user.id)
        return Response(DealSerializer(user_deals, many=True).data)

    serializer = DealCreateSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    deal, intent = service.create_deal(
        request.user.id,
        serializer.validated_data['proposal_id'],
        serializer.validated_data['amount'],
        serializer.validated_data.get('currency'),
    )
    return Response({
        'deal': DealSerializer(deal).data,
        'client_secret': intent.client_secret,
        'payment_id': intent.id,
        'gateway_key': getattr(settings, 'RAZORPAY_KEY_ID', None),
    }, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def deal_detail(request, deal_id):
    deal = DealService().get_deal(deal_id, request.user.id)
    return Response(DealSerializer(deal).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def confirm_deal(request, deal_id):
    """Client confirms delivery; escrow is released to the freelancer minus commission"""
    result = DealService().confirm_deal(deal_id, request.user.id)
    return Response({
        'message': 'Deal confirmed and funds released',
        'deal': DealSerializer(result['deal']).data,
        'platform_fee': result['platform_fee'],
        'freelancer_amount': result['freelancer_amount'],
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def open_dispute(request, deal_id):
    serializer = DisputeCreateSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    dispute = DisputeService().create_dispute(
        deal_id,
        request.user.id,
        serializer.validated_data['title'],
        serializer.validated_data['description'],
    )
    return Response(DisputeSerializer(dispute).data, status=status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def resolve_dispute(request, dispute_id):
    serializer = DisputeResolveSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    result = DisputeService().resolve_dispute(
        dispute_id,
        request.user.id,
        serializer.validated_data['resolution'],
        serializer.validated_data.get('amount'),
    )
    return Response({
        'dispute': DisputeSerializer(result['dispute']).data,
        'deal': DealSerializer(result['deal']).data,
        'platform_fee': result['platform_fee'],
        'freelancer_amount': result['freelancer_amount'],
    })


@csrf_exempt
@api_view(['POST'])
@authentication_classes([])
@permission_classes([AllowAny])
def escrow_webhook(request):
    """
    Razorpay webhook. The signature covers the raw body, so it is read
    before DRF parses anything.
    """
    raw_body = request.body
    service = DealService(webhook_secret=getattr(settings, 'RAZORPAY_WEBHOOK_SECRET', None))
    result = service.handle_webhook(
        raw_body,
        request.headers.get('X-Razorpay-Signature'),
        event_id=request.headers.get('X-Razorpay-Event-Id'),
    )
    return Response({'received': True, **result})
