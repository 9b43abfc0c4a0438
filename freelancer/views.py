from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework import status

from core.serializers import ProposalCreateSerializer, ProposalSerializer
from core.services.project_service import ProjectService
from financeapp.services.boost_service import ProfileBoostService


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def submit_proposal(request, project_id):
    """Submit a free proposal on a project"""
    serializer = ProposalCreateSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    proposal = ProjectService().submit_proposal(
        request.user.id,
        project_id,
        serializer.validated_data['content'],
        serializer.validated_data['price'],
    )
    return Response(ProposalSerializer(proposal).data, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def boost_offer(request):
    offer = ProfileBoostService().get_offer()
    return Response({
        'price': str(offer['price']),
        'days': offer['days'],
        'currency': offer['currency'],
        'boosted_until': request.user.boosted_until.isoformat() if request.user.boosted_until else None,
        'is_boosted': request.user.is_boosted,
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def purchase_boost(request):
    """Charge the boost price from the wallet and extend the boost window"""
    result = ProfileBoostService().purchase(request.user.id)
    return Response({
        'message': 'Profile boost activated',
        'charged_amount': str(result['charged_amount']),
        'currency': result['currency'],
        'boosted_until': result['boosted_until'].isoformat(),
        'boost_days': result['boost_days'],
    })
