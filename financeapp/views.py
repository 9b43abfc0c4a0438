from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework import status

from core.exceptions import InvalidInputError
from .models import Transaction
from .repositories import PayoutRequestRepository
from .services.ledger import WalletLedger
from .services.payout_service import PayoutService


def serialize_transaction(tx):
    return {
        'id': tx.id,
        'reference_id': tx.reference_id,
        'amount': str(tx.amount),
        'signed_amount': str(tx.signed_amount),
        'type': tx.type,
        'description': tx.description,
        'deal_id': tx.deal_id,
        'payout_request_id': tx.payout_request_id,
        'timestamp': tx.created_at.isoformat(),
    }


def serialize_payout(payout):
    return {
        'id': payout.id,
        'amount': str(payout.amount),
        'fee': str(payout.fee),
        'net_amount': str(payout.net_amount),
        'status': payout.status,
        'created_at': payout.created_at.isoformat(),
        'processed_at': payout.processed_at.isoformat() if payout.processed_at else None,
    }


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def get_wallet_balance(request):
    """Get user's wallet balance and recent transactions"""
    wallet = WalletLedger.get_wallet(request.user)
    recent_transactions = wallet.get_transaction_history(limit=5)

    return Response({
        'balance': str(wallet.balance),
        'pending': str(wallet.pending),
        'total_balance': str(wallet.total_balance),
        'currency': wallet.currency,
        'recent_transactions': [serialize_transaction(tx) for tx in recent_transactions],
        'last_updated': wallet.last_updated.isoformat()
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def get_transaction_history(request):
    """Get wallet transaction history, optionally filtered by type"""
    wallet = WalletLedger.get_wallet(request.user)

    transaction_type = request.GET.get('type')
    try:
        limit = min(max(int(request.GET.get('limit', 20)), 1), 100)
        offset = max(int(request.GET.get('offset', 0)), 0)
    except ValueError:
        raise InvalidInputError('limit and offset must be integers')

    transactions = wallet.get_transaction_history()
    if transaction_type:
        if transaction_type not in dict(Transaction.TYPE_CHOICES):
            raise InvalidInputError(f"Unknown transaction type: {transaction_type}")
        transactions = transactions.filter(type=transaction_type)

    total_count = transactions.count()
    transactions = transactions[offset:offset + limit]

    return Response({
        'transactions': [serialize_transaction(tx) for tx in transactions],
        'total_count': total_count,
        'has_more': (offset + limit) < total_count
    })


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def payouts(request):
    """List own payout requests, or request a withdrawal (freelancers only)"""
    if request.method == 'GET':
        history = PayoutRequestRepository.for_user(request.user)
        return Response({'payouts': [serialize_payout(payout) for payout in history]})

    amount = request.data.get('amount')
    if amount in (None, ''):
        raise InvalidInputError('Amount is required')

    payout = PayoutService().create_payout_request(request.user.id, amount)
    wallet = WalletLedger.get_wallet(request.user)
    return Response({
        'message': 'Payout request created',
        'payout': serialize_payout(payout),
        'new_balance': str(wallet.balance),
    }, status=status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def process_payout(request, payout_id):
    payout = PayoutService().process_payout(payout_id, request.user.id)
    return Response({'message': 'Payout processed', 'payout': serialize_payout(payout)})
