from django.urls import path
from . import views

urlpatterns = [

    path('wallet/balance/', views.get_wallet_balance, name='get_wallet_balance'),

    path('wallet/transactions/', views.get_transaction_history, name='wallet_transactions'),

    path('payouts/', views.payouts, name='payouts'),

    path('payouts/<int:payout_id>/process/', views.process_payout, name='process_payout'),
]
