from django.contrib import admin
from .models import Wallet, Transaction, PayoutRequest


class WalletAdmin(admin.ModelAdmin):
    list_display = ['user', 'balance', 'pending', 'currency', 'last_updated']
    search_fields = ['user__username', 'user__email']
    # Balances change only through the ledger
    readonly_fields = ['balance', 'pending']

admin.site.register(Wallet, WalletAdmin)


class TransactionAdmin(admin.ModelAdmin):
    list_display = ['reference_id', 'type', 'amount', 'wallet', 'deal', 'payout_request', 'created_at']
    list_filter = ['type']
    search_fields = ['reference_id', 'description']

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

admin.site.register(Transaction, TransactionAdmin)


class PayoutRequestAdmin(admin.ModelAdmin):
    list_display = ['id', 'user', 'amount', 'fee', 'status', 'created_at', 'processed_at']
    list_filter = ['status']
    readonly_fields = ['amount', 'fee', 'status', 'processed_at']

admin.site.register(PayoutRequest, PayoutRequestAdmin)
