from django.contrib import admin
from .models import Deal, Dispute


class DisputeInline(admin.TabularInline):
    model = Dispute
    extra = 0
    fields = ['filed_by', 'title', 'status', 'resolution', 'awarded_amount', 'resolved_by', 'resolved_at']
    readonly_fields = fields


class DealAdmin(admin.ModelAdmin):
    list_display = ['id', 'project', 'sender', 'receiver', 'amount', 'currency', 'status', 'created_at']
    list_filter = ['status', 'currency']
    search_fields = ['sender__username', 'receiver__username', 'project__title', 'escrow_payment_id']
    # Status moves only through the deal and dispute services
    readonly_fields = ['status', 'amount', 'escrow_payment_id']
    inlines = [DisputeInline]

admin.site.register(Deal, DealAdmin)


class DisputeAdmin(admin.ModelAdmin):
    list_display = ['id', 'deal', 'filed_by', 'status', 'resolution', 'created_at']
    list_filter = ['status', 'resolution']
    search_fields = ['title', 'filed_by__username']

admin.site.register(Dispute, DisputeAdmin)
