from django.urls import path

from . import views

urlpatterns = [
    path('', views.deals, name='deals'),
    path('<int:deal_id>/', views.deal_detail, name='deal-detail'),
    path('<int:deal_id>/confirm/', views.confirm_deal, name='deal-confirm'),
    path('<int:deal_id>/disputes/', views.open_dispute, name='deal-open-dispute'),
    path('disputes/<int:dispute_id>/resolve/', views.resolve_dispute, name='dispute-resolve'),
    path('webhook/razorpay/', views.escrow_webhook, name='escrow-webhook'),
]
