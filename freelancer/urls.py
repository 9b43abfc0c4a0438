from django.urls import path
from .views import submit_proposal, boost_offer, purchase_boost

urlpatterns = [
    path('projects/<int:project_id>/proposals/', submit_proposal, name='submit-proposal'),
    path('boost/', boost_offer, name='boost-offer'),
    path('boost/purchase/', purchase_boost, name='boost-purchase'),
]
