"""
URL configuration for the Botbridge marketplace API.

Every app mounts its own router under /api/; the escrow webhook lives in the
deals app and is the only unauthenticated POST endpoint.
"""
from django.contrib import admin
from django.urls import path, include
from drf_yasg.views import get_schema_view
from drf_yasg import openapi
from rest_framework import permissions
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView


schema_view = get_schema_view(
   openapi.Info(
      title="Botbridge Marketplace API",
      default_version='v1',
      description="Deals, escrow, disputes, payouts and executor ranking for automation projects",
      contact=openapi.Contact(email="contact@botbridge.local"),
   ),
   public=True,
   permission_classes=[permissions.AllowAny],
)

# Customize admin site
admin.site.site_header = "Botbridge Admin"
admin.site.site_title = "Botbridge Admin Portal"
admin.site.index_title = "Welcome to Botbridge Administration"

# API URL routing
urlpatterns = [
    path('api/', include('core.urls')),
    path('api/client/', include('client.urls')),
    path('api/freelancer/', include('freelancer.urls')),
    path('api/deals/', include('deals.urls')),
    path('api/finance/', include('financeapp.urls')),
    path('api/token/', TokenObtainPairView.as_view(), name='token_obtain_pair'),
    path('api/token/refresh/', TokenRefreshView.as_view(), name='token_refresh'),
    path('admin/', admin.site.urls),
    path('swagger/', schema_view.with_ui('swagger', cache_timeout=0), name='swagger-docs'),
    path('redoc/', schema_view.with_ui('redoc', cache_timeout=0), name='redoc-docs'),
]
