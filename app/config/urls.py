"""
URL configuration for the Django application.

The `urlpatterns` list routes URLs to views. This is the root URL configuration
that includes all app-specific routes.

URL Structure:
    /                              - ReDoc API documentation
    /admin/                        - Django admin interface
    /health/                       - Health check endpoint (for load balancers, Docker)
    /schema/                       - OpenAPI schema (YAML)
    /api/v1/auth/                  - Authentication endpoints
        token/                     - Obtain JWT pair
        token/refresh/             - Refresh access token
        profile/                   - Current user's profile (GET/PUT/PATCH)
    /api/v1/profiles/              - Profile Lookup
        search/?q=                 - Username prefix search
        {user_id}/                 - Display identity (always 200)
    /api/v1/chat/                  - Chat endpoints
        chats/                     - Current user's chat list
        chats/start/               - Start (or reopen) a direct chat
        chats/groups/              - Create a group chat
        conversations/{id}/        - Conversation metadata and header
        conversations/{id}/messages/ - Message history/send

WebSocket routes live in chat/routing.py (see config/asgi.py).

For more information, see:
https://docs.djangoproject.com/en/5.2/topics/http/urls/
"""

from django.contrib import admin
from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView, SpectacularRedocView

from authentication.urls import profile_urlpatterns
from core.views import health_check

# =============================================================================
# API v1 Routes
# =============================================================================
# All routes here are prefixed with /api/v1/ automatically
api_v1_patterns = [
    # Authentication (JWT, profile)
    path("auth/", include("authentication.urls")),
    # Profile Lookup
    path("profiles/", include((profile_urlpatterns, "profiles"))),
    # Chat
    path("chat/", include("chat.urls")),
]

urlpatterns = [
    # Documentation
    path("", SpectacularRedocView.as_view(url_name="schema"), name="redoc"),
    path("schema/", SpectacularAPIView.as_view(), name="schema"),
    # Admin
    path("admin/", admin.site.urls),
    # Health check (Docker, Kubernetes, load balancers)
    path("health/", health_check, name="health_check"),
    # API v1
    path("api/v1/", include(api_v1_patterns)),
]

# =============================================================================
# Admin Site Customization
# =============================================================================
admin.site.site_header = "Marketplace Chat Admin"
admin.site.site_title = "Admin Portal"
admin.site.index_title = "Welcome to the Admin Portal"
