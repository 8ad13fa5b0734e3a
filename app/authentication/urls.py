"""
URL configuration for authentication app.

URL structure:
    /api/v1/auth/token/               - Obtain JWT pair (email + password)
    /api/v1/auth/token/refresh/       - Refresh access token
    /api/v1/auth/profile/             - Profile management (GET/PUT/PATCH)
                                        Username required if not set.

    /api/v1/profiles/search/?q=       - Username prefix search
    /api/v1/profiles/<user_id>/       - Display identity lookup

Note:
    ``profile_urlpatterns`` is mounted separately under /api/v1/profiles/
    in config/urls.py.
"""

from django.urls import path
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

from authentication.views import ProfileLookupView, ProfileSearchView, ProfileView

app_name = "authentication"

urlpatterns = [
    # JWT
    path("token/", TokenObtainPairView.as_view(), name="token-obtain"),
    path("token/refresh/", TokenRefreshView.as_view(), name="token-refresh"),
    # Profile management (handles both completion and updates)
    path("profile/", ProfileView.as_view(), name="profile"),
]

profile_urlpatterns = [
    path("search/", ProfileSearchView.as_view(), name="profile-search"),
    path("<str:user_id>/", ProfileLookupView.as_view(), name="profile-lookup"),
]
