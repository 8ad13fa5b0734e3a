"""
Authentication and profile views.

This module provides API views for:
- Profile management (current user's profile, including initial completion)
- Display identity lookup by user id (always answers, with fallbacks)
- Username prefix search used by the new-chat dialog

Related files:
    - serializers.py: Request/response serialization
    - services.py: ProfileService, ProfileLookupService
    - urls.py: URL routing

Note:
    JWTs are issued by djangorestframework-simplejwt:
    - Obtain: /api/v1/auth/token/
    - Refresh: /api/v1/auth/token/refresh/

    ProfileView handles both initial profile completion and subsequent updates.
    If profile.username is empty, username is required in the request.
"""

from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from authentication.serializers import (
    DisplayIdentitySerializer,
    ProfileSearchResultSerializer,
    ProfileSerializer,
    ProfileUpdateSerializer,
)
from authentication.services import (
    LookupContext,
    ProfileLookupService,
    ProfileService,
)


# =============================================================================
# Profile Management Views
# =============================================================================


class ProfileView(APIView):
    """
    API view for the current user's profile.

    GET: Retrieve current user's profile
    PUT/PATCH: Update current user's profile (including initial completion)

    URL: /api/v1/auth/profile/

    Response includes `is_complete` field indicating whether username is set.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Get current user's profile",
        description="Retrieve profile data including completion status.",
        tags=["Auth - Profile"],
        responses={200: ProfileSerializer},
    )
    def get(self, request):
        profile = ProfileService.get_or_create_profile(request.user)
        serializer = ProfileSerializer(profile, context={"request": request})
        return Response(serializer.data)

    @extend_schema(
        summary="Update profile",
        description="Full profile update. Username is required if not previously set.",
        tags=["Auth - Profile"],
        request=ProfileUpdateSerializer,
        responses={200: ProfileSerializer},
    )
    def put(self, request):
        """
        Update the current user's profile (full update).

        Request body:
            {
                "username": "janedoe",          // Required if not set, optional otherwise
                "avatar_url": "https://...",    // Optional
                "role": "developer",            // Optional
                "bio": "...",                   // Optional
                "skills": ["android"],          // Optional
                "links": ["https://..."]        // Optional
            }
        """
        return self._update_profile(request, partial=False)

    @extend_schema(
        summary="Partially update profile",
        description="Partial profile update. Username is required if not previously set.",
        tags=["Auth - Profile"],
        request=ProfileUpdateSerializer,
        responses={200: ProfileSerializer},
    )
    def patch(self, request):
        return self._update_profile(request, partial=True)

    def _update_profile(self, request, partial=False):
        profile = ProfileService.get_or_create_profile(request.user)
        serializer = ProfileUpdateSerializer(
            profile,
            data=request.data,
            partial=partial,
            context={"request": request, "user": request.user},
        )
        serializer.is_valid(raise_exception=True)
        updated_profile = serializer.save()

        return Response(
            ProfileSerializer(updated_profile, context={"request": request}).data
        )


# =============================================================================
# Profile Lookup Views
# =============================================================================


class ProfileLookupView(APIView):
    """
    Resolve a user id to a display identity.

    GET: /api/v1/profiles/{user_id}/?context=chat|developer

    Always answers 200: an unknown id or a profile without a username comes
    back with a synthesized name and ``found: false``.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Look up a user's display identity",
        tags=["Profiles"],
        parameters=[
            OpenApiParameter(
                name="context",
                description="Fallback wording: 'chat' (default) or 'developer'",
                required=False,
                type=str,
                enum=[LookupContext.CHAT, LookupContext.DEVELOPER],
            ),
        ],
        responses={200: DisplayIdentitySerializer},
    )
    def get(self, request, user_id):
        context = request.query_params.get("context", LookupContext.CHAT)
        if context not in (LookupContext.CHAT, LookupContext.DEVELOPER):
            context = LookupContext.CHAT

        identity = ProfileLookupService.resolve(user_id, context=context)
        return Response(DisplayIdentitySerializer(identity).data)


class ProfileSearchView(APIView):
    """
    Search users by username prefix.

    GET: /api/v1/profiles/search/?q=<prefix>

    Queries shorter than two characters return an empty list. The caller is
    never included in the results.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Search users by username",
        tags=["Profiles"],
        parameters=[
            OpenApiParameter(
                name="q",
                description="Username prefix (minimum 2 characters)",
                required=True,
                type=str,
            ),
        ],
        responses={200: ProfileSearchResultSerializer(many=True)},
    )
    def get(self, request):
        profiles = ProfileService.search_profiles(
            request.query_params.get("q", ""),
            exclude_user_id=request.user.id,
        )
        return Response(ProfileSearchResultSerializer(profiles, many=True).data)
