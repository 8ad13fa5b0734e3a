"""
OpenAPI schema customizations for drf-spectacular.

This module provides hooks to customize the generated OpenAPI schema,
including summaries for third-party endpoints and tag groupings for better
documentation organization in ReDoc/Swagger UI.

Tag naming follows the pattern: [App Name] - [Group Name]
Examples:
- Auth (JWT issue/refresh)
- Auth - Profile (profile CRUD)
- Profiles (display identity lookup and search)
- Chat - Chats (chat list and conversation starter)
- Chat - Conversations (metadata)
- Chat - Messages (history and sending)
"""

# Natural language summaries for simplejwt endpoints
# Maps operation_id to (summary, description)
JWT_SUMMARIES = {
    "auth_token_create": (
        "Obtain tokens",
        "Authenticate with email and password to receive an access/refresh JWT pair.",
    ),
    "auth_token_refresh_create": (
        "Refresh access token",
        "Get a new access token using a valid refresh token.",
    ),
}

TAG_DESCRIPTIONS = [
    {
        "name": "Auth",
        "description": "JWT issue and refresh. Accounts are created by an administrator.",
    },
    {
        "name": "Auth - Profile",
        "description": "The current user's public profile (username, avatar, role).",
    },
    {
        "name": "Profiles",
        "description": "Display identity of any user, with fallbacks for missing profiles, and username search.",
    },
    {
        "name": "Chat - Chats",
        "description": "The current user's chat list and starting direct or group chats.",
    },
    {
        "name": "Chat - Conversations",
        "description": "Conversation metadata and the header shown to the caller.",
    },
    {
        "name": "Chat - Messages",
        "description": "Message history and sending. Live updates are delivered over WebSockets.",
    },
]


def group_auth_endpoints(result, generator, request, public):
    """
    Postprocessing hook to group API endpoints by function.

    Auth groups:
        - Auth - Profile: profile retrieve/update endpoints
        - Auth: token operations

    Chat and profile endpoints set their tags via tags= in @extend_schema;
    this hook only fills in what third-party views cannot declare.

    Also adds natural language summaries to simplejwt endpoints.
    """
    paths = result.get("paths", {})

    for path, methods in paths.items():
        for method, operation in methods.items():
            if not isinstance(operation, dict):
                continue

            operation_id = operation.get("operationId", "")

            if operation_id in JWT_SUMMARIES:
                summary, description = JWT_SUMMARIES[operation_id]
                operation["summary"] = summary
                operation["description"] = description

            if operation_id.startswith("auth_profile_"):
                operation["tags"] = ["Auth - Profile"]

            elif operation_id.startswith("auth_"):
                operation["tags"] = ["Auth"]

    result["tags"] = TAG_DESCRIPTIONS

    return result
