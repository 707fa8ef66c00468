"""
Authz views.
"""
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from .serializers import UserProfileSerializer


class CurrentUserView(APIView):
    """
    GET /api/v1/auth/me/ - Profile of the authenticated user.

    The bearer token is validated by JWTAuthentication; this endpoint only
    reports who the token resolved to and which clinic roles they hold.

    Response format:
    {
        "id": "uuid",
        "email": "user@example.com",
        "is_active": true,
        "roles": ["admin", "practitioner"]
    }
    """
    permission_classes = [IsAuthenticated]

    def get(self, request):
        user = request.user
        profile_data = {
            'id': user.id,
            'email': user.email,
            'is_active': user.is_active,
            'roles': sorted(user.role_names),
        }
        serializer = UserProfileSerializer(profile_data)
        return Response(serializer.data, status=status.HTTP_200_OK)
