"""
Authz serializers.
"""
from rest_framework import serializers


class UserProfileSerializer(serializers.Serializer):
    """Read-only projection of the authenticated staff member."""
    id = serializers.UUIDField(read_only=True)
    email = serializers.EmailField(read_only=True)
    is_active = serializers.BooleanField(read_only=True)
    roles = serializers.ListField(child=serializers.CharField(), read_only=True)
