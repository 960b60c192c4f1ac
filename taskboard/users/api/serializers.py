from django.contrib.auth import get_user_model
from rest_framework import serializers

User = get_user_model()


class CurrentUserSerializer(serializers.ModelSerializer):
    """The authenticated user context the board client joins its channel with."""

    class Meta:
        model = User
        fields = ["id", "username", "email"]
        read_only_fields = fields
