from __future__ import annotations

from rest_framework import serializers

from .models import User


class UserProfileSerializer(serializers.ModelSerializer):
    fullName = serializers.CharField(source='display_name', read_only=True)
    isActive = serializers.BooleanField(source='is_active', read_only=True)

    class Meta:
        model = User
        fields = [
            "id",
            "username",
            "email",
            "first_name",
            "last_name",
            "fullName",
            "phone_number",
            "status",
            "role",
            "isActive",
        ]
        read_only_fields = ["id", "username", "email", "status", "role"]


class UserRefSerializer(serializers.ModelSerializer):
    """Compact user reference embedded in distribution payloads."""

    fullName = serializers.CharField(source='display_name', read_only=True)

    class Meta:
        model = User
        fields = ["id", "fullName", "email", "role"]


class LoginRequestSerializer(serializers.Serializer):
    emailOrUsername = serializers.CharField()
    password = serializers.CharField(trim_whitespace=False)


class LoginResponseSerializer(serializers.Serializer):
    access = serializers.CharField()
    refresh = serializers.CharField()
    user = UserProfileSerializer()
