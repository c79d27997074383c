from __future__ import annotations

import logging

from django.contrib.auth import authenticate, get_user_model
from drf_spectacular.utils import extend_schema
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView
from rest_framework_simplejwt.tokens import RefreshToken

from .serializers import LoginRequestSerializer, LoginResponseSerializer, UserProfileSerializer

logger = logging.getLogger(__name__)

UserModel = get_user_model()


def issue_tokens(user) -> dict:
    """JWT pair with the role claim the distribution endpoints are gated on."""
    refresh = RefreshToken.for_user(user)
    access_token = refresh.access_token
    role_val = getattr(user, 'role', None)
    if hasattr(role_val, 'value'):
        role_val = role_val.value
    if role_val:
        access_token['role'] = str(role_val)
    if getattr(user, 'email', None):
        access_token['email'] = user.email
    return {'access': str(access_token), 'refresh': str(refresh)}


class LoginView(APIView):
    authentication_classes: list = []
    permission_classes = [AllowAny]

    @extend_schema(tags=["Auth"], request=LoginRequestSerializer, responses={200: LoginResponseSerializer})
    def post(self, request):
        data = request.data or {}
        identifier = data.get('emailOrUsername') or data.get('username') or data.get('email')
        password = data.get('password')
        if not identifier or not password:
            return Response({'message': 'Missing credentials'}, status=status.HTTP_400_BAD_REQUEST)

        user = authenticate(request, username=identifier, password=password)
        if user is None and '@' in str(identifier):
            candidate = UserModel.objects.filter(email__iexact=identifier).first()
            if candidate:
                user = authenticate(request, username=candidate.username, password=password)

        if user is None:
            logger.info('Login rejected', extra={'identifier': str(identifier)[:120]})
            return Response({'message': 'Invalid credentials'}, status=status.HTTP_401_UNAUTHORIZED)

        if user.status != UserModel.Status.ACTIVE:
            return Response({'message': 'Account is not active'}, status=status.HTTP_403_FORBIDDEN)

        body = issue_tokens(user)
        body['user'] = UserProfileSerializer(user).data
        return Response(body)


@extend_schema(tags=["Users"], responses={200: UserProfileSerializer})
@api_view(["GET", "PUT"])
@permission_classes([IsAuthenticated])
def profile(request):
    user = request.user
    if request.method == "PUT":
        allowed_fields = {k: v for k, v in request.data.items() if k in ["first_name", "last_name", "phone_number"]}
        serializer = UserProfileSerializer(user, data=allowed_fields, partial=True)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        serializer.save()
    return Response(UserProfileSerializer(user).data)
