import logging

from django.contrib.auth import get_user_model
from django.core.exceptions import ObjectDoesNotExist
from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated, AllowAny
from rest_framework.response import Response
from rest_framework_simplejwt.exceptions import InvalidToken, TokenError
from rest_framework_simplejwt.serializers import TokenRefreshSerializer
from rest_framework_simplejwt.tokens import RefreshToken
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

from .permissions import HasPublicApiKey, IsAdminRole
from .serializers import (
    UserSerializer, SignupSerializer, UserUpdateSerializer, UserStatusSerializer,
    ChangePasswordSerializer, LoginSerializer,
)

User = get_user_model()

logger = logging.getLogger(__name__)


class LoginView(TokenObtainPairView):
    permission_classes = (HasPublicApiKey,)
    serializer_class = LoginSerializer


class CustomTokenRefreshSerializer(TokenRefreshSerializer):
    """Token refresh that answers 401 instead of 500 for deleted users"""
    def validate(self, attrs):
        try:
            return super().validate(attrs)
        except (InvalidToken, TokenError):
            raise InvalidToken('Token is invalid or expired.')
        except (ObjectDoesNotExist, User.DoesNotExist):
            raise InvalidToken('Token is invalid. User no longer exists.')


class CustomTokenRefreshView(TokenRefreshView):
    permission_classes = (HasPublicApiKey,)
    serializer_class = CustomTokenRefreshSerializer


def issue_tokens(user):
    refresh = LoginSerializer.get_token(user)
    return {
        'access': str(refresh.access_token),
        'refresh': str(refresh),
    }


@api_view(['POST'])
@permission_classes([HasPublicApiKey, AllowAny])
def signup(request):
    """Create an account and sign it in"""
    serializer = SignupSerializer(data=request.data)
    if serializer.is_valid():
        user = serializer.save()
        logger.info(f"Created {user.role} account {user.email}")
        return Response({
            'user': UserSerializer(user).data,
            **issue_tokens(user),
        }, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['POST'])
@permission_classes([HasPublicApiKey, AllowAny])
def logout(request):
    """
    Revoke a refresh token.

    Always answers 204 so that signing out twice, or with an expired token,
    is not an error.
    """
    refresh = request.data.get('refresh')
    if refresh:
        try:
            RefreshToken(refresh).blacklist()
        except TokenError as e:
            logger.info(f"Logout with unusable refresh token: {e}")
    return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['GET'])
@permission_classes([HasPublicApiKey, AllowAny])
def admin_exists(request):
    return Response({'admin_exists': User.objects.admin_exists()})


@api_view(['GET'])
@permission_classes([HasPublicApiKey, IsAuthenticated])
def user_me(request):
    """Get the signed-in profile"""
    return Response(UserSerializer(request.user).data)


@api_view(['POST'])
@permission_classes([HasPublicApiKey, IsAuthenticated])
def change_password(request):
    serializer = ChangePasswordSerializer(data=request.data, context={'request': request})
    if serializer.is_valid():
        request.user.set_password(serializer.validated_data['new_password'])
        request.user.save()
        logger.info(f"Password changed for {request.user.email}")
        return Response({'message': 'Password updated successfully'})
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


# User administration (admin only)
@api_view(['GET'])
@permission_classes([HasPublicApiKey, IsAdminRole])
def user_list(request):
    """List all profiles, newest first"""
    users = User.objects.all().order_by('-created_at')
    serializer = UserSerializer(users, many=True)
    return Response(serializer.data)


@api_view(['GET', 'PATCH', 'DELETE'])
@permission_classes([HasPublicApiKey, IsAdminRole])
def user_detail(request, pk):
    """Retrieve, update or delete a profile"""
    user = get_object_or_404(User, pk=pk)

    if request.method == 'GET':
        return Response(UserSerializer(user).data)
    elif request.method == 'PATCH':
        serializer = UserUpdateSerializer(user, data=request.data, partial=True)
        if serializer.is_valid():
            serializer.save()
            logger.info(f"Admin {request.user.email} updated profile {user.email}")
            return Response(UserSerializer(user).data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        if user.pk == request.user.pk:
            return Response({'error': 'You cannot delete your own account'}, status=status.HTTP_400_BAD_REQUEST)
        logger.info(f"Admin {request.user.email} deleted profile {user.email}")
        user.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['PATCH'])
@permission_classes([HasPublicApiKey, IsAdminRole])
def user_status(request, pk):
    user = get_object_or_404(User, pk=pk)
    serializer = UserStatusSerializer(data=request.data)
    if serializer.is_valid():
        user.status = serializer.validated_data['status']
        user.save()
        return Response(UserSerializer(user).data)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
