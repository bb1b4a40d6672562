import logging

from django.contrib.auth.password_validation import validate_password
from django.db import IntegrityError, transaction
from rest_framework import serializers
from rest_framework_simplejwt.exceptions import AuthenticationFailed
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer

from .models import User
from .validators import normalize_identifier, is_valid_phone, PHONE_ERROR

logger = logging.getLogger(__name__)

ADMIN_EXISTS_ERROR = 'An admin account already exists!'
LAST_ADMIN_ERROR = 'The admin account cannot be demoted!'


class StrictFieldsMixin:
    """Reject payload keys the serializer does not declare as writable"""

    def to_internal_value(self, data):
        if hasattr(data, 'keys'):
            writable = {name for name, field in self.fields.items() if not field.read_only}
            unknown = set(data.keys()) - writable
            if unknown:
                raise serializers.ValidationError({name: ['Unknown field.'] for name in sorted(unknown)})
        return super().to_internal_value(data)


def validate_phone_number(value):
    if not is_valid_phone(value):
        raise serializers.ValidationError(PHONE_ERROR)
    return value


class UserSerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = ['id', 'email', 'name', 'role', 'status', 'ranking', 'phone', 'created_at', 'updated_at']
        read_only_fields = fields


class SignupSerializer(StrictFieldsMixin, serializers.ModelSerializer):
    email = serializers.CharField()
    password = serializers.CharField(write_only=True, validators=[validate_password])
    phone = serializers.CharField(validators=[validate_phone_number])
    as_admin = serializers.BooleanField(required=False, default=False, write_only=True)

    class Meta:
        model = User
        fields = ['email', 'password', 'phone', 'name', 'as_admin']

    def validate_email(self, value):
        email = normalize_identifier(value)
        serializers.EmailField().run_validation(email)
        if User.objects.filter(email__iexact=email).exists():
            raise serializers.ValidationError('Account already exists with this email!')
        return email

    def validate(self, attrs):
        if User.objects.filter(phone=attrs['phone']).exists():
            raise serializers.ValidationError({'phone': 'This phone number has already been registered!'})
        if attrs.get('as_admin') and User.objects.admin_exists():
            raise serializers.ValidationError({'as_admin': ADMIN_EXISTS_ERROR})
        return attrs

    def create(self, validated_data):
        as_admin = validated_data.pop('as_admin', False)
        password = validated_data.pop('password')
        role = User.ROLE_ADMIN if as_admin else User.ROLE_USER
        try:
            with transaction.atomic():
                return User.objects.create_user(password=password, role=role, **validated_data)
        except IntegrityError:
            # Lost a race against a concurrent signup; the unique constraints decide
            logger.warning(f"Signup rejected by database constraint for {validated_data.get('email')}")
            if as_admin and User.objects.admin_exists():
                raise serializers.ValidationError({'as_admin': ADMIN_EXISTS_ERROR})
            raise serializers.ValidationError({'email': 'Account already exists with this email or phone!'})


class UserUpdateSerializer(StrictFieldsMixin, serializers.ModelSerializer):
    """Admin edit of a profile, optionally resetting its password"""
    email = serializers.CharField(required=False)
    phone = serializers.CharField(required=False, validators=[validate_phone_number])
    new_password = serializers.CharField(required=False, write_only=True, allow_blank=True, validators=[validate_password])

    class Meta:
        model = User
        fields = ['name', 'email', 'phone', 'role', 'status', 'ranking', 'new_password']

    def validate_email(self, value):
        email = normalize_identifier(value)
        serializers.EmailField().run_validation(email)
        clash = User.objects.filter(email__iexact=email)
        if self.instance is not None:
            clash = clash.exclude(pk=self.instance.pk)
        if clash.exists():
            raise serializers.ValidationError('Account already exists with this email!')
        return email

    def validate_phone(self, value):
        clash = User.objects.filter(phone=value)
        if self.instance is not None:
            clash = clash.exclude(pk=self.instance.pk)
        if clash.exists():
            raise serializers.ValidationError('This phone number has already been registered!')
        return value

    def validate_role(self, value):
        if value == User.ROLE_ADMIN:
            others = User.objects.filter(role=User.ROLE_ADMIN)
            if self.instance is not None:
                others = others.exclude(pk=self.instance.pk)
            if others.exists():
                raise serializers.ValidationError(ADMIN_EXISTS_ERROR)
        elif self.instance is not None and self.instance.role == User.ROLE_ADMIN:
            raise serializers.ValidationError(LAST_ADMIN_ERROR)
        return value

    def update(self, instance, validated_data):
        new_password = validated_data.pop('new_password', None)
        for attr, value in validated_data.items():
            setattr(instance, attr, value)
        if new_password:
            instance.set_password(new_password)
        try:
            with transaction.atomic():
                instance.save()
        except IntegrityError:
            raise serializers.ValidationError({'role': ADMIN_EXISTS_ERROR})
        return instance


class UserStatusSerializer(StrictFieldsMixin, serializers.Serializer):
    status = serializers.ChoiceField(choices=User.STATUS_CHOICES)


class ChangePasswordSerializer(StrictFieldsMixin, serializers.Serializer):
    current_password = serializers.CharField(write_only=True)
    new_password = serializers.CharField(write_only=True, validators=[validate_password])

    def validate_current_password(self, value):
        user = self.context['request'].user
        if not user.check_password(value):
            raise serializers.ValidationError('Current password is incorrect')
        return value


class LoginSerializer(TokenObtainPairSerializer):
    """
    Email/password login that also checks the requested portal.

    ``as_admin`` must match the profile's role: admins sign in through the
    admin portal, users through the user portal.
    """
    as_admin = serializers.BooleanField(required=False, default=False)

    def validate(self, attrs):
        attrs[self.username_field] = normalize_identifier(attrs.get(self.username_field, ''))
        as_admin = attrs.pop('as_admin', False)
        data = super().validate(attrs)

        if as_admin and self.user.role != User.ROLE_ADMIN:
            raise AuthenticationFailed('Invalid admin credentials', 'wrong_portal')
        if not as_admin and self.user.role != User.ROLE_USER:
            raise AuthenticationFailed('Please use the admin login', 'wrong_portal')

        data['user'] = UserSerializer(self.user).data
        return data

    @classmethod
    def get_token(cls, user):
        token = super().get_token(user)
        token['email'] = user.email
        token['role'] = user.role
        return token
