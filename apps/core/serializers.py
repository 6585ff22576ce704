from django.contrib.auth import get_user_model
from rest_framework import serializers
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer

from .permissions import get_user_role


class UserSerializer(serializers.ModelSerializer):
    """Signed-in operator as returned by login and /me/."""

    role = serializers.SerializerMethodField()

    class Meta:
        model = get_user_model()
        fields = ['id', 'username', 'email', 'is_superuser', 'last_login', 'role']
        read_only_fields = fields

    def get_role(self, obj):
        return get_user_role(obj)


class OperatorTokenObtainPairSerializer(TokenObtainPairSerializer):
    """Adds the operator's role to the access token claims and the login body."""

    @classmethod
    def get_token(cls, user):
        token = super().get_token(user)
        token['username'] = user.username
        token['role'] = get_user_role(user)
        return token

    def validate(self, attrs):
        data = super().validate(attrs)
        data['user'] = UserSerializer(self.user).data
        return data
