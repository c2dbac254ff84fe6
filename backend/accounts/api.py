from rest_framework.views import APIView
from rest_framework_simplejwt.views import TokenObtainPairView

from core.responses import success

from .serializers import EmailTokenObtainPairSerializer, UserSerializer


class LoginView(TokenObtainPairView):
    """Authenticate an existing user via email + password."""

    serializer_class = EmailTokenObtainPairSerializer


class MeView(APIView):
    """Return the serialized profile for the current authenticated user."""

    def get(self, request, *args, **kwargs):
        return success(UserSerializer(request.user).data)
