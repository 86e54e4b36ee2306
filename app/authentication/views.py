"""
Views for the current user and their saved addresses.

Login is handled by simplejwt's token views (see urls.py).
"""

from django.db import transaction
from drf_spectacular.utils import extend_schema
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from authentication.serializers import AddressSerializer, UserSerializer


class MeView(APIView):
    """
    GET /api/v1/auth/me/

    Returns the authenticated user, their role and saved addresses.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Get current user",
        tags=["Auth"],
        responses={200: UserSerializer},
    )
    def get(self, request):
        return Response(UserSerializer(request.user).data)


class AddressListCreateView(APIView):
    """
    GET/POST /api/v1/auth/addresses/

    A new default address clears the flag on the user's other addresses.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="List saved addresses",
        tags=["Auth"],
        responses={200: AddressSerializer(many=True)},
    )
    def get(self, request):
        addresses = request.user.addresses.all()
        return Response(AddressSerializer(addresses, many=True).data)

    @extend_schema(
        summary="Add an address",
        tags=["Auth"],
        request=AddressSerializer,
        responses={201: AddressSerializer},
    )
    def post(self, request):
        serializer = AddressSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        with transaction.atomic():
            make_default = serializer.validated_data.get("is_default") or not request.user.addresses.exists()
            if make_default:
                request.user.addresses.update(is_default=False)
            address = serializer.save(user=request.user, is_default=make_default)

        return Response(AddressSerializer(address).data, status=status.HTTP_201_CREATED)
