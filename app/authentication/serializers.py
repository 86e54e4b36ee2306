"""
Serializers for authentication models.

Security:
    - Payment provider identifiers are read-only over the API
"""

from rest_framework import serializers

from authentication.models import Address, User


class AddressSerializer(serializers.ModelSerializer):
    """Saved address. Coordinates may be supplied or left for the geocoder."""

    class Meta:
        model = Address
        fields = [
            "id",
            "label",
            "street",
            "address_line2",
            "area",
            "city",
            "state",
            "postal_code",
            "country",
            "latitude",
            "longitude",
            "is_default",
        ]
        read_only_fields = ["id"]


class UserSerializer(serializers.ModelSerializer):
    """Current user with saved addresses."""

    addresses = AddressSerializer(many=True, read_only=True)
    has_payout_account = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = [
            "id",
            "email",
            "name",
            "phone",
            "role",
            "has_payout_account",
            "addresses",
            "date_joined",
        ]
        read_only_fields = fields

    def get_has_payout_account(self, obj) -> bool:
        return bool(obj.stripe_account_id)
