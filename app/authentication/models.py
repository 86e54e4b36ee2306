"""
Authentication models.

User carries the marketplace role and the payment-provider identifiers the
escrow flow needs:
    - stripe_customer_id: the buyer's billing account, created on first order
    - stripe_account_id: the seller's connected payout account

Address stores shipping addresses together with a cached geocode so the
delivery fee calculation does not have to geocode the same address twice.
"""

from __future__ import annotations

from django.contrib.auth.models import AbstractBaseUser, PermissionsMixin
from django.db import models

from authentication.managers import UserManager
from core.models import BaseModel


class User(AbstractBaseUser, PermissionsMixin):
    """
    Custom User model using email as the primary identifier.

    Fields:
        email: Primary identifier, unique, used for login
        name: Display name used in notifications
        phone: Contact number
        role: buyer, seller or admin
        stripe_customer_id: Stripe Customer for charges (buyers)
        stripe_account_id: Stripe connected account for payouts (sellers)
        is_active: Whether the user account is active
        is_staff: Whether the user can access Django admin
        date_joined: When the user account was created
        updated_at: When the user record was last modified
    """

    class Role(models.TextChoices):
        BUYER = "buyer", "Buyer"
        SELLER = "seller", "Seller"
        ADMIN = "admin", "Admin"

    email = models.EmailField(
        unique=True,
        db_index=True,
        max_length=254,
        help_text="User's email address (primary identifier)",
    )
    name = models.CharField(
        max_length=150,
        blank=True,
        help_text="Display name",
    )
    phone = models.CharField(
        max_length=32,
        blank=True,
        help_text="Contact phone number",
    )
    role = models.CharField(
        max_length=16,
        choices=Role.choices,
        default=Role.BUYER,
        db_index=True,
        help_text="Marketplace role",
    )

    # Payment provider identifiers
    stripe_customer_id = models.CharField(
        max_length=255,
        blank=True,
        help_text="Stripe Customer ID used when charging this user",
    )
    stripe_account_id = models.CharField(
        max_length=255,
        blank=True,
        help_text="Stripe connected account ID that receives payouts",
    )

    is_active = models.BooleanField(
        default=True,
        help_text="Whether this user account is active. Deselect instead of deleting.",
    )
    is_staff = models.BooleanField(
        default=False,
        help_text="Whether the user can access the admin site.",
    )

    date_joined = models.DateTimeField(
        auto_now_add=True,
        help_text="When the user account was created",
    )
    updated_at = models.DateTimeField(
        auto_now=True,
        help_text="When the user record was last modified",
    )

    USERNAME_FIELD = "email"
    REQUIRED_FIELDS = []

    objects = UserManager()

    class Meta:
        verbose_name = "user"
        verbose_name_plural = "users"
        ordering = ["-date_joined"]

    def __str__(self):
        return self.email

    def get_full_name(self):
        return self.name or self.email

    def get_short_name(self):
        return self.name.split(" ")[0] if self.name else self.email.split("@")[0]

    @property
    def is_admin(self) -> bool:
        """Marketplace administrators may resolve disputes and release any order."""
        return self.role == self.Role.ADMIN or self.is_staff

    @property
    def default_address(self) -> Address | None:
        return self.addresses.filter(is_default=True).first() or self.addresses.first()


class Address(BaseModel):
    """
    A saved shipping or pickup address.

    Sellers' default address is their dispatch point for delivery-fee
    distance. ``latitude``/``longitude`` are filled by the geocoder the first
    time they are needed and reused afterwards.
    """

    user = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name="addresses",
        help_text="Owner of this address",
    )
    label = models.CharField(max_length=50, blank=True, help_text="e.g. Home, Shop")
    street = models.CharField(max_length=255, blank=True)
    address_line2 = models.CharField(max_length=255, blank=True)
    area = models.CharField(max_length=120, blank=True)
    city = models.CharField(max_length=120, blank=True)
    state = models.CharField(max_length=120, blank=True)
    postal_code = models.CharField(max_length=20, blank=True)
    country = models.CharField(max_length=80, default="Pakistan")
    latitude = models.FloatField(
        null=True,
        blank=True,
        help_text="Cached geocoded latitude",
    )
    longitude = models.FloatField(
        null=True,
        blank=True,
        help_text="Cached geocoded longitude",
    )
    is_default = models.BooleanField(
        default=False,
        help_text="Whether this is the user's default address",
    )

    class Meta:
        ordering = ["-is_default", "-created_at"]
        verbose_name_plural = "addresses"

    def __str__(self):
        return f"{self.label or 'Address'} ({self.city})"

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    def as_dict(self) -> dict:
        """Snapshot copied onto orders and fed to the geocoder."""
        return {
            "street": self.street,
            "address_line2": self.address_line2,
            "area": self.area,
            "city": self.city,
            "state": self.state,
            "postal_code": self.postal_code,
            "country": self.country,
            "latitude": self.latitude,
            "longitude": self.longitude,
        }
