"""
Django admin configuration for orders.

Orders are financial records: the admin is read-only apart from browsing.
Escrow actions (release, dispute resolution) go through the API so they
pass through the ledger services.
"""

from django.contrib import admin

from orders.models import Order, OrderItem, SellerOrder, SellerOrderStatusChange, TransferRecord


class ReadOnlyInline(admin.TabularInline):
    extra = 0
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def get_readonly_fields(self, request, obj=None):
        return self.fields


class OrderItemInline(ReadOnlyInline):
    model = OrderItem
    fields = ["product_name", "seller", "quantity", "selected_tier", "unit_price", "line_total"]


class SellerOrderInline(ReadOnlyInline):
    model = SellerOrder
    fields = ["seller", "subtotal", "delivery_charge", "distance_km", "status", "delivered_at"]


class TransferRecordInline(ReadOnlyInline):
    model = TransferRecord
    fields = ["seller", "payment_intent_id", "transfer_id", "amount", "currency", "status", "updated_at"]


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = [
        "id",
        "buyer",
        "total_amount",
        "currency",
        "status",
        "payment_status",
        "release_date",
        "dispute_raised",
        "created_at",
    ]
    list_filter = ["status", "payment_status", "dispute_raised", "dispute_resolved"]
    search_fields = ["id", "buyer__email"]
    raw_id_fields = ["buyer", "released_by", "dispute_raised_by", "dispute_resolved_by"]
    date_hierarchy = "created_at"
    inlines = [OrderItemInline, SellerOrderInline, TransferRecordInline]

    fieldsets = (
        (None, {"fields": ("id", "buyer", "status", "payment_status", "payment_method", "version")}),
        ("Amounts", {"fields": ("total_amount", "currency")}),
        ("Escrow", {"fields": ("release_date", "released_at", "released_by")}),
        (
            "Dispute",
            {
                "fields": (
                    "dispute_raised",
                    "dispute_reason",
                    "dispute_raised_by",
                    "dispute_raised_at",
                    "dispute_resolved",
                    "dispute_action",
                    "dispute_resolution",
                    "dispute_resolved_by",
                    "dispute_resolved_at",
                ),
            },
        ),
        ("Checkout", {"fields": ("shipping_address", "contact_info", "delivery_notes"), "classes": ("collapse",)}),
        (
            "Lifecycle",
            {"fields": ("inventory_committed", "confirmed_at", "completed_at", "cancelled_at", "cancellation_reason")},
        ),
    )

    def get_readonly_fields(self, request, obj=None):
        return [field.name for field in Order._meta.fields]

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(TransferRecord)
class TransferRecordAdmin(admin.ModelAdmin):
    list_display = ["payment_intent_id", "order", "seller", "amount", "currency", "status", "updated_at"]
    list_filter = ["status", "currency"]
    search_fields = ["payment_intent_id", "transfer_id", "order__id", "seller__email"]
    readonly_fields = [
        "order",
        "seller",
        "transfer_id",
        "payment_intent_id",
        "amount",
        "currency",
        "status",
        "metadata",
        "released_at",
        "refunded_at",
        "created_at",
        "updated_at",
    ]

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(SellerOrderStatusChange)
class SellerOrderStatusChangeAdmin(admin.ModelAdmin):
    list_display = ["seller_order", "status", "changed_by", "changed_at"]
    list_filter = ["status"]
    raw_id_fields = ["seller_order", "changed_by"]
