"""
Django admin configuration for notifications.
"""

from django.contrib import admin

from notifications.models import Notification


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ["title", "recipient", "category", "is_read", "created_at"]
    list_filter = ["category", "is_read"]
    search_fields = ["title", "recipient__email"]
    raw_id_fields = ["recipient"]
    readonly_fields = ["created_at", "updated_at"]
