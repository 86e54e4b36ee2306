import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Notification",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True, db_index=True, help_text="Timestamp when this record was created"
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified"),
                ),
                ("title", models.CharField(help_text="Short headline", max_length=200)),
                ("body", models.TextField(blank=True, default="", help_text="Message text")),
                (
                    "category",
                    models.CharField(
                        choices=[
                            ("order", "Order"),
                            ("payment", "Payment"),
                            ("escrow", "Escrow"),
                            ("dispute", "Dispute"),
                            ("product", "Product"),
                            ("other", "Other"),
                        ],
                        db_index=True,
                        default="other",
                        help_text="Event category",
                        max_length=20,
                    ),
                ),
                (
                    "link",
                    models.CharField(
                        blank=True, default="", help_text="Client deep-link for this notification", max_length=255
                    ),
                ),
                ("data", models.JSONField(blank=True, default=dict, help_text="Additional metadata")),
                (
                    "is_read",
                    models.BooleanField(
                        db_index=True, default=False, help_text="Whether the recipient has read this notification"
                    ),
                ),
                (
                    "recipient",
                    models.ForeignKey(
                        help_text="User who receives this notification",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="notifications",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["recipient", "is_read"], name="notif_recipient_read_idx"),
                ],
            },
        ),
    ]
