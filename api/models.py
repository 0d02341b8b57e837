from django.conf import settings
from django.contrib.auth.models import AbstractUser, UserManager as BaseUserManager
from django.db import models
from django.db.models import F, Q
from django.utils import timezone

from .exceptions import InvalidStateTransition


def default_preferences():
    return {"theme": "dark", "default_chart_type": "2d", "notifications": True}


def default_chart_configuration():
    return {
        "responsive": True,
        "maintainAspectRatio": False,
        "animation": {"duration": 1000, "easing": "easeInOutQuart"},
        "plugins": {
            "legend": {"display": True, "position": "top"},
            "tooltip": {"enabled": True},
        },
    }


class UserManager(BaseUserManager):
    COUNTER_FIELDS = ("files_uploaded", "charts_created", "total_downloads")

    def increment_counter(self, user_id, field, amount=1):
        """Atomically bump one of the usage counters. Returns the number of rows updated."""
        if field not in self.COUNTER_FIELDS:
            raise ValueError(f"Unknown usage counter: {field}")
        return self.filter(pk=user_id).update(
            **{field: F(field) + amount, "updated_at": timezone.now()}
        )


# Dashboard account. Usage counters are only ever changed through UserManager.increment_counter.
class User(AbstractUser):
    class Role(models.TextChoices):
        USER = "user", "User"
        ADMIN = "admin", "Admin"

    class Status(models.TextChoices):
        ACTIVE = "active", "Active"
        INACTIVE = "inactive", "Inactive"
        SUSPENDED = "suspended", "Suspended"

    email = models.EmailField(unique=True)
    name = models.CharField(max_length=100, blank=True)
    role = models.CharField(max_length=16, choices=Role.choices, default=Role.USER)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.ACTIVE)
    avatar = models.CharField(max_length=512, blank=True, default="")
    preferences = models.JSONField(default=default_preferences, blank=True)

    files_uploaded = models.PositiveIntegerField(default=0)
    charts_created = models.PositiveIntegerField(default=0)
    total_downloads = models.PositiveIntegerField(default=0)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = UserManager()

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["role"], name="user_role_idx"),
            models.Index(fields=["status"], name="user_status_idx"),
        ]

    def save(self, *args, **kwargs):
        # Admins get access to the Django admin site as well
        self.is_staff = self.is_staff or self.role == self.Role.ADMIN
        super().save(*args, **kwargs)

    @property
    def is_admin(self):
        return self.role == self.Role.ADMIN

    @property
    def is_active_account(self):
        return self.status == self.Status.ACTIVE

    def __str__(self):
        return f"{self.name or self.username} <{self.email}>"


class UploadRecordManager(models.Manager):
    def create_processing(self, **fields):
        """Insert a new record directly in the ``processing`` state."""
        fields.pop("status", None)
        return self.create(status=UploadRecord.Status.PROCESSING, **fields)


# One uploaded spreadsheet and its ingestion state.
#
# Status lifecycle:
#     processing -> completed (extracted_data set)
#     processing -> failed    (processing_error set)
#
# ``pending`` is declared but never assigned by the ingestion pipeline, which
# creates records directly in ``processing``.
class UploadRecord(models.Model):
    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        PROCESSING = "processing", "Processing"
        COMPLETED = "completed", "Completed"
        FAILED = "failed", "Failed"

    uploaded_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="uploads",
    )
    file = models.FileField(upload_to="uploads/", max_length=512)
    filename = models.CharField(max_length=255, help_text="Name of the stored file")
    original_name = models.CharField(max_length=255)
    mimetype = models.CharField(max_length=100)
    size = models.PositiveBigIntegerField(help_text="File size in bytes")

    status = models.CharField(
        max_length=16,
        choices=Status.choices,
        default=Status.PROCESSING,
    )
    extracted_data = models.JSONField(null=True, blank=True)
    processing_error = models.TextField(null=True, blank=True)
    metadata = models.JSONField(default=dict, blank=True)

    download_count = models.PositiveIntegerField(default=0)
    chart_generations = models.PositiveIntegerField(default=0)
    last_accessed = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = UploadRecordManager()

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["uploaded_by", "-created_at"], name="upload_owner_created_idx"),
            models.Index(fields=["status"], name="upload_status_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=(
                    Q(status="completed", extracted_data__isnull=False, processing_error__isnull=True)
                    | Q(status="failed", extracted_data__isnull=True, processing_error__isnull=False)
                    | Q(
                        status__in=["pending", "processing"],
                        extracted_data__isnull=True,
                        processing_error__isnull=True,
                    )
                ),
                name="upload_record_payload_matches_status",
            ),
        ]

    def __str__(self):
        return f"{self.original_name} ({self.get_status_display()})"

    @property
    def processed(self):
        return self.status == self.Status.COMPLETED

    def _transition(self, target, **fields):
        # Single conditional UPDATE: state and payload land together or not at all.
        now = timezone.now()
        updated = UploadRecord.objects.filter(
            pk=self.pk, status=self.Status.PROCESSING
        ).update(status=target, updated_at=now, **fields)
        if not updated:
            current = (
                UploadRecord.objects.filter(pk=self.pk)
                .values_list("status", flat=True)
                .first()
            )
            raise InvalidStateTransition(self.pk, current, target)

        self.status = target
        self.updated_at = now
        for name, value in fields.items():
            setattr(self, name, value)

    def mark_completed(self, extracted_data, metadata=None):
        self._transition(
            self.Status.COMPLETED,
            extracted_data=extracted_data,
            processing_error=None,
            metadata=metadata or {},
        )

    def mark_failed(self, message):
        self._transition(
            self.Status.FAILED,
            processing_error=message or "Unknown processing error",
        )

    def record_download(self):
        now = timezone.now()
        UploadRecord.objects.filter(pk=self.pk).update(
            download_count=F("download_count") + 1, last_accessed=now
        )
        self.refresh_from_db(fields=["download_count", "last_accessed"])


class Chart(models.Model):
    class Type(models.TextChoices):
        BAR = "bar", "Bar"
        LINE = "line", "Line"
        PIE = "pie", "Pie"
        BAR_3D = "3d-bar", "3D bar"
        LINE_3D = "3d-line", "3D line"
        SURFACE_3D = "3d-surface", "3D surface"

    title = models.CharField(max_length=200)
    type = models.CharField(max_length=16, choices=Type.choices)
    data = models.JSONField(default=dict)
    configuration = models.JSONField(default=default_chart_configuration, blank=True)

    source_upload = models.ForeignKey(
        UploadRecord,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="charts",
    )
    sheet_name = models.CharField(max_length=255, blank=True, default="")
    metadata = models.JSONField(default=dict, blank=True)

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="charts",
    )
    is_public = models.BooleanField(default=False)
    tags = models.JSONField(default=list, blank=True)

    views = models.PositiveIntegerField(default=0)
    downloads = models.PositiveIntegerField(default=0)
    last_viewed = models.DateTimeField(null=True, blank=True)
    last_downloaded = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["created_by"], name="chart_owner_idx"),
            models.Index(fields=["type"], name="chart_type_idx"),
            models.Index(fields=["is_public"], name="chart_public_idx"),
        ]

    def __str__(self):
        return f"{self.title} ({self.type})"

    def increment_views(self):
        now = timezone.now()
        Chart.objects.filter(pk=self.pk).update(views=F("views") + 1, last_viewed=now)
        self.refresh_from_db(fields=["views", "last_viewed"])

    def increment_downloads(self):
        now = timezone.now()
        Chart.objects.filter(pk=self.pk).update(downloads=F("downloads") + 1, last_downloaded=now)
        self.refresh_from_db(fields=["downloads", "last_downloaded"])
