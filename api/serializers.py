from django.conf import settings
from rest_framework import serializers

from .models import Chart, UploadRecord, User


class FileUploadSerializer(serializers.Serializer):
    """
    Serializer for spreadsheet upload.
    - file: uploaded file (XLSX / XLS / CSV)
    """
    file = serializers.FileField(required=False)

    def validate_file(self, value):
        if value.size > settings.MAX_FILE_SIZE:
            raise serializers.ValidationError(
                f"File too large. Maximum size is {settings.MAX_FILE_SIZE} bytes."
            )
        return value


class OwnerSerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = ("id", "name", "email")


class ChartSummarySerializer(serializers.ModelSerializer):
    class Meta:
        model = Chart
        fields = ("id", "title", "type", "created_at")


class UploadRecordSerializer(serializers.ModelSerializer):
    uploaded_by = OwnerSerializer(read_only=True)
    charts = ChartSummarySerializer(many=True, read_only=True)
    processed = serializers.BooleanField(read_only=True)

    class Meta:
        model = UploadRecord
        fields = (
            "id",
            "filename",
            "original_name",
            "mimetype",
            "size",
            "uploaded_by",
            "status",
            "processed",
            "processing_error",
            "extracted_data",
            "metadata",
            "charts",
            "download_count",
            "chart_generations",
            "last_accessed",
            "created_at",
            "updated_at",
        )
        read_only_fields = fields


class UploadHistorySerializer(UploadRecordSerializer):
    """Upload listing without the (potentially large) extracted data."""

    class Meta(UploadRecordSerializer.Meta):
        fields = tuple(f for f in UploadRecordSerializer.Meta.fields if f != "extracted_data")
        read_only_fields = fields


class ChartSerializer(serializers.ModelSerializer):
    created_by = OwnerSerializer(read_only=True)
    source_upload = serializers.PrimaryKeyRelatedField(
        queryset=UploadRecord.objects.all(), required=False, allow_null=True
    )

    class Meta:
        model = Chart
        fields = (
            "id",
            "title",
            "type",
            "data",
            "configuration",
            "source_upload",
            "sheet_name",
            "metadata",
            "created_by",
            "is_public",
            "tags",
            "views",
            "downloads",
            "last_viewed",
            "last_downloaded",
            "created_at",
            "updated_at",
        )
        read_only_fields = (
            "created_by",
            "views",
            "downloads",
            "last_viewed",
            "last_downloaded",
            "created_at",
            "updated_at",
        )

    def validate_data(self, value):
        if not isinstance(value, dict) or not isinstance(value.get("labels", []), list):
            raise serializers.ValidationError("Chart data must be an object with a 'labels' list.")
        if not isinstance(value.get("datasets", []), list):
            raise serializers.ValidationError("'datasets' must be a list.")
        return value

    def validate_tags(self, value):
        if not isinstance(value, list) or not all(isinstance(t, str) for t in value):
            raise serializers.ValidationError("Tags must be a list of strings.")
        return [t.strip().lower() for t in value if t.strip()]

    def validate_source_upload(self, value):
        request = self.context.get("request")
        if value is not None and request is not None:
            if value.uploaded_by_id != request.user.pk and not request.user.is_admin:
                raise serializers.ValidationError("Source file not found.")
        return value


class UserSerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = (
            "id",
            "username",
            "name",
            "email",
            "role",
            "status",
            "avatar",
            "preferences",
            "files_uploaded",
            "charts_created",
            "total_downloads",
            "last_login",
            "created_at",
            "updated_at",
        )
        read_only_fields = fields


class UserUpdateSerializer(serializers.ModelSerializer):
    """Profile fields a user may change. Role, status and password are not among them."""

    PREFERENCE_CHOICES = {
        "theme": ("dark", "light"),
        "default_chart_type": ("2d", "3d"),
    }

    class Meta:
        model = User
        fields = ("username", "name", "email", "avatar", "preferences")

    def validate_preferences(self, value):
        if not isinstance(value, dict):
            raise serializers.ValidationError("Preferences must be an object.")
        for key, allowed in self.PREFERENCE_CHOICES.items():
            if key in value and value[key] not in allowed:
                raise serializers.ValidationError(f"'{key}' must be one of {', '.join(allowed)}.")
        if "notifications" in value and not isinstance(value["notifications"], bool):
            raise serializers.ValidationError("'notifications' must be a boolean.")
        merged = dict(self.instance.preferences if self.instance else {})
        merged.update(value)
        return merged


class UserRoleSerializer(serializers.Serializer):
    role = serializers.ChoiceField(choices=User.Role.choices)


class UserStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=User.Status.choices)
