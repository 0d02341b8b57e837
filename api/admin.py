# Register in admin
from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin

from .models import Chart, UploadRecord, User


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    fieldsets = BaseUserAdmin.fieldsets + (
        (None, {"fields": ("name", "role", "status", "avatar", "preferences")}),
        ("Usage", {"fields": ("files_uploaded", "charts_created", "total_downloads")}),
    )
    add_fieldsets = BaseUserAdmin.add_fieldsets + (
        (None, {"fields": ("email", "name", "role")}),
    )
    readonly_fields = ("files_uploaded", "charts_created", "total_downloads")
    list_display = ("email", "name", "role", "status", "files_uploaded", "charts_created", "created_at")
    list_filter = BaseUserAdmin.list_filter + ("role", "status")
    search_fields = ("email", "name", "username")


@admin.register(UploadRecord)
class UploadRecordAdmin(admin.ModelAdmin):
    list_display = ("original_name", "uploaded_by", "status", "size", "created_at")
    list_filter = ("status", "mimetype")
    search_fields = ("original_name", "filename", "uploaded_by__email")
    # Status only changes through the ingestion pipeline
    readonly_fields = ("status", "extracted_data", "processing_error", "metadata")


@admin.register(Chart)
class ChartAdmin(admin.ModelAdmin):
    list_display = ("title", "type", "created_by", "is_public", "views", "downloads", "created_at")
    list_filter = ("type", "is_public")
    search_fields = ("title", "created_by__email")
