"""Aggregate analytics for the dashboard (JSON-serializable payloads)."""

from __future__ import annotations

import time
from datetime import timedelta
from typing import Any, Dict, List, Optional

from django.db import DatabaseError, connection
from django.db.models import Count, Q, Sum
from django.db.models.functions import TruncDate, TruncMonth
from django.utils import timezone

from .models import Chart, UploadRecord, User

PROCESS_STARTED = time.monotonic()

ACTIVITY_PERIODS = {"7d": 7, "30d": 30, "90d": 90}
GROWTH_WINDOW = timedelta(days=30)
RECENT_LIMIT = 5
POPULAR_LIMIT = 10


def _owner(user) -> Optional[Dict[str, Any]]:
    if user is None:
        return None
    return {"id": user.pk, "name": user.name, "email": user.email}


def compute_overview(now=None) -> Dict[str, Any]:
    now = now or timezone.now()
    since = now - GROWTH_WINDOW

    recent_users = User.objects.order_by("-created_at")[:RECENT_LIMIT]
    recent_charts = Chart.objects.select_related("created_by").order_by("-created_at")[:RECENT_LIMIT]
    recent_files = UploadRecord.objects.select_related("uploaded_by").order_by("-created_at")[:RECENT_LIMIT]

    return {
        "overview": {
            "totalUsers": User.objects.count(),
            "activeUsers": User.objects.filter(status=User.Status.ACTIVE).count(),
            "adminUsers": User.objects.filter(role=User.Role.ADMIN).count(),
            "totalCharts": Chart.objects.count(),
            "totalFiles": UploadRecord.objects.count(),
        },
        "growth": {
            "newUsersThisMonth": User.objects.filter(created_at__gte=since).count(),
            "newChartsThisMonth": Chart.objects.filter(created_at__gte=since).count(),
            "newFilesThisMonth": UploadRecord.objects.filter(created_at__gte=since).count(),
        },
        "recentActivity": {
            "users": [
                {"id": u.pk, "name": u.name, "email": u.email, "createdAt": u.created_at}
                for u in recent_users
            ],
            "charts": [
                {
                    "id": c.pk,
                    "title": c.title,
                    "type": c.type,
                    "createdAt": c.created_at,
                    "createdBy": _owner(c.created_by),
                }
                for c in recent_charts
            ],
            "files": [
                {
                    "id": f.pk,
                    "originalName": f.original_name,
                    "size": f.size,
                    "createdAt": f.created_at,
                    "uploadedBy": _owner(f.uploaded_by),
                }
                for f in recent_files
            ],
        },
    }


def _daily_counts(queryset, since) -> List[Dict[str, Any]]:
    rows = (
        queryset.filter(created_at__gte=since)
        .annotate(day=TruncDate("created_at"))
        .values("day")
        .annotate(count=Count("id"))
        .order_by("day")
    )
    return [{"date": row["day"].isoformat(), "count": row["count"]} for row in rows]


def compute_user_activity(period: str = "7d", now=None) -> Dict[str, Any]:
    """Per-day registrations, chart creations and uploads over the last 7/30/90 days."""
    if period not in ACTIVITY_PERIODS:
        raise ValueError(f"Invalid period '{period}'. Use one of: {', '.join(ACTIVITY_PERIODS)}")

    now = now or timezone.now()
    since = now - timedelta(days=ACTIVITY_PERIODS[period])
    return {
        "period": period,
        "userRegistrations": _daily_counts(User.objects.all(), since),
        "chartCreations": _daily_counts(Chart.objects.all(), since),
        "fileUploads": _daily_counts(UploadRecord.objects.all(), since),
    }


def compute_chart_stats() -> Dict[str, Any]:
    chart_types = (
        Chart.objects.values("type").annotate(count=Count("id")).order_by("-count", "type")
    )
    popular = Chart.objects.select_related("created_by").order_by("-views", "-created_at")[:POPULAR_LIMIT]
    trends = (
        Chart.objects.annotate(month=TruncMonth("created_at"))
        .values("month")
        .annotate(count=Count("id"))
        .order_by("month")
    )
    return {
        "chartTypes": [{"type": row["type"], "count": row["count"]} for row in chart_types],
        "popularCharts": [
            {
                "id": c.pk,
                "title": c.title,
                "type": c.type,
                "views": c.views,
                "downloads": c.downloads,
                "createdBy": _owner(c.created_by),
            }
            for c in popular
        ],
        "chartTrends": [
            {"year": row["month"].year, "month": row["month"].month, "count": row["count"]}
            for row in trends
        ],
    }


def compute_health() -> Dict[str, Any]:
    try:
        connection.ensure_connection()
        db_status = "connected"
    except DatabaseError:
        db_status = "disconnected"

    processing = {"pendingFiles": 0, "processingFiles": 0, "failedFiles": 0}
    if db_status == "connected":
        counts = UploadRecord.objects.aggregate(
            pendingFiles=Count("id", filter=Q(status=UploadRecord.Status.PENDING)),
            processingFiles=Count("id", filter=Q(status=UploadRecord.Status.PROCESSING)),
            failedFiles=Count("id", filter=Q(status=UploadRecord.Status.FAILED)),
        )
        processing.update(counts)

    return {
        "database": {"status": db_status, "vendor": connection.vendor},
        "processing": processing,
        "uptime": round(time.monotonic() - PROCESS_STARTED, 3),
    }


def compute_user_analytics(user) -> Dict[str, Any]:
    charts = Chart.objects.filter(created_by=user)
    chart_totals = charts.aggregate(
        total=Count("id"),
        totalViews=Sum("views"),
        totalDownloads=Sum("downloads"),
    )
    by_type = {
        row["type"]: row["count"]
        for row in charts.values("type").annotate(count=Count("id")).order_by("type")
    }

    file_totals = UploadRecord.objects.filter(uploaded_by=user).aggregate(
        total=Count("id"),
        totalSize=Sum("size"),
        processed=Count("id", filter=Q(status=UploadRecord.Status.COMPLETED)),
    )

    return {
        "filesUploaded": user.files_uploaded,
        "chartsCreated": user.charts_created,
        "totalDownloads": user.total_downloads,
        "lastLogin": user.last_login,
        "memberSince": user.created_at,
        "charts": {
            "total": chart_totals["total"],
            "byType": by_type,
            "totalViews": chart_totals["totalViews"] or 0,
            "totalDownloads": chart_totals["totalDownloads"] or 0,
        },
        "files": {
            "total": file_totals["total"],
            "totalSize": file_totals["totalSize"] or 0,
            "processed": file_totals["processed"],
        },
    }
