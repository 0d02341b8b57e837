import logging
import math

from django.contrib.auth import authenticate, get_user_model
from django.db.models import F, Q
from django.http import FileResponse
from django.shortcuts import get_object_or_404
from django.utils import timezone
from drf_yasg import openapi
from drf_yasg.utils import swagger_auto_schema
from rest_framework import generics, status
from rest_framework.authtoken.models import Token
from rest_framework.parsers import FormParser, MultiPartParser
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from .abac import get_user_permissions, validate_permissions
from .analytics import (
    compute_chart_stats,
    compute_health,
    compute_overview,
    compute_user_activity,
    compute_user_analytics,
)
from .exceptions import InvalidRequest, ProcessingFailed, UnsupportedMediaType
from .models import Chart, UploadRecord
from .pipeline import ingest
from .serializers import (
    ChartSerializer,
    FileUploadSerializer,
    UploadHistorySerializer,
    UploadRecordSerializer,
    UserRoleSerializer,
    UserSerializer,
    UserStatusSerializer,
    UserUpdateSerializer,
)
from .serializers_auth import LoginSerializer, RegisterSerializer
from .tasks import record_user_activity

logger = logging.getLogger(__name__)

User = get_user_model()

DENIED = {"error": "Access denied."}
ADMIN_REQUIRED = {"error": "Access denied. Admin permission required."}

page_params = [
    openapi.Parameter("page", openapi.IN_QUERY, type=openapi.TYPE_INTEGER, description="Page number (default 1)"),
    openapi.Parameter("limit", openapi.IN_QUERY, type=openapi.TYPE_INTEGER, description="Page size (default 10)"),
]


def paginate(queryset, request, default_limit=10, max_limit=100):
    """Slice a queryset by ?page=&limit= and return (items, page meta)."""
    try:
        page = max(int(request.query_params.get("page", 1)), 1)
        limit = min(max(int(request.query_params.get("limit", default_limit)), 1), max_limit)
    except (TypeError, ValueError):
        raise InvalidRequest("page and limit must be integers")

    total = queryset.count()
    items = queryset[(page - 1) * limit: page * limit]
    return items, {
        "totalPages": math.ceil(total / limit),
        "currentPage": page,
        "total": total,
    }


# Utility to get allowed features for a user
def get_allowed_features(user):
    features = []
    if validate_permissions(user, "upload"):
        features.append("upload_file")
    if validate_permissions(user, "read"):
        features.append("uploaded_files")
        features.append("charts")
    if validate_permissions(user, "read_all_files"):
        features.append("uploaded_files_all")
    if validate_permissions(user, "manage_users"):
        features.append("user_management")
    if validate_permissions(user, "view_analytics"):
        features.append("platform_analytics")
    return features


# ========== Auth =============


class RegisterAPIView(APIView):
    permission_classes = [AllowAny]

    @swagger_auto_schema(request_body=RegisterSerializer)
    def post(self, request):
        serializer = RegisterSerializer(data=request.data)
        if serializer.is_valid():
            user = serializer.save()
            token, _ = Token.objects.get_or_create(user=user)
            return Response(
                {"token": token.key, "user": UserSerializer(user).data},
                status=status.HTTP_201_CREATED,
            )
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


class LoginAPIView(APIView):
    permission_classes = [AllowAny]

    @swagger_auto_schema(request_body=LoginSerializer)
    def post(self, request):
        serializer = LoginSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        email = serializer.validated_data["email"].strip().lower()
        password = serializer.validated_data["password"]

        account = User.objects.filter(email__iexact=email).first()
        user = None
        if account is not None:
            user = authenticate(request, username=account.username, password=password)
        if user is None:
            return Response({"error": "Invalid credentials"}, status=status.HTTP_400_BAD_REQUEST)
        if not user.is_active_account:
            return Response(
                {"error": f"Account is {user.status}"}, status=status.HTTP_403_FORBIDDEN
            )

        User.objects.filter(pk=user.pk).update(last_login=timezone.now())
        user.refresh_from_db(fields=["last_login"])
        token, _ = Token.objects.get_or_create(user=user)
        return Response({"token": token.key, "user": UserSerializer(user).data})


class LogoutAPIView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request):
        Token.objects.filter(user=request.user).delete()
        return Response({"success": True, "message": "Logged out"})


class MeAPIView(APIView):
    permission_classes = [IsAuthenticated]

    @swagger_auto_schema(
        operation_description="Get current user info, permissions and allowed features."
    )
    def get(self, request):
        user = request.user
        return Response(
            {
                "user": UserSerializer(user).data,
                "permissions": get_user_permissions(user),
                "features": get_allowed_features(user),
            }
        )


# ========== Files =============


class FileUploadAPIView(generics.GenericAPIView):
    """
    POST /api/files/upload/

    Form-data:
      - file (required): XLSX / XLS / CSV file

    Behaviour:
      - Stores the file, creates an upload record and parses it synchronously.
      - Returns chart-ready data built from the first two columns of the first sheet.
      - A file that cannot be parsed leaves a ``failed`` record behind.
    """

    permission_classes = [IsAuthenticated]
    serializer_class = FileUploadSerializer
    parser_classes = (MultiPartParser, FormParser)

    def post(self, request, *args, **kwargs):
        user = request.user
        if not validate_permissions(user, "upload"):
            return Response(DENIED, status=status.HTTP_403_FORBIDDEN)

        serializer = self.get_serializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        try:
            result = ingest(serializer.validated_data.get("file"), user.pk)
        except InvalidRequest as e:
            return Response({"error": str(e)}, status=status.HTTP_400_BAD_REQUEST)
        except UnsupportedMediaType as e:
            return Response({"error": str(e)}, status=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE)
        except ProcessingFailed as e:
            return Response(
                {"error": "File processing failed", "message": e.message, "fileId": e.record_id},
                status=status.HTTP_500_INTERNAL_SERVER_ERROR,
            )
        except Exception as e:
            logger.exception("File upload failed")
            return Response(
                {"error": "File processing failed", "message": str(e)},
                status=status.HTTP_500_INTERNAL_SERVER_ERROR,
            )

        return Response(result.to_response(), status=status.HTTP_201_CREATED)


class UploadHistoryAPIView(generics.ListAPIView):
    """Uploads of the current user, newest first. Admins may pass ?user_id=."""

    permission_classes = [IsAuthenticated]
    serializer_class = UploadHistorySerializer
    pagination_class = None

    def get_queryset(self):
        user = self.request.user
        owner_id = self.request.query_params.get("user_id") or user.pk
        queryset = UploadRecord.objects.select_related("uploaded_by").prefetch_related("charts")
        return queryset.filter(uploaded_by_id=owner_id).order_by("-created_at")

    @swagger_auto_schema(
        manual_parameters=[
            openapi.Parameter("user_id", openapi.IN_QUERY, type=openapi.TYPE_INTEGER, description="Admin only")
        ]
    )
    def get(self, request, *args, **kwargs):
        user = request.user
        owner_id = request.query_params.get("user_id")
        if owner_id and not owner_id.isdigit():
            return Response({"error": "user_id must be an integer"}, status=status.HTTP_400_BAD_REQUEST)
        if owner_id and int(owner_id) != user.pk:
            if not validate_permissions(user, "read_all_files"):
                return Response(DENIED, status=status.HTTP_403_FORBIDDEN)
        elif not validate_permissions(user, "read"):
            return Response(DENIED, status=status.HTTP_403_FORBIDDEN)

        serializer = self.get_serializer(self.get_queryset(), many=True)
        return Response(serializer.data)


class UploadRecordDetailAPIView(APIView):
    permission_classes = [IsAuthenticated]

    def get_record(self, pk):
        return get_object_or_404(
            UploadRecord.objects.select_related("uploaded_by").prefetch_related("charts"), pk=pk
        )

    def get(self, request, pk):
        record = self.get_record(pk)
        if not validate_permissions(request.user, "read", {"owner_id": record.uploaded_by_id}):
            return Response(DENIED, status=status.HTTP_403_FORBIDDEN)
        return Response(UploadRecordSerializer(record).data)

    def delete(self, request, pk):
        record = self.get_record(pk)
        if not validate_permissions(request.user, "delete", {"owner_id": record.uploaded_by_id}):
            return Response(DENIED, status=status.HTTP_403_FORBIDDEN)

        # post_delete signal removes the stored file
        record.delete()
        return Response({"success": True, "message": "File deleted successfully"})


class UploadRecordDownloadAPIView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, pk):
        record = get_object_or_404(UploadRecord, pk=pk)
        if not validate_permissions(request.user, "read", {"owner_id": record.uploaded_by_id}):
            return Response(DENIED, status=status.HTTP_403_FORBIDDEN)

        try:
            handle = record.file.open("rb")
        except FileNotFoundError:
            return Response({"error": "Stored file is missing"}, status=status.HTTP_404_NOT_FOUND)

        record.record_download()
        record_user_activity(request.user.pk, "total_downloads")
        return FileResponse(
            handle,
            as_attachment=True,
            filename=record.original_name,
            content_type=record.mimetype,
        )


# ========== Charts =============


class ChartCreateAPIView(APIView):
    permission_classes = [IsAuthenticated]

    @swagger_auto_schema(request_body=ChartSerializer)
    def post(self, request):
        user = request.user
        if not validate_permissions(user, "upload"):
            return Response(DENIED, status=status.HTTP_403_FORBIDDEN)

        serializer = ChartSerializer(data=request.data, context={"request": request})
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        chart = serializer.save(created_by=user)
        record_user_activity(user.pk, "charts_created")
        if chart.source_upload_id:
            UploadRecord.objects.filter(pk=chart.source_upload_id).update(
                chart_generations=F("chart_generations") + 1
            )
        return Response(ChartSerializer(chart).data, status=status.HTTP_201_CREATED)


class UserChartsAPIView(APIView):
    """Charts of the logged-in user: ?page=&limit=&type=&sortBy="""

    permission_classes = [IsAuthenticated]

    SORT_FIELDS = {
        "createdAt": "created_at",
        "updatedAt": "updated_at",
        "title": "title",
        "views": "views",
        "downloads": "downloads",
    }

    @swagger_auto_schema(
        manual_parameters=page_params + [
            openapi.Parameter("type", openapi.IN_QUERY, type=openapi.TYPE_STRING),
            openapi.Parameter("sortBy", openapi.IN_QUERY, type=openapi.TYPE_STRING, enum=list(SORT_FIELDS)),
        ]
    )
    def get(self, request):
        user = request.user
        if not validate_permissions(user, "read"):
            return Response(DENIED, status=status.HTTP_403_FORBIDDEN)

        sort_by = request.query_params.get("sortBy", "createdAt")
        if sort_by not in self.SORT_FIELDS:
            return Response({"error": f"Invalid sortBy '{sort_by}'"}, status=status.HTTP_400_BAD_REQUEST)

        queryset = Chart.objects.filter(created_by=user).select_related("created_by")
        chart_type = request.query_params.get("type")
        if chart_type:
            queryset = queryset.filter(type=chart_type)
        queryset = queryset.order_by(f"-{self.SORT_FIELDS[sort_by]}", "-id")

        try:
            charts, meta = paginate(queryset, request)
        except InvalidRequest as e:
            return Response({"error": str(e)}, status=status.HTTP_400_BAD_REQUEST)
        return Response({"charts": ChartSerializer(charts, many=True).data, **meta})


class PopularChartsAPIView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        try:
            limit = min(max(int(request.query_params.get("limit", 10)), 1), 100)
        except ValueError:
            return Response({"error": "limit must be an integer"}, status=status.HTTP_400_BAD_REQUEST)
        charts = (
            Chart.objects.filter(is_public=True)
            .select_related("created_by")
            .order_by("-views", "-created_at")[:limit]
        )
        return Response(ChartSerializer(charts, many=True).data)


class ChartDetailAPIView(APIView):
    permission_classes = [IsAuthenticated]

    def get_chart(self, request, pk, action):
        chart = get_object_or_404(Chart.objects.select_related("created_by"), pk=pk)
        if not validate_permissions(request.user, action, {"owner_id": chart.created_by_id}):
            return None
        return chart

    def get(self, request, pk):
        chart = self.get_chart(request, pk, "read")
        if chart is None:
            return Response({"error": "Forbidden"}, status=status.HTTP_403_FORBIDDEN)
        chart.increment_views()
        return Response(ChartSerializer(chart).data)

    @swagger_auto_schema(request_body=ChartSerializer)
    def put(self, request, pk):
        chart = self.get_chart(request, pk, "update")
        if chart is None:
            return Response({"error": "Forbidden"}, status=status.HTTP_403_FORBIDDEN)
        serializer = ChartSerializer(chart, data=request.data, partial=True, context={"request": request})
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        serializer.save()
        return Response(serializer.data)

    def delete(self, request, pk):
        chart = self.get_chart(request, pk, "delete")
        if chart is None:
            return Response({"error": "Forbidden"}, status=status.HTTP_403_FORBIDDEN)
        chart.delete()
        return Response({"success": True, "message": "Chart deleted successfully"})


class ChartDownloadAPIView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request, pk):
        chart = get_object_or_404(Chart, pk=pk)
        if not chart.is_public and not validate_permissions(
            request.user, "read", {"owner_id": chart.created_by_id}
        ):
            return Response({"error": "Forbidden"}, status=status.HTTP_403_FORBIDDEN)
        chart.increment_downloads()
        record_user_activity(request.user.pk, "total_downloads")
        return Response({"success": True, "downloads": chart.downloads})


# ========== Users =============


class UserListAPIView(APIView):
    """
    GET: List users (admin only), ?role=&status=&search=&page=&limit=
    """

    permission_classes = [IsAuthenticated]

    @swagger_auto_schema(
        manual_parameters=page_params + [
            openapi.Parameter("role", openapi.IN_QUERY, type=openapi.TYPE_STRING),
            openapi.Parameter("status", openapi.IN_QUERY, type=openapi.TYPE_STRING),
            openapi.Parameter("search", openapi.IN_QUERY, type=openapi.TYPE_STRING),
        ]
    )
    def get(self, request):
        if not validate_permissions(request.user, "manage_users"):
            return Response(ADMIN_REQUIRED, status=status.HTTP_403_FORBIDDEN)

        queryset = User.objects.all().order_by("-created_at", "-id")
        role = request.query_params.get("role")
        if role:
            queryset = queryset.filter(role=role)
        account_status = request.query_params.get("status")
        if account_status:
            queryset = queryset.filter(status=account_status)
        search = request.query_params.get("search")
        if search:
            queryset = queryset.filter(Q(name__icontains=search) | Q(email__icontains=search))

        try:
            users, meta = paginate(queryset, request)
        except InvalidRequest as e:
            return Response({"error": str(e)}, status=status.HTTP_400_BAD_REQUEST)
        return Response({"users": UserSerializer(users, many=True).data, **meta})


class UserDetailAPIView(APIView):
    """
    GET: user profile (self or admin)
    PUT: update profile fields (self or admin)
    DELETE: delete user with all uploads and charts (admin only)
    """

    permission_classes = [IsAuthenticated]

    def get(self, request, pk):
        user = get_object_or_404(User, pk=pk)
        if not validate_permissions(request.user, "read", {"owner_id": user.pk}):
            return Response(DENIED, status=status.HTTP_403_FORBIDDEN)
        return Response(UserSerializer(user).data)

    @swagger_auto_schema(request_body=UserUpdateSerializer)
    def put(self, request, pk):
        user = get_object_or_404(User, pk=pk)
        if not validate_permissions(request.user, "update", {"owner_id": user.pk}):
            return Response(DENIED, status=status.HTTP_403_FORBIDDEN)

        serializer = UserUpdateSerializer(user, data=request.data, partial=True)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        serializer.save()
        return Response(UserSerializer(user).data)

    def delete(self, request, pk):
        if not validate_permissions(request.user, "manage_users"):
            return Response(ADMIN_REQUIRED, status=status.HTTP_403_FORBIDDEN)
        user = get_object_or_404(User, pk=pk)

        # Uploads (and their stored files) and charts cascade with the user
        user.delete()
        return Response(
            {"success": True, "message": "User and all associated content deleted successfully"}
        )


class UserRoleAPIView(APIView):
    permission_classes = [IsAuthenticated]

    @swagger_auto_schema(request_body=UserRoleSerializer)
    def patch(self, request, pk):
        if not validate_permissions(request.user, "manage_users"):
            return Response(ADMIN_REQUIRED, status=status.HTTP_403_FORBIDDEN)
        serializer = UserRoleSerializer(data=request.data)
        if not serializer.is_valid():
            return Response({"error": "Invalid role"}, status=status.HTTP_400_BAD_REQUEST)

        user = get_object_or_404(User, pk=pk)
        user.role = serializer.validated_data["role"]
        user.is_staff = user.role == User.Role.ADMIN
        user.save(update_fields=["role", "is_staff", "updated_at"])
        return Response(UserSerializer(user).data)


class UserStatusAPIView(APIView):
    permission_classes = [IsAuthenticated]

    @swagger_auto_schema(request_body=UserStatusSerializer)
    def patch(self, request, pk):
        if not validate_permissions(request.user, "manage_users"):
            return Response(ADMIN_REQUIRED, status=status.HTTP_403_FORBIDDEN)
        serializer = UserStatusSerializer(data=request.data)
        if not serializer.is_valid():
            return Response({"error": "Invalid status"}, status=status.HTTP_400_BAD_REQUEST)

        user = get_object_or_404(User, pk=pk)
        user.status = serializer.validated_data["status"]
        user.save(update_fields=["status", "updated_at"])
        return Response(UserSerializer(user).data)


class UserAnalyticsAPIView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, pk):
        user = get_object_or_404(User, pk=pk)
        if not validate_permissions(request.user, "read", {"owner_id": user.pk}):
            return Response(DENIED, status=status.HTTP_403_FORBIDDEN)
        return Response(compute_user_analytics(user))


# ========== Platform analytics =============


class AnalyticsOverviewAPIView(APIView):
    permission_classes = [IsAuthenticated]

    @swagger_auto_schema(operation_description="Platform totals, 30-day growth and recent activity (admin only)")
    def get(self, request):
        if not validate_permissions(request.user, "view_analytics"):
            return Response(ADMIN_REQUIRED, status=status.HTTP_403_FORBIDDEN)
        try:
            return Response(compute_overview())
        except Exception as e:
            logger.exception("analytics overview failed")
            return Response({"error": str(e)}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)


class UserActivityAPIView(APIView):
    permission_classes = [IsAuthenticated]

    @swagger_auto_schema(
        manual_parameters=[
            openapi.Parameter("period", openapi.IN_QUERY, type=openapi.TYPE_STRING, enum=["7d", "30d", "90d"])
        ]
    )
    def get(self, request):
        if not validate_permissions(request.user, "view_analytics"):
            return Response(ADMIN_REQUIRED, status=status.HTTP_403_FORBIDDEN)
        try:
            return Response(compute_user_activity(request.query_params.get("period", "7d")))
        except ValueError as e:
            return Response({"error": str(e)}, status=status.HTTP_400_BAD_REQUEST)
        except Exception as e:
            logger.exception("user activity analytics failed")
            return Response({"error": str(e)}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)


class ChartAnalyticsAPIView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        if not validate_permissions(request.user, "view_analytics"):
            return Response(ADMIN_REQUIRED, status=status.HTTP_403_FORBIDDEN)
        try:
            return Response(compute_chart_stats())
        except Exception as e:
            logger.exception("chart analytics failed")
            return Response({"error": str(e)}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)


class HealthAPIView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        if not validate_permissions(request.user, "view_analytics"):
            return Response(ADMIN_REQUIRED, status=status.HTTP_403_FORBIDDEN)
        return Response(compute_health())
