from django.urls import path
from .views import (
    AnalyticsOverviewAPIView,
    ChartAnalyticsAPIView,
    ChartCreateAPIView,
    ChartDetailAPIView,
    ChartDownloadAPIView,
    FileUploadAPIView,
    HealthAPIView,
    LoginAPIView,
    LogoutAPIView,
    MeAPIView,
    PopularChartsAPIView,
    RegisterAPIView,
    UploadHistoryAPIView,
    UploadRecordDetailAPIView,
    UploadRecordDownloadAPIView,
    UserActivityAPIView,
    UserAnalyticsAPIView,
    UserChartsAPIView,
    UserDetailAPIView,
    UserListAPIView,
    UserRoleAPIView,
    UserStatusAPIView,
)

urlpatterns = [
    # Auth
    path("auth/register/", RegisterAPIView.as_view(), name="register"),
    path("auth/login/", LoginAPIView.as_view(), name="login"),
    path("auth/logout/", LogoutAPIView.as_view(), name="logout"),
    path("auth/me/", MeAPIView.as_view(), name="me"),

    # Files
    path("files/upload/", FileUploadAPIView.as_view(), name="file-upload"),
    path("files/history/", UploadHistoryAPIView.as_view(), name="file-history"),
    path("files/<int:pk>/", UploadRecordDetailAPIView.as_view(), name="file-detail"),
    path("files/<int:pk>/download/", UploadRecordDownloadAPIView.as_view(), name="file-download"),

    # Charts
    path("charts/", ChartCreateAPIView.as_view(), name="chart-create"),
    path("charts/user/", UserChartsAPIView.as_view(), name="chart-user-list"),
    path("charts/popular/", PopularChartsAPIView.as_view(), name="chart-popular"),
    path("charts/<int:pk>/", ChartDetailAPIView.as_view(), name="chart-detail"),
    path("charts/<int:pk>/download/", ChartDownloadAPIView.as_view(), name="chart-download"),

    # Users (admin, or the user themselves where noted in the views)
    path("users/", UserListAPIView.as_view(), name="user-list"),
    path("users/<int:pk>/", UserDetailAPIView.as_view(), name="user-detail"),
    path("users/<int:pk>/role/", UserRoleAPIView.as_view(), name="user-role"),
    path("users/<int:pk>/status/", UserStatusAPIView.as_view(), name="user-status"),
    path("users/<int:pk>/analytics/", UserAnalyticsAPIView.as_view(), name="user-analytics"),

    # Platform analytics (admin)
    path("analytics/overview/", AnalyticsOverviewAPIView.as_view(), name="analytics-overview"),
    path("analytics/user-activity/", UserActivityAPIView.as_view(), name="analytics-user-activity"),
    path("analytics/charts/", ChartAnalyticsAPIView.as_view(), name="analytics-charts"),
    path("analytics/health/", HealthAPIView.as_view(), name="analytics-health"),
]
