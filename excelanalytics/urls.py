"""
URL configuration for the excelanalytics project.

All JSON endpoints live under /api/ (see api/urls.py). Interactive API
docs are served by drf-yasg at /swagger/ and /redoc/.
"""
from django.conf import settings
from django.conf.urls.static import static
from django.contrib import admin
from django.urls import path, re_path, include
from rest_framework import permissions
from drf_yasg.views import get_schema_view
from drf_yasg import openapi


def get_schema_view_with_permissions():
    """Get schema view with permission-based generator"""
    from api.schema import PermissionBasedSchemaGenerator

    return get_schema_view(
        openapi.Info(
            title="Excel Analytics API",
            default_version="v1",
            description="""
            <b>Excel Analytics API</b><br><br>
            Upload Excel or CSV files, turn them into chart data and keep track of charts and usage.<br><br>
            <b>Unauthenticated users</b> only see the auth endpoints.<br>
            <b>Admin endpoints</b> (users, analytics) are only listed for admins.<br>
            """,
        ),
        public=True,
        permission_classes=(permissions.AllowAny,),
        generator_class=PermissionBasedSchemaGenerator,
    )


schema_view = get_schema_view_with_permissions()


urlpatterns = [
    path('admin/', admin.site.urls),

    path('api/', include('api.urls')),

    # Swagger UI
    re_path(r'^swagger(?P<format>\.json|\.yaml)$',
            schema_view.without_ui(cache_timeout=0), name='schema-json'),

    path('swagger/', schema_view.with_ui('swagger', cache_timeout=0),
         name='schema-swagger-ui'),

    # Redoc UI
    path('redoc/', schema_view.with_ui('redoc', cache_timeout=0),
         name='schema-redoc'),
]

if settings.DEBUG:
    urlpatterns += static(settings.MEDIA_URL, document_root=settings.MEDIA_ROOT)
