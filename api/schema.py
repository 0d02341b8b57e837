# api/schema.py
import re

from drf_yasg.generators import OpenAPISchemaGenerator
from .views import get_allowed_features

PUBLIC_PATHS = ("/auth/login/", "/auth/register/")
ACCOUNT_PATHS = ("/auth/",)

# Feature names MUST match get_allowed_features()
FEATURE_PATHS = {
    "upload_file": ("/files/upload/",),
    "uploaded_files": ("/files/",),
    "charts": ("/charts/",),
    "user_management": ("/users/",),
    "platform_analytics": ("/analytics/",),
}

# /users/{pk}/ and /users/{pk}/analytics/
SELF_SERVICE_PATH = re.compile(r"/users/\{\w+\}/(analytics/)?$")


def is_visible(path, features):
    if any(prefix in path for prefix in ACCOUNT_PATHS):
        return True
    if SELF_SERVICE_PATH.search(path):
        return True
    return any(
        prefix in path
        for feature in features
        for prefix in FEATURE_PATHS.get(feature, ())
    )


class PermissionBasedSchemaGenerator(OpenAPISchemaGenerator):
    """Only document the endpoints the caller is allowed to use."""

    def get_endpoints(self, request):
        endpoints = super().get_endpoints(request)

        # Anonymous callers only get login & register
        if not request or not request.user.is_authenticated:
            return {
                path: methods
                for path, methods in endpoints.items()
                if path.endswith(PUBLIC_PATHS)
            }

        features = get_allowed_features(request.user)
        return {
            path: methods
            for path, methods in endpoints.items()
            if is_visible(path, features)
        }
