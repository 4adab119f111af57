# hsse_core/iam/openapi.py
from django.conf import settings
from drf_spectacular.extensions import OpenApiAuthenticationExtension


class CookieOrHeaderJWTAuthenticationScheme(OpenApiAuthenticationExtension):
    target_class = "hsse_core.iam.auth.CookieOrHeaderJWTAuthentication"
    name = "BearerOrCookieJWT"

    def get_security_definition(self, auto_schema):
        cookie = settings.SIMPLE_JWT.get("AUTH_COOKIE", "hsse_access")
        return {
            "type": "http",
            "scheme": "bearer",
            "bearerFormat": "JWT",
            "description": (
                "Access token issued by the site identity service. "
                f"Send it as `Authorization: Bearer <token>` or in the `{cookie}` cookie."
            ),
        }
