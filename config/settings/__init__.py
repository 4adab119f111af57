# config/settings/__init__.py
import os

from django.core.exceptions import ImproperlyConfigured

DJANGO_ENV = os.getenv("DJANGO_ENV", "local").strip().lower()

if DJANGO_ENV in ("prod", "production"):
    from .prod import *  # noqa
elif DJANGO_ENV in ("local", "dev", "test"):
    from .local import *  # noqa
else:
    raise ImproperlyConfigured(f"Unknown DJANGO_ENV {DJANGO_ENV!r}. Use 'local' or 'prod'.")
