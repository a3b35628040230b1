"""Django settings for Campus Hub.

Key idea:
- Staff and students both use Django auth; permission codes such as
  `collect:publish` are resolved by a pluggable permission oracle.
- Uploaded material lives in private buckets under COLLECT_STORAGE_ROOT and is
  only reachable through short-lived signed download links.
"""

from pathlib import Path
import environ

BASE_DIR = Path(__file__).resolve().parent.parent
env = environ.Env(
    DJANGO_DEBUG=(bool, False),
)

DEBUG = env.bool("DJANGO_DEBUG", default=False)
SECRET_KEY = env("DJANGO_SECRET_KEY", default="dev-only-change-me")
ALLOWED_HOSTS = [h.strip() for h in env("DJANGO_ALLOWED_HOSTS", default="*").split(",") if h.strip()]

CSRF_TRUSTED_ORIGINS = []
_origins = env("CSRF_TRUSTED_ORIGINS", default="")
if _origins:
    CSRF_TRUSTED_ORIGINS = [o.strip() for o in _origins.split(",") if o.strip()]

INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "collect",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "whitenoise.middleware.WhiteNoiseMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "config.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.debug",
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ]
        },
    }
]

WSGI_APPLICATION = "config.wsgi.application"

DATABASES = {
    "default": env.db(default=f"sqlite:///{BASE_DIR/'db.sqlite3'}")
}

LANGUAGE_CODE = "zh-hans"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

STATIC_URL = "/static/"
STATIC_ROOT = BASE_DIR / "staticfiles"
STORAGES = {
    "default": {
        "BACKEND": "django.core.files.storage.FileSystemStorage",
    },
    "staticfiles": {
        "BACKEND": "whitenoise.storage.CompressedManifestStaticFilesStorage",
    },
}

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# When behind a reverse proxy, Django should respect forwarded proto for secure cookies.
SECURE_PROXY_SSL_HEADER = ("HTTP_X_FORWARDED_PROTO", "https")
SESSION_COOKIE_SECURE = not DEBUG
CSRF_COOKIE_SECURE = not DEBUG

# Uploads stream to disk instead of being held in memory past this size.
FILE_UPLOAD_MAX_MEMORY_SIZE = env.int("FILE_UPLOAD_MAX_MEMORY_SIZE", default=5 * 1024 * 1024)
DATA_UPLOAD_MAX_MEMORY_SIZE = env.int("DATA_UPLOAD_MAX_MEMORY_SIZE", default=10 * 1024 * 1024)

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "plain": {"format": "[%(asctime)s] %(levelname)s %(name)s: %(message)s"},
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "plain"},
    },
    "root": {"handlers": ["console"], "level": env("DJANGO_LOG_LEVEL", default="INFO")},
    "loggers": {
        "collect": {"level": env("COLLECT_LOG_LEVEL", default="INFO"), "propagate": True},
    },
}

# --- Material collection ---

# One entry per collection module; buckets are private object-store namespaces.
COLLECT_MODULES = {
    "collect": {"template_bucket": "collect-templates", "submission_bucket": "collect-submissions"},
    "material": {"template_bucket": "material-templates", "submission_bucket": "material-submissions"},
}
COLLECT_STORAGE_ROOT = env("COLLECT_STORAGE_ROOT", default=str(BASE_DIR / "blobs"))
# Prefix for signed download links, e.g. "https://hub.example.edu". Empty keeps links host-relative.
COLLECT_PUBLIC_BASE_URL = env("COLLECT_PUBLIC_BASE_URL", default="").rstrip("/")
COLLECT_SIGNED_URL_SIGNING_KEY = env("COLLECT_SIGNED_URL_SIGNING_KEY", default="")
COLLECT_SIGNED_URL_EXPIRES_IN = env.int("COLLECT_SIGNED_URL_EXPIRES_IN", default=60)
COLLECT_FETCH_TIMEOUT_SECONDS = env.float("COLLECT_FETCH_TIMEOUT_SECONDS", default=30.0)

COLLECT_MAX_TEMPLATE_BYTES = env.int("COLLECT_MAX_TEMPLATE_BYTES", default=20 * 1024 * 1024)
COLLECT_MAX_SUBMISSION_FILE_BYTES = env.int("COLLECT_MAX_SUBMISSION_FILE_BYTES", default=200 * 1024 * 1024)
COLLECT_MAX_EXPORT_ZIP_BYTES = env.int("COLLECT_MAX_EXPORT_ZIP_BYTES", default=1024 * 1024 * 1024)

# Pluggable collaborators (dotted paths to zero-argument factories or classes).
COLLECT_STORAGE_GATEWAY = "collect.services.storage.DjangoStorageGateway"
COLLECT_PERMISSION_ORACLE = "collect.services.permissions.DjangoPermissionOracle"
COLLECT_VISIBILITY_RESOLVER = "collect.services.visibility.ScopeVisibilityResolver"
COLLECT_AUDIT_SINK = "collect.services.audit.ModelAuditSink"
