"""
Storefront conversions settings
"""

from pathlib import Path
import environ, os

LOG_LEVEL = os.getenv("DJANGO_LOG_LEVEL", "INFO")

BASE_DIR = Path(__file__).resolve().parent.parent
env = environ.Env(
    DEBUG=(bool, False),
)
# loads .env when running locally
env_file = BASE_DIR / ".env"
if env_file.exists():
    environ.Env.read_env(env_file)

# Local runs get a throwaway secret; deployed environments must pass one.
RELEASE_ENV = os.getenv("RELEASE_ENV", "local")
if RELEASE_ENV == "local":
    os.environ.setdefault("DEBUG", "1")
    os.environ.setdefault("DJANGO_SECRET_KEY", "dev-insecure")

# ────────── Core ──────────
DEBUG = env.bool("DEBUG", default=False)
SECRET_KEY = env("DJANGO_SECRET_KEY")
ALLOWED_HOSTS = env.list("ALLOWED_HOSTS", default=["*"])

INSTALLED_APPS = [
    "conversion_events",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "middleware.cors.CorsMiddleware",
    "django.middleware.common.CommonMiddleware",
]

ROOT_URLCONF = "config.urls"
WSGI_APPLICATION = "config.wsgi.application"
ASGI_APPLICATION = "config.asgi.application"

# The pipeline is stateless; nothing is persisted.
DATABASES = {}

TIME_ZONE = "UTC"
USE_I18N = USE_TZ = True
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# ────────── Conversions API ──────────
# Destination dataset (pixel) and its system-user access token. Both are
# required; without them every dispatch fails fast with a configuration error.
DATASET_ID = env("DATASET_ID", default="")
ACCESS_TOKEN = env("ACCESS_TOKEN", default="")
# Tags outbound events as test traffic in Events Manager when set.
TEST_EVENT_CODE = env("TEST_EVENT_CODE", default="")
CAPI_API_VERSION = env("CAPI_API_VERSION", default="v19.0")
CAPI_TIMEOUT_SECONDS = env.float("CAPI_TIMEOUT_SECONDS", default=10.0)
# Extra attempts after a 5xx/408/425/429 or transport error. 0 disables retries.
CAPI_MAX_RETRIES = env.int("CAPI_MAX_RETRIES", default=0)

# ────────── Geo enrichment ──────────
# Optional: without a key the pipeline sends events without geo fields.
GEO_API_KEY = env("GEO_API_KEY", default="")
GEO_API_URL = env("GEO_API_URL", default="https://api.ipdata.co")
GEO_TIMEOUT_SECONDS = env.float("GEO_TIMEOUT_SECONDS", default=3.0)

# ────────── CORS ──────────
ALLOWED_ORIGIN = env("ALLOWED_ORIGIN", default="")
CORS_PATH_PREFIX = env("CORS_PATH_PREFIX", default="/api/")

# ────────── Payment platform webhooks ──────────
# Cakto echoes this secret in every webhook body; Kiwify signs the body with
# its token (HMAC-SHA1, passed as ?signature=). Leave empty to skip the check.
CAKTO_WEBHOOK_SECRET = env("CAKTO_WEBHOOK_SECRET", default="")
KIWIFY_WEBHOOK_TOKEN = env("KIWIFY_WEBHOOK_TOKEN", default="")

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,

    # ---------------- Handlers ----------------
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "verbose",
            "stream": "ext://sys.stdout",
        },
    },

    # --------------- Formatters ---------------
    "formatters": {
        "verbose": {
            "format": "{asctime} [{levelname}] {name}: {message}",
            "style": "{",
        },
    },

    # --------------- Root logger --------------
    "root": {
        "handlers": ["console"],
        "level": LOG_LEVEL,
    },

    # --------------- Other loggers -----------
    "loggers": {
        "django": {
            "handlers": ["console"],
            "level": LOG_LEVEL,
            "propagate": False,
        },
        "conversion_events": {
            "handlers": ["console"],
            "level": os.getenv("CONVERSION_EVENTS_LOG_LEVEL", LOG_LEVEL),
            "propagate": False,
        },
        # requests' connection pool is chatty at DEBUG
        "urllib3": {
            "handlers": ["console"],
            "level": "WARNING",
            "propagate": False,
        },
    },
}
