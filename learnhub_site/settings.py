from pathlib import Path
import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Build paths inside the project like this: BASE_DIR / 'subdir'.
BASE_DIR = Path(__file__).resolve().parent.parent


# ==============================================================================
# SECURITY SETTINGS (ENVIRONMENT-BASED)
# ==============================================================================

# Load from .env; fall back to insecure default for development only
SECRET_KEY = os.getenv(
    'DJANGO_SECRET_KEY',
    'django-insecure-2q$k7v!m0w@learnhub-dev-only-8x#r1t^c4p(z9e)h6b'
)

DEBUG = os.getenv('DEBUG', 'True') == 'True'

ALLOWED_HOSTS = os.getenv('ALLOWED_HOSTS', '*').split(',')

# ==============================================================================
# HTTPS/SSL SECURITY (Production only)
# ==============================================================================
if not DEBUG:
    # Force HTTPS
    SECURE_SSL_REDIRECT = os.getenv('SECURE_SSL_REDIRECT', 'True') == 'True'
    SECURE_PROXY_SSL_HEADER = ('HTTP_X_FORWARDED_PROTO', 'https')

    # Secure cookies
    SESSION_COOKIE_SECURE = True
    CSRF_COOKIE_SECURE = True

    # HSTS (HTTP Strict Transport Security)
    SECURE_HSTS_SECONDS = 31536000  # 1 year
    SECURE_HSTS_INCLUDE_SUBDOMAINS = True
    SECURE_HSTS_PRELOAD = True

    SECURE_CONTENT_TYPE_NOSNIFF = True
    X_FRAME_OPTIONS = 'DENY'


# ==============================================================================
# APPLICATION CONFIGURATION
# ==============================================================================

INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',

    # Third-party apps
    'storages',  # django-storages for S3/DO Spaces
    'django_celery_beat',  # Celery beat scheduler

    # Local apps
    'core',  # Institutions, memberships, courses, audit log
    'payments',  # Razorpay orders, webhooks, payment records
    'enrollments',  # Course access grants and expiry
    'certificates',  # Certificate issuance and public verification
]


MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'whitenoise.middleware.WhiteNoiseMiddleware',  # Serve static files
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
]

ROOT_URLCONF = 'learnhub_site.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
                'django.contrib.messages.context_processors.messages',
            ],
        },
    },
]

WSGI_APPLICATION = 'learnhub_site.wsgi.application'


# ==============================================================================
# DATABASE CONFIGURATION
# ==============================================================================
# Supports DATABASE_URL (Railway/Heroku), individual vars, or SQLite.
# Enrollment activation relies on SELECT ... FOR UPDATE, so production
# deployments should run on PostgreSQL.

import dj_database_url

DATABASE_URL = os.getenv('DATABASE_URL', '')
DB_ENGINE = os.getenv('DB_ENGINE', 'sqlite3')

if DATABASE_URL:
    DATABASES = {
        'default': dj_database_url.config(
            default=DATABASE_URL,
            conn_max_age=600,
            conn_health_checks=True,
        )
    }
elif DB_ENGINE == 'postgresql':
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.postgresql',
            'NAME': os.getenv('DB_NAME', 'learnhub'),
            'USER': os.getenv('DB_USER', 'postgres'),
            'PASSWORD': os.getenv('DB_PASSWORD', ''),
            'HOST': os.getenv('DB_HOST', 'localhost'),
            'PORT': os.getenv('DB_PORT', '5432'),
            'CONN_MAX_AGE': 600,  # Connection pooling
            'OPTIONS': {
                'sslmode': os.getenv('DB_SSLMODE', 'require'),
            },
        }
    }
else:
    # Default: SQLite for local development
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.sqlite3',
            'NAME': BASE_DIR / 'db.sqlite3',
        }
    }


# ==============================================================================
# FILE STORAGE CONFIGURATION
# ==============================================================================
# Local storage for development, S3/R2/DO Spaces for production.
# The "certificates" alias holds certificate templates and exported PDFs;
# its objects are public-read so verification links work without auth.

STORAGE_TYPE = os.getenv('STORAGE_TYPE', 'local')

if STORAGE_TYPE in ('s3', 'r2'):
    _S3_OPTIONS = {
        "access_key": os.getenv('AWS_ACCESS_KEY_ID', ''),
        "secret_key": os.getenv('AWS_SECRET_ACCESS_KEY', ''),
        "bucket_name": os.getenv('AWS_STORAGE_BUCKET_NAME', 'learnhub'),
        "region_name": os.getenv('AWS_S3_REGION_NAME', 'us-east-1'),
        # For DO Spaces or custom S3 endpoint:
        "endpoint_url": os.getenv('AWS_S3_ENDPOINT_URL', None),
    }
    STORAGES = {
        "default": {
            "BACKEND": "storages.backends.s3boto3.S3Boto3Storage",
            "OPTIONS": {
                **_S3_OPTIONS,
                "default_acl": "private",  # Files are private by default
                "file_overwrite": False,
            }
        },
        "certificates": {
            "BACKEND": "storages.backends.s3boto3.S3Boto3Storage",
            "OPTIONS": {
                **_S3_OPTIONS,
                "location": "certificates",
                "default_acl": "public-read",
                "querystring_auth": False,  # Stable public URLs
                "file_overwrite": True,
            }
        },
        "staticfiles": {
            "BACKEND": "storages.backends.s3boto3.S3StaticStorage",
            "OPTIONS": {
                **_S3_OPTIONS,
                "default_acl": "public-read",
            }
        },
    }
    AWS_S3_SIGNATURE_VERSION = 's3v4'
    AWS_QUERYSTRING_AUTH = True  # Signed URLs for private files
    AWS_QUERYSTRING_EXPIRE = 3600  # URLs valid for 1 hour
else:
    MEDIA_URL = '/media/'
    MEDIA_ROOT = BASE_DIR / 'media'
    STATIC_URL = 'static/'
    STATIC_ROOT = BASE_DIR / 'staticfiles'

    STORAGES = {
        "default": {
            "BACKEND": "django.core.files.storage.FileSystemStorage",
        },
        "certificates": {
            "BACKEND": "django.core.files.storage.FileSystemStorage",
            "OPTIONS": {
                "location": BASE_DIR / 'media' / 'certificates',
                "base_url": '/media/certificates/',
            }
        },
        "staticfiles": {
            "BACKEND": "whitenoise.storage.CompressedManifestStaticFilesStorage",
        },
    }


# ==============================================================================
# CELERY CONFIGURATION
# ==============================================================================

# For development: Run tasks synchronously without needing Redis/RabbitMQ
CELERY_TASK_ALWAYS_EAGER = os.getenv('CELERY_TASK_ALWAYS_EAGER', 'True').lower() == 'true'
CELERY_TASK_EAGER_PROPAGATES = True  # Propagate exceptions in eager mode

CELERY_BROKER_URL = os.getenv('CELERY_BROKER_URL', 'redis://localhost:6379/0')
CELERY_RESULT_BACKEND = os.getenv('CELERY_RESULT_BACKEND', 'redis://localhost:6379/1')

CELERY_ACCEPT_CONTENT = ['json']
CELERY_TASK_SERIALIZER = 'json'
CELERY_RESULT_SERIALIZER = 'json'
CELERY_TIMEZONE = 'UTC'
CELERY_TASK_TRACK_STARTED = True
CELERY_TASK_TIME_LIMIT = 10 * 60
CELERY_TASK_SOFT_TIME_LIMIT = 8 * 60
CELERY_BEAT_SCHEDULER = 'django_celery_beat.schedulers:DatabaseScheduler'

CELERY_TASK_ROUTES = {
    'enrollments.tasks.expire_lapsed_enrollments': {'queue': 'maintenance'},
}


# ==============================================================================
# CACHE & SESSION CONFIGURATION
# ==============================================================================

REDIS_URL = os.getenv('REDIS_URL', '')

if REDIS_URL:
    CACHES = {
        'default': {
            'BACKEND': 'django_redis.cache.RedisCache',
            'LOCATION': REDIS_URL,
            'OPTIONS': {
                'CLIENT_CLASS': 'django_redis.client.DefaultClient',
            }
        }
    }
    SESSION_ENGINE = 'django.contrib.sessions.backends.cache'
    SESSION_CACHE_ALIAS = 'default'
else:
    CACHES = {
        'default': {
            'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
            'LOCATION': 'learnhub-local',
        }
    }
    SESSION_ENGINE = 'django.contrib.sessions.backends.db'


# ==============================================================================
# PASSWORD VALIDATION
# ==============================================================================

AUTH_PASSWORD_VALIDATORS = [
    {
        'NAME': 'django.contrib.auth.password_validation.UserAttributeSimilarityValidator',
    },
    {
        'NAME': 'django.contrib.auth.password_validation.MinimumLengthValidator',
    },
    {
        'NAME': 'django.contrib.auth.password_validation.CommonPasswordValidator',
    },
    {
        'NAME': 'django.contrib.auth.password_validation.NumericPasswordValidator',
    },
]


# ==============================================================================
# INTERNATIONALIZATION
# ==============================================================================

LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'Asia/Kolkata'  # IST timezone
USE_I18N = True
USE_TZ = True


# ==============================================================================
# LOGGING CONFIGURATION
# ==============================================================================

LOGS_DIR = BASE_DIR / 'logs'
LOGS_DIR.mkdir(exist_ok=True)

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '{levelname} {asctime} {module} {process:d} {thread:d} {message}',
            'style': '{',
        },
        'simple': {
            'format': '{levelname} {asctime} {message}',
            'style': '{',
        },
    },
    'filters': {
        'require_debug_true': {
            '()': 'django.utils.log.RequireDebugTrue',
        },
    },
    'handlers': {
        'console': {
            'level': 'DEBUG',
            'filters': ['require_debug_true'],
            'class': 'logging.StreamHandler',
            'formatter': 'simple'
        },
        'file': {
            'level': 'INFO',
            'class': 'logging.FileHandler',
            'filename': LOGS_DIR / 'django.log',
            'formatter': 'verbose',
        },
    },
    'loggers': {
        'django': {
            'handlers': ['console', 'file'],
            'level': 'INFO',
        },
        'celery': {
            'handlers': ['console', 'file'],
            'level': 'INFO',
        },
        'core': {
            'handlers': ['console', 'file'],
            'level': 'DEBUG',
        },
        'payments': {
            'handlers': ['console', 'file'],
            'level': 'INFO',
        },
        'enrollments': {
            'handlers': ['console', 'file'],
            'level': 'INFO',
        },
        'certificates': {
            'handlers': ['console', 'file'],
            'level': 'INFO',
        },
    },
}


# ==============================================================================
# DEFAULT PRIMARY KEY
# ==============================================================================

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'


# ==============================================================================
# AUTHENTICATION SETTINGS
# ==============================================================================

LOGIN_URL = '/admin/login/'


# ==============================================================================
# RAZORPAY PAYMENT GATEWAY
# ==============================================================================

RAZORPAY_KEY_ID = os.getenv('RAZORPAY_KEY_ID', '')
RAZORPAY_KEY_SECRET = os.getenv('RAZORPAY_KEY_SECRET', '')
RAZORPAY_WEBHOOK_SECRET = os.getenv('RAZORPAY_WEBHOOK_SECRET', '')
RAZORPAY_SIGNATURE_HEADER = os.getenv('RAZORPAY_SIGNATURE_HEADER', 'X-Razorpay-Signature')


# ==============================================================================
# CERTIFICATES
# ==============================================================================

APP_BASE_URL = os.getenv('APP_BASE_URL', 'http://localhost:8000').rstrip('/')

# Dotted path of the class that copies, merges, exports and publishes
# certificate documents.
CERTIFICATE_DOCUMENT_BACKEND = os.getenv(
    'CERTIFICATE_DOCUMENT_BACKEND',
    'certificates.backends.docx_storage.DocxStorageBackend'
)
CERTIFICATE_EXTERNAL_TIMEOUT = int(os.getenv('CERTIFICATE_EXTERNAL_TIMEOUT', '60'))
# Seconds after which an unfinished certificate reservation may be taken over.
# Keep above the request timeout so a slow issuance is never resumed twice.
CERTIFICATE_RESERVATION_TIMEOUT = int(os.getenv('CERTIFICATE_RESERVATION_TIMEOUT', '900'))
CERTIFICATE_STORAGE_ALIAS = os.getenv('CERTIFICATE_STORAGE_ALIAS', 'certificates')

# Google Workspace backend (service account with domain-wide delegation)
GOOGLE_SERVICE_ACCOUNT_KEY = os.getenv('GOOGLE_SERVICE_ACCOUNT_KEY', '')
GOOGLE_WORKSPACE_ADMIN_EMAIL = os.getenv('GOOGLE_WORKSPACE_ADMIN_EMAIL', '')

# DOCX backend
LIBREOFFICE_BINARY = os.getenv('LIBREOFFICE_BINARY', 'soffice')
