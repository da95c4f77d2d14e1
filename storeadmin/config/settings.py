"""
Django settings for the store admin panel backend.

Every deployment-specific value is read from the environment so the same
settings module serves development, CI and production.
"""
import os
from datetime import timedelta
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent.parent


def env_bool(name, default=False):
    return os.getenv(name, str(default)).strip().lower() in ('1', 'true', 'yes', 'on')


def env_list(name, default=''):
    return [item.strip() for item in os.getenv(name, default).split(',') if item.strip()]


SECRET_KEY = os.getenv('DJANGO_SECRET_KEY', 'django-insecure-storeadmin-dev-key-change-me')

DEBUG = env_bool('DJANGO_DEBUG', True)

ALLOWED_HOSTS = env_list('DJANGO_ALLOWED_HOSTS', '*')


# Application definition

INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
    'rest_framework',
    'rest_framework_simplejwt',
    'django_filters',
    'storeadmin.core',
    'storeadmin.sales',
    'storeadmin.reports',
    'storeadmin.notifications',
    'storeadmin.system',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
]

ROOT_URLCONF = 'storeadmin.config.urls'

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

WSGI_APPLICATION = 'storeadmin.config.wsgi.application'


# Database
# DB_ENGINE selects sqlite (default), mysql or postgresql

DB_ENGINE = os.getenv('DB_ENGINE', 'sqlite').lower()

if DB_ENGINE == 'mysql':
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.mysql',
            'NAME': os.getenv('DB_NAME', 'admin_panel'),
            'USER': os.getenv('DB_USER', 'root'),
            'PASSWORD': os.getenv('DB_PASSWORD', ''),
            'HOST': os.getenv('DB_HOST', 'localhost'),
            'PORT': os.getenv('DB_PORT', '3306'),
            'OPTIONS': {'charset': 'utf8mb4'},
        }
    }
elif DB_ENGINE in ('postgres', 'postgresql'):
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.postgresql',
            'NAME': os.getenv('DB_NAME', 'admin_panel'),
            'USER': os.getenv('DB_USER', 'postgres'),
            'PASSWORD': os.getenv('DB_PASSWORD', ''),
            'HOST': os.getenv('DB_HOST', 'localhost'),
            'PORT': os.getenv('DB_PORT', '5432'),
        }
    }
else:
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.sqlite3',
            'NAME': os.getenv('DB_NAME', str(BASE_DIR / 'db.sqlite3')),
        }
    }


# Cache: Redis when REDIS_URL is set, local memory otherwise

REDIS_URL = os.getenv('REDIS_URL', '')

if REDIS_URL:
    CACHES = {
        'default': {
            'BACKEND': 'django_redis.cache.RedisCache',
            'LOCATION': REDIS_URL,
            'OPTIONS': {
                'CLIENT_CLASS': 'django_redis.client.DefaultClient',
                'IGNORE_EXCEPTIONS': True,
            },
            'KEY_PREFIX': 'storeadmin',
        }
    }
else:
    CACHES = {
        'default': {
            'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
            'LOCATION': 'storeadmin-default',
        }
    }


AUTH_USER_MODEL = 'core.User'

AUTH_PASSWORD_VALIDATORS = [
    {'NAME': 'django.contrib.auth.password_validation.UserAttributeSimilarityValidator'},
    {'NAME': 'django.contrib.auth.password_validation.MinimumLengthValidator'},
    {'NAME': 'django.contrib.auth.password_validation.CommonPasswordValidator'},
    {'NAME': 'django.contrib.auth.password_validation.NumericPasswordValidator'},
]

LANGUAGE_CODE = 'en-us'
TIME_ZONE = os.getenv('TIME_ZONE', 'UTC')
USE_I18N = True
USE_TZ = True

STATIC_URL = 'static/'
STATIC_ROOT = BASE_DIR / 'staticfiles'

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'


# REST framework

REST_FRAMEWORK = {
    'DEFAULT_AUTHENTICATION_CLASSES': (
        'rest_framework_simplejwt.authentication.JWTAuthentication',
    ),
    'DEFAULT_PERMISSION_CLASSES': (
        'rest_framework.permissions.IsAuthenticated',
    ),
    'DEFAULT_FILTER_BACKENDS': (
        'django_filters.rest_framework.DjangoFilterBackend',
    ),
    'EXCEPTION_HANDLER': 'storeadmin.core.exceptions.api_exception_handler',
    # 'format' is a report query parameter, not a renderer override
    'URL_FORMAT_OVERRIDE': None,
}

SIMPLE_JWT = {
    'ACCESS_TOKEN_LIFETIME': timedelta(minutes=int(os.getenv('JWT_ACCESS_MINUTES', '60'))),
    'REFRESH_TOKEN_LIFETIME': timedelta(days=int(os.getenv('JWT_REFRESH_DAYS', '7'))),
    'AUTH_HEADER_TYPES': ('Bearer',),
}


# Application

APP_NAME = 'E-Commerce Admin Panel'
APP_VERSION = '1.0.0'
APP_URL = os.getenv('APP_URL', 'http://localhost:8000')
API_PREFIX = '/api/v1'

FEATURES = {
    'userRegistration': env_bool('FEATURE_USER_REGISTRATION', True),
    'forgotPassword': True,
    'twoFactorAuth': False,
    'darkMode': True,
    'multiLanguage': False,
    'analytics': True,
    'exportReports': env_bool('FEATURE_EXPORT_REPORTS', True),
}

DEFAULT_ADMIN_USERNAME = os.getenv('DEFAULT_ADMIN_USERNAME', 'superadmin')
DEFAULT_ADMIN_EMAIL = os.getenv('DEFAULT_ADMIN_EMAIL', 'superadmin@example.com')
DEFAULT_ADMIN_PASSWORD = os.getenv('DEFAULT_ADMIN_PASSWORD', 'admin123')


# Storage

STORAGE_ROOT = Path(os.getenv('STORAGE_ROOT', str(BASE_DIR / 'storage')))

FILE_STORAGE = {
    'UPLOAD_ROOT': os.getenv('UPLOAD_ROOT', str(STORAGE_ROOT / 'uploads')),
    'URL_PREFIX': os.getenv('UPLOAD_URL_PREFIX', '/uploads'),
    'MAX_UPLOAD_SIZE': 5 * 1024 * 1024,
}

REPORT_TEMP_DIR = os.getenv('REPORT_TEMP_DIR', str(STORAGE_ROOT / 'temp'))
REPORT_PDF_MAX_ROWS = 100
REPORT_PDF_ROWS_PER_PAGE = 5
REPORTS_CACHE_TTL = int(os.getenv('REPORTS_CACHE_TTL', '600'))

BACKUP_DIR = os.getenv('BACKUP_DIR', str(STORAGE_ROOT / 'backups'))

NOTIFICATION_HISTORY_SIZE = 1000


# E-mail

EMAIL_ENABLED = env_bool('EMAIL_ENABLED', False)
EMAIL_BACKEND = os.getenv('EMAIL_BACKEND', 'django.core.mail.backends.smtp.EmailBackend')
EMAIL_HOST = os.getenv('EMAIL_HOST', 'smtp.mailtrap.io')
EMAIL_PORT = int(os.getenv('EMAIL_PORT', '2525'))
EMAIL_HOST_USER = os.getenv('EMAIL_USER', '')
EMAIL_HOST_PASSWORD = os.getenv('EMAIL_PASSWORD', '')
EMAIL_USE_TLS = env_bool('EMAIL_USE_TLS', False)
DEFAULT_FROM_EMAIL = os.getenv('EMAIL_FROM', 'admin@example.com')


# SMS

SMS = {
    'ENABLED': env_bool('SMS_ENABLED', False),
    'PROVIDER': os.getenv('SMS_PROVIDER', 'twilio'),
    'FROM': os.getenv('SMS_FROM', ''),
    'ACCOUNT_SID': os.getenv('SMS_ACCOUNT_SID', ''),
    'AUTH_TOKEN': os.getenv('SMS_AUTH_TOKEN', ''),
    'API_KEY': os.getenv('SMS_API_KEY', ''),
    'API_SECRET': os.getenv('SMS_API_SECRET', ''),
    'DEFAULT_COUNTRY_CODE': os.getenv('SMS_DEFAULT_COUNTRY_CODE', '1'),
    'TIMEOUT': 10,
}


# Logging

LOG_DIR = Path(os.getenv('LOG_DIR', str(STORAGE_ROOT / 'logs')))
LOG_DIR.mkdir(parents=True, exist_ok=True)
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '{asctime} {levelname} {name}: {message}',
            'datefmt': '%Y-%m-%d %H:%M:%S',
            'style': '{',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'verbose',
        },
        'combined_file': {
            'class': 'logging.handlers.RotatingFileHandler',
            'filename': str(LOG_DIR / 'combined.log'),
            'maxBytes': 10 * 1024 * 1024,
            'backupCount': 5,
            'formatter': 'verbose',
        },
        'error_file': {
            'class': 'logging.handlers.RotatingFileHandler',
            'filename': str(LOG_DIR / 'error.log'),
            'maxBytes': 10 * 1024 * 1024,
            'backupCount': 5,
            'formatter': 'verbose',
            'level': 'ERROR',
        },
    },
    'loggers': {
        'django': {
            'handlers': ['console'],
            'level': 'INFO',
        },
        'storeadmin': {
            'handlers': ['console', 'combined_file', 'error_file'],
            'level': LOG_LEVEL,
            'propagate': False,
        },
    },
}
