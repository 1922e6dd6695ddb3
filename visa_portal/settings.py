"""
Django settings for the visa_portal project.

Values come from the environment; a .env file next to manage.py is loaded
first when present.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent

load_dotenv(BASE_DIR / '.env')


def env_bool(name, default=False):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


# ======================
# Core
# ======================

SECRET_KEY = os.environ.get(
    'DJANGO_SECRET_KEY', 'django-insecure-visa-portal-development-key')

DEBUG = env_bool('DJANGO_DEBUG', False)

ALLOWED_HOSTS = [
    host.strip()
    for host in os.environ.get('DJANGO_ALLOWED_HOSTS', 'localhost,127.0.0.1').split(',')
    if host.strip()
]

INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',

    'visas',
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

ROOT_URLCONF = 'visa_portal.urls'

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

WSGI_APPLICATION = 'visa_portal.wsgi.application'

# ======================
# Database & Sessions
# ======================

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': os.environ.get('DATABASE_PATH', str(BASE_DIR / 'db.sqlite3')),
    }
}

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

# Drafts live in the session until the final submit
SESSION_ENGINE = 'django.contrib.sessions.backends.db'

LOGIN_URL = '/admin/login/'

# ======================
# i18n
# ======================

LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'UTC'
USE_I18N = True
USE_TZ = True

# ======================
# Static & Media
# ======================

STATIC_URL = 'static/'
STATIC_ROOT = BASE_DIR / 'staticfiles'

MEDIA_URL = os.environ.get('MEDIA_URL', '/media/')
MEDIA_ROOT = os.environ.get('MEDIA_ROOT', str(BASE_DIR / 'media'))

# "default" is the object store the supporting documents are written to
STORAGES = {
    'default': {
        'BACKEND': os.environ.get(
            'VISA_STORAGE_BACKEND', 'django.core.files.storage.FileSystemStorage'),
    },
    'staticfiles': {
        'BACKEND': 'django.contrib.staticfiles.storage.StaticFilesStorage',
    },
}

# ======================
# Visa workflow
# ======================

VISA_DOCUMENT_MAX_SIZE_MB = int(os.environ.get('VISA_DOCUMENT_MAX_SIZE_MB', 5))

VISA_DOCUMENT_ALLOWED_TYPES = {
    'application/pdf': ('.pdf',),
    'image/jpeg': ('.jpg', '.jpeg'),
    'image/png': ('.png',),
}

VISA_DOCUMENT_UPLOAD_PREFIX = os.environ.get(
    'VISA_DOCUMENT_UPLOAD_PREFIX', 'visa-documents')

VISA_UPLOAD_CHUNK_SIZE = int(os.environ.get('VISA_UPLOAD_CHUNK_SIZE', 64 * 1024))

# ======================
# Logging
# ======================

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '{asctime} {levelname} {name}: {message}',
            'style': '{',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'verbose',
        },
    },
    'root': {
        'handlers': ['console'],
        'level': 'WARNING',
    },
    'loggers': {
        'visas': {
            'handlers': ['console'],
            'level': os.environ.get('VISA_LOG_LEVEL', 'INFO'),
            'propagate': False,
        },
    },
}
