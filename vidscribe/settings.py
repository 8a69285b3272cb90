"""
Django settings for vidscribe project.

Every VIDSCRIBE_* value can be overridden from the environment.
"""

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent


def env_bool(name, default=False):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.lower() in ('1', 'true', 'yes', 'on')


def env_int(name, default):
    value = os.environ.get(name)
    if value in (None, ''):
        return default
    return int(value)


SECRET_KEY = os.environ.get('DJANGO_SECRET_KEY', 'django-insecure-vidscribe-dev-key')

DEBUG = env_bool('DJANGO_DEBUG', True)

ALLOWED_HOSTS = [h for h in os.environ.get('DJANGO_ALLOWED_HOSTS', '*').split(',') if h]

INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
    'huey.contrib.djhuey',
    'extraction',
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

ROOT_URLCONF = 'vidscribe.urls'

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

WSGI_APPLICATION = 'vidscribe.wsgi.application'

DATA_DIR = Path(os.environ.get('VIDSCRIBE_DATA_DIR', BASE_DIR / 'data'))
DATA_DIR.mkdir(parents=True, exist_ok=True)

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': os.environ.get('VIDSCRIBE_DB_PATH', DATA_DIR / 'db.sqlite3'),
    }
}

AUTH_PASSWORD_VALIDATORS = [
    {'NAME': 'django.contrib.auth.password_validation.UserAttributeSimilarityValidator'},
    {'NAME': 'django.contrib.auth.password_validation.MinimumLengthValidator'},
    {'NAME': 'django.contrib.auth.password_validation.CommonPasswordValidator'},
    {'NAME': 'django.contrib.auth.password_validation.NumericPasswordValidator'},
]

LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'UTC'
USE_I18N = True
USE_TZ = True

STATIC_URL = 'static/'
STATIC_ROOT = DATA_DIR / 'static'

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

# Huey task queue
HUEY = {
    'huey_class': 'huey.SqliteHuey',
    'name': 'vidscribe',
    'filename': str(DATA_DIR / 'huey.sqlite3'),
    'immediate': env_bool('VIDSCRIBE_HUEY_IMMEDIATE', False),
    'consumer': {
        'workers': env_int('VIDSCRIBE_HUEY_WORKERS', 2),
        'worker_type': 'thread',
    },
}

# Per-task log files
VIDSCRIBE_LOG_DIR = Path(os.environ.get('VIDSCRIBE_LOG_DIR', DATA_DIR / 'logs'))

# Credit costs per output kind
VIDSCRIBE_COST_CAPTIONS = env_int('VIDSCRIBE_COST_CAPTIONS', 10)
VIDSCRIBE_COST_MEDIA_FILE = env_int('VIDSCRIBE_COST_MEDIA_FILE', 15)

# When a free trial is available and the balance also covers the cost,
# spend the free trial instead of credits
VIDSCRIBE_PREFER_FREE_TRIAL = env_bool('VIDSCRIBE_PREFER_FREE_TRIAL', False)

# Plan limits
VIDSCRIBE_MAX_ACTIVE_TASKS = env_int('VIDSCRIBE_MAX_ACTIVE_TASKS', 2)
VIDSCRIBE_FREE_TRIAL_TASKS = env_int('VIDSCRIBE_FREE_TRIAL_TASKS', 1)
VIDSCRIBE_MAX_DURATION_SECONDS = env_int('VIDSCRIBE_MAX_DURATION_SECONDS', 3 * 60 * 60)

# Watchdog
VIDSCRIBE_WATCHDOG_TIMEOUT_SECONDS = env_int('VIDSCRIBE_WATCHDOG_TIMEOUT_SECONDS', 120)
VIDSCRIBE_HEARTBEAT_INTERVAL_SECONDS = env_int('VIDSCRIBE_HEARTBEAT_INTERVAL_SECONDS', 15)

# Dispatch strategies, tried in this order
VIDSCRIBE_DISPATCH_ORDER = os.environ.get(
    'VIDSCRIBE_DISPATCH_ORDER', 'continuation,queue,trigger,timer'
).split(',')
VIDSCRIBE_CONTINUATION_HOOK = os.environ.get('VIDSCRIBE_CONTINUATION_HOOK', '')
VIDSCRIBE_QUEUE_ENABLED = env_bool('VIDSCRIBE_QUEUE_ENABLED', True)
VIDSCRIBE_QUEUE_RETRIES = env_int('VIDSCRIBE_QUEUE_RETRIES', 3)
VIDSCRIBE_PROCESS_INTERNAL_URL = os.environ.get('VIDSCRIBE_PROCESS_INTERNAL_URL', '')
VIDSCRIBE_INTERNAL_SECRET = os.environ.get('VIDSCRIBE_INTERNAL_SECRET', '')
VIDSCRIBE_TRIGGER_TIMEOUT_SECONDS = float(os.environ.get('VIDSCRIBE_TRIGGER_TIMEOUT_SECONDS', '2'))
VIDSCRIBE_TIMER_DELAY_SECONDS = float(os.environ.get('VIDSCRIBE_TIMER_DELAY_SECONDS', '0.1'))

# Extraction providers: primary first, backup second
VIDSCRIBE_RAPIDAPI_KEY = os.environ.get('VIDSCRIBE_RAPIDAPI_KEY', '')
VIDSCRIBE_YTDLP_PROXY = os.environ.get('VIDSCRIBE_YTDLP_PROXY', '')
VIDSCRIBE_PROVIDERS = {
    'primary': {
        'backend': os.environ.get('VIDSCRIBE_PRIMARY_PROVIDER', 'rapidapi'),
        'name': 'primary',
        'host': os.environ.get('VIDSCRIBE_PRIMARY_HOST', 'youtube-video-summarizer-gpt-ai.p.rapidapi.com'),
        'timeout': env_int('VIDSCRIBE_PRIMARY_TIMEOUT_SECONDS', 15),
    },
    'backup': {
        'backend': os.environ.get('VIDSCRIBE_BACKUP_PROVIDER', 'ytdlp'),
        'name': 'backup',
        'host': os.environ.get('VIDSCRIBE_BACKUP_HOST', ''),
        'timeout': env_int('VIDSCRIBE_BACKUP_TIMEOUT_SECONDS', 60),
    },
}

# Result cache
VIDSCRIBE_CACHE_TTL_HOURS = env_int('VIDSCRIBE_CACHE_TTL_HOURS', 12)

# Storage service
VIDSCRIBE_STORAGE_UPLOAD_URL = os.environ.get('VIDSCRIBE_STORAGE_UPLOAD_URL', '')
VIDSCRIBE_STORAGE_DELETE_URL = os.environ.get('VIDSCRIBE_STORAGE_DELETE_URL', '')
# Base URL stored object keys are served from
VIDSCRIBE_STORAGE_PUBLIC_URL = os.environ.get('VIDSCRIBE_STORAGE_PUBLIC_URL', '')
VIDSCRIBE_STORAGE_PLATFORMS = os.environ.get('VIDSCRIBE_STORAGE_PLATFORMS', 'tiktok').split(',')
VIDSCRIBE_STORAGE_EXPIRY_HOURS = env_int('VIDSCRIBE_STORAGE_EXPIRY_HOURS', 24)
VIDSCRIBE_ORIGINAL_EXPIRY_HOURS = env_int('VIDSCRIBE_ORIGINAL_EXPIRY_HOURS', 2)
# Expired storage objects deleted per purge run
VIDSCRIBE_STORAGE_PURGE_BATCH = env_int('VIDSCRIBE_STORAGE_PURGE_BATCH', 100)

# Text generation (Ollama)
VIDSCRIBE_OLLAMA_HOST = os.environ.get('VIDSCRIBE_OLLAMA_HOST', 'http://localhost:11434')
VIDSCRIBE_OLLAMA_MODEL = os.environ.get('VIDSCRIBE_OLLAMA_MODEL', 'qwen2.5:1.5b')
VIDSCRIBE_OLLAMA_TIMEOUT_SECONDS = env_int('VIDSCRIBE_OLLAMA_TIMEOUT_SECONDS', 120)
