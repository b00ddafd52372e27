"""
Django settings for the DocuSearch backend.
"""
import os
import re
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Build paths inside the project like this: BASE_DIR / 'subdir'.
BASE_DIR = Path(__file__).resolve().parent.parent

# SECURITY WARNING: keep the secret key used in production secret!
SECRET_KEY = os.getenv('SECRET_KEY', 'django-insecure-dev-key-change-in-production')

# SECURITY WARNING: don't run with debug turned on in production!
DEBUG = os.getenv('DEBUG', 'False').lower() in ('true', '1', 'yes')

ALLOWED_HOSTS = [
    h.strip() for h in os.getenv('ALLOWED_HOSTS', 'localhost,127.0.0.1,testserver').split(',')
]

# Application definition
INSTALLED_APPS = [
    'django.contrib.contenttypes',
    'django.contrib.auth',
    'apps.docs',
    'apps.indexing',
    'apps.rag',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.middleware.common.CommonMiddleware',
]

ROOT_URLCONF = 'config.urls'

# Routes have no trailing slash
APPEND_SLASH = False

TEMPLATES = []

WSGI_APPLICATION = 'config.wsgi.application'
ASGI_APPLICATION = 'config.asgi.application'

# Database
# Using environment variable for database URL
DATABASE_URL = os.getenv('DATABASE_URL', '')
DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': BASE_DIR / 'db.sqlite3',
    }
}
if DATABASE_URL:
    match = re.match(
        r'postgres(?:ql)?://(?P<user>[^:]+):(?P<password>[^@]+)@(?P<host>[^:]+):(?P<port>\d+)/(?P<name>.+)',
        DATABASE_URL
    )
    if match:
        DATABASES = {
            'default': {
                'ENGINE': 'django.db.backends.postgresql',
                'NAME': match.group('name'),
                'USER': match.group('user'),
                'PASSWORD': match.group('password'),
                'HOST': match.group('host'),
                'PORT': match.group('port'),
            }
        }

# Password validation (minimal for API-only backend)
AUTH_PASSWORD_VALIDATORS = []

# Internationalization
LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'UTC'
USE_I18N = True
USE_TZ = True

# Default primary key field type
DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

# =============================================================================
# Embedding service (Cohere v2 embed API)
# =============================================================================
EMBEDDING_BASE_URL = os.getenv('EMBEDDING_BASE_URL', 'https://api.cohere.com')
EMBEDDING_API_KEY = os.getenv('EMBEDDING_API_KEY', os.getenv('COHERE_API_KEY', ''))
EMBEDDING_MODEL = os.getenv('EMBEDDING_MODEL', 'embed-english-v3.0')
EMBEDDING_TIMEOUT = int(os.getenv('EMBEDDING_TIMEOUT', '60'))

# Provider accepts at most 96 inputs per request
EMBEDDING_BATCH_SIZE = int(os.getenv('EMBEDDING_BATCH_SIZE', '90'))

# Characters sent per input; stored chunk text is never truncated
EMBEDDING_MAX_INPUT_CHARS = int(os.getenv('EMBEDDING_MAX_INPUT_CHARS', '4000'))

# Seconds /readyz reuses the last embedding service check
EMBEDDING_HEALTH_CACHE_TTL = int(os.getenv('EMBEDDING_HEALTH_CACHE_TTL', '60'))

# =============================================================================
# Generation service
# =============================================================================
# 'groq' (OpenAI-compatible chat completions) or 'ollama' for local runs
LLM_PROVIDER = os.getenv('LLM_PROVIDER', 'groq')
GROQ_BASE_URL = os.getenv('GROQ_BASE_URL', 'https://api.groq.com/openai/v1')
GROQ_API_KEY = os.getenv('GROQ_API_KEY', '')
LLM_MODEL = os.getenv('LLM_MODEL', 'llama-3.1-8b-instant')

OLLAMA_BASE_URL = os.getenv('OLLAMA_BASE_URL', 'http://ollama:11434')
OLLAMA_CHAT_MODEL = os.getenv('OLLAMA_CHAT_MODEL', 'llama3.2')

LLM_TIMEOUT = int(os.getenv('LLM_TIMEOUT', '120'))

# =============================================================================
# Indexing
# =============================================================================
CHUNK_SIZE = int(os.getenv('CHUNK_SIZE', '2000'))
CHUNK_OVERLAP = int(os.getenv('CHUNK_OVERLAP', '200'))

# Seconds between polls when the job queue is empty
WORKER_POLL_INTERVAL = float(os.getenv('WORKER_POLL_INTERVAL', '2.0'))
WORKER_HEARTBEAT_FILE = os.getenv('WORKER_HEARTBEAT_FILE', '/tmp/worker_heartbeat')

# RUNNING jobs that have not progressed for this long are requeued when a
# worker starts
WORKER_STALE_JOB_SECONDS = int(os.getenv('WORKER_STALE_JOB_SECONDS', '1800'))

# =============================================================================
# File Upload Configuration
# =============================================================================
# Root directory for uploaded files
UPLOAD_ROOT = Path(os.getenv('UPLOAD_ROOT', '/data/uploads'))

# Maximum file size in bytes (50MB default)
MAX_UPLOAD_SIZE = int(os.getenv('MAX_UPLOAD_SIZE', 50 * 1024 * 1024))

# Allowed MIME types for upload
ALLOWED_CONTENT_TYPES = [
    'application/pdf',
    'text/plain',
    'text/markdown',
    # Some systems use these for markdown
    'text/x-markdown',
]

# Allowed file extensions (used as secondary check)
ALLOWED_EXTENSIONS = ['.pdf', '.txt', '.md', '.markdown']

# =============================================================================
# Logging
# =============================================================================
LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '{levelname} {asctime} {module} {message}',
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
        'level': 'INFO',
    },
    'loggers': {
        'apps.indexing': {
            'handlers': ['console'],
            'level': os.getenv('INDEXING_LOG_LEVEL', 'INFO'),
            'propagate': False,
        },
        'apps.rag': {
            'handlers': ['console'],
            'level': os.getenv('RAG_LOG_LEVEL', 'INFO'),
            'propagate': False,
        },
    },
}
