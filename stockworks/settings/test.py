"""
Test settings.

Usage:
    pytest   (DJANGO_SETTINGS_MODULE is set in pyproject.toml)

Set TEST_DB_ENGINE=postgresql with the DB_* variables to run the
row-lock race tests against PostgreSQL.
"""

from .base import *

DEPLOYMENT_MODE = 'test'

DEBUG = False
SECRET_KEY = 'stockworks-test-key'

if os.getenv('TEST_DB_ENGINE') == 'postgresql':
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.postgresql',
            'NAME': os.getenv('DB_NAME', 'stockworks'),
            'USER': os.getenv('DB_USER', 'stockworks'),
            'PASSWORD': os.getenv('DB_PASSWORD', ''),
            'HOST': os.getenv('DB_HOST', '127.0.0.1'),
            'PORT': os.getenv('DB_PORT', '5432'),
        }
    }
else:
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.sqlite3',
            'NAME': ':memory:',
        }
    }

PASSWORD_HASHERS = ['django.contrib.auth.hashers.MD5PasswordHasher']

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '[{asctime}] {levelname} {name}: {message}',
            'style': '{',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'verbose',
        },
    },
    'loggers': {
        'stock': {
            'handlers': ['console'],
            'level': 'WARNING',
            'propagate': True,
        },
    },
}
