"""
Base settings for stockworks project.
Shared between local and cloud deployments.
"""

from pathlib import Path
import os

from django.urls import reverse_lazy

# Build paths inside the project like this: BASE_DIR / 'subdir'.
BASE_DIR = Path(__file__).resolve().parent.parent.parent


# SECURITY WARNING: keep the secret key used in production secret!
SECRET_KEY = os.getenv('SECRET_KEY', 'django-insecure-x3v!k0d7q^stockworks-dev-only-2c@9r$w1m#e8p')

# SECURITY WARNING: don't run with debug turned on in production!
DEBUG = os.getenv('DEBUG', 'True').lower() == 'true'

ALLOWED_HOSTS = os.getenv('ALLOWED_HOSTS', '*').split(',')


# Application definition
INSTALLED_APPS = [
    "unfold",
    "unfold.contrib.filters",
    "unfold.contrib.forms",
    "unfold.contrib.inlines",
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
    'stock',
    'corsheaders',
    'rest_framework',
    'drf_spectacular',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'corsheaders.middleware.CorsMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
]

ROOT_URLCONF = 'stockworks.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [BASE_DIR / 'templates'],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.debug',
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
                'django.contrib.messages.context_processors.messages',
            ],
        },
    },
]

WSGI_APPLICATION = 'stockworks.wsgi.application'


# Password validation
AUTH_PASSWORD_VALIDATORS = [
    {'NAME': 'django.contrib.auth.password_validation.UserAttributeSimilarityValidator'},
    {'NAME': 'django.contrib.auth.password_validation.MinimumLengthValidator'},
    {'NAME': 'django.contrib.auth.password_validation.CommonPasswordValidator'},
    {'NAME': 'django.contrib.auth.password_validation.NumericPasswordValidator'},
]


# Internationalization
LANGUAGE_CODE = 'en-us'
TIME_ZONE = os.getenv('TIME_ZONE', 'UTC')
USE_I18N = True
USE_TZ = True


# Static files
STATIC_URL = 'static/'
STATIC_ROOT = BASE_DIR / 'staticfiles'


# CORS
CORS_ALLOW_ALL_ORIGINS = True


# Default primary key field type
DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'


# =============================================================================
# STOCK LEDGER
# =============================================================================
STOCK_LEDGER = {
    # Automatic re-validations after the ledger rejects a production commit
    'COMMIT_RETRIES': int(os.getenv('STOCK_COMMIT_RETRIES', '1')),
    # Stored precision of every quantity column
    'QUANTITY_PLACES': 4,
    'DEFAULT_UNIT_OF_MEASURE': 'Nos',
    'MAX_PAGE_SIZE': 100,
}


# Unfold Admin Configuration
UNFOLD = {
    "SITE_TITLE": "Stockworks Admin",
    "SITE_HEADER": "Stockworks",
    "SITE_URL": "/",
    "SITE_SYMBOL": "inventory",

    "SIDEBAR": {
        "show_search": True,
        "show_all_applications": True,
        "navigation": [
            {
                "title": "Dashboard",
                "separator": False,
                "items": [
                    {
                        "title": "Dashboard",
                        "icon": "dashboard",
                        "link": reverse_lazy("admin:index"),
                    },
                ],
            },
            {
                "title": "Catalog",
                "separator": True,
                "items": [
                    {
                        "title": "Items",
                        "icon": "inventory_2",
                        "link": reverse_lazy("admin:stock_item_changelist"),
                    },
                    {
                        "title": "Warehouses",
                        "icon": "warehouse",
                        "link": reverse_lazy("admin:stock_warehouse_changelist"),
                    },
                    {
                        "title": "Bills of Materials",
                        "icon": "account_tree",
                        "link": reverse_lazy("admin:stock_billofmaterials_changelist"),
                    },
                ],
            },
            {
                "title": "Ledger",
                "separator": True,
                "items": [
                    {
                        "title": "Stock Balances",
                        "icon": "balance",
                        "link": reverse_lazy("admin:stock_stockbalance_changelist"),
                    },
                    {
                        "title": "Stock Movements",
                        "icon": "swap_horiz",
                        "link": reverse_lazy("admin:stock_stockmovement_changelist"),
                    },
                    {
                        "title": "Productions",
                        "icon": "precision_manufacturing",
                        "link": reverse_lazy("admin:stock_production_changelist"),
                    },
                ],
            },
        ],
    },
}

REST_FRAMEWORK = {
    'DEFAULT_SCHEMA_CLASS': 'drf_spectacular.openapi.AutoSchema',

    'DEFAULT_AUTHENTICATION_CLASSES': [
        'rest_framework.authentication.SessionAuthentication',
    ],

    'DEFAULT_RENDERER_CLASSES': [
        'rest_framework.renderers.JSONRenderer',
    ],
}

SPECTACULAR_SETTINGS = {
    'TITLE': 'Stockworks',
    'DESCRIPTION': 'Inventory ledger and production API',
    'VERSION': '1.0.0',
    'SERVE_INCLUDE_SCHEMA': False,
}
