"""
Django settings for registre_locatif project.

Secrets, debug and hosts come from the environment; the LOYERS_* settings
drive the ledger itself.
"""
import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = os.environ.get('DJANGO_SECRET_KEY', 'django-insecure-registre-locatif-dev')

DEBUG = os.environ.get('DJANGO_DEBUG', '1') == '1'

ALLOWED_HOSTS = [h for h in os.environ.get('DJANGO_ALLOWED_HOSTS', 'localhost,127.0.0.1').split(',') if h]


# Application definition

INSTALLED_APPS = [
    'jazzmin',
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
    'rest_framework',
    'loyers',
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

ROOT_URLCONF = 'registre_locatif.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
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

WSGI_APPLICATION = 'registre_locatif.wsgi.application'


# Database

DATABASES = {
    'default': {
        'ENGINE': os.environ.get('DJANGO_DB_ENGINE', 'django.db.backends.sqlite3'),
        'NAME': os.environ.get('DJANGO_DB_NAME', str(BASE_DIR / 'db.sqlite3')),
        'USER': os.environ.get('DJANGO_DB_USER', ''),
        'PASSWORD': os.environ.get('DJANGO_DB_PASSWORD', ''),
        'HOST': os.environ.get('DJANGO_DB_HOST', ''),
        'PORT': os.environ.get('DJANGO_DB_PORT', ''),
    }
}


# Password validation

AUTH_PASSWORD_VALIDATORS = [
    {'NAME': 'django.contrib.auth.password_validation.UserAttributeSimilarityValidator'},
    {'NAME': 'django.contrib.auth.password_validation.MinimumLengthValidator'},
    {'NAME': 'django.contrib.auth.password_validation.CommonPasswordValidator'},
    {'NAME': 'django.contrib.auth.password_validation.NumericPasswordValidator'},
]


# Internationalization

LANGUAGE_CODE = 'fr-fr'

TIME_ZONE = 'Europe/Paris'

USE_I18N = True

USE_TZ = True


# Static files (CSS, JavaScript, Images)

STATIC_URL = 'static/'
STATIC_ROOT = BASE_DIR / 'staticfiles'

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'


# Django REST framework

REST_FRAMEWORK = {
    'DEFAULT_PERMISSION_CLASSES': [
        'rest_framework.permissions.IsAuthenticated',
    ],
    'COERCE_DECIMAL_TO_STRING': True,
}


# Jazzmin (thème de l'administration)

JAZZMIN_SETTINGS = {
    'site_title': "Registre Locatif",
    'site_header': "Registre Locatif",
    'site_brand': "Loyers",
    'welcome_sign': "Registre des loyers et des charges",
    'search_model': ['loyers.Bail', 'loyers.Locataire'],
    'order_with_respect_to': ['loyers.Bail', 'loyers.Echeance', 'loyers.Quittance', 'loyers.Charge'],
    'icons': {
        'loyers.Bail': 'fas fa-file-signature',
        'loyers.Echeance': 'fas fa-calendar-alt',
        'loyers.Paiement': 'fas fa-euro-sign',
        'loyers.Quittance': 'fas fa-receipt',
        'loyers.Charge': 'fas fa-tint',
        'loyers.Evenement': 'fas fa-paper-plane',
    },
}


# Logging

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'simple': {
            'format': '{asctime} {levelname} {name}: {message}',
            'style': '{',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'simple',
        },
    },
    'root': {
        'handlers': ['console'],
        'level': 'WARNING',
    },
    'loggers': {
        'loyers': {
            'handlers': ['console'],
            'level': os.environ.get('LOYERS_LOG_LEVEL', 'INFO'),
            'propagate': False,
        },
    },
}


# Registre locatif

# Unité d'arrondi des parts de charges ('1' = unité entière, '0.01' = centime)
LOYERS_UNITE_ARRONDI = os.environ.get('LOYERS_UNITE_ARRONDI', '1')

LOYERS_PREFIXE_QUITTANCE = os.environ.get('LOYERS_PREFIXE_QUITTANCE', 'QUI')

# Gestionnaires appelés après commit pour chaque événement sortant
LOYERS_GESTIONNAIRES_EVENEMENTS = [
    'loyers.evenements.journaliser',
]
