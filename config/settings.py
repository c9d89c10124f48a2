"""
Django settings for the RandCash claim escrow backend.

All deploy-time values come from the environment (or a .env file) through
python-decouple.
"""
from pathlib import Path

from decouple import config, Csv

from .logging import LOGGING  # noqa: F401

BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = config('SECRET_KEY', default='randcash-insecure-dev-key')
DEBUG = config('DEBUG', default=False, cast=bool)
ALLOWED_HOSTS = config('ALLOWED_HOSTS', default='localhost,127.0.0.1', cast=Csv())

INSTALLED_APPS = [
    'django.contrib.contenttypes',
    'django.contrib.auth',
    'django.contrib.staticfiles',
    'graphene_django',
    'blockchain',
    'notifications',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.middleware.common.CommonMiddleware',
]

ROOT_URLCONF = 'config.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {'context_processors': []},
    },
]

# The claim registry is in-memory; the database only backs Django internals.
DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': BASE_DIR / 'db.sqlite3',
    }
}

REDIS_URL = config('REDIS_URL', default='')
if REDIS_URL:
    CACHES = {
        'default': {
            'BACKEND': 'django_redis.cache.RedisCache',
            'LOCATION': REDIS_URL,
            'OPTIONS': {'CLIENT_CLASS': 'django_redis.client.DefaultClient'},
        }
    }
else:
    CACHES = {
        'default': {
            'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
            'LOCATION': 'randcash',
        }
    }

USE_TZ = True
TIME_ZONE = 'UTC'
STATIC_URL = '/static/'
DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

GRAPHENE = {
    'SCHEMA': 'config.schema.schema',
}

# ===== Algorand =====

ALGORAND_NETWORKS = {
    'testnet': {
        'name': 'TestNet',
        'algod_address': config('ALGORAND_TESTNET_ALGOD_ADDRESS', default='https://testnet-api.4160.nodely.dev'),
        'algod_token': config('ALGORAND_TESTNET_ALGOD_TOKEN', default=''),
    },
    'mainnet': {
        'name': 'MainNet',
        'algod_address': config('ALGORAND_MAINNET_ALGOD_ADDRESS', default='https://mainnet-api.4160.nodely.dev'),
        'algod_token': config('ALGORAND_MAINNET_ALGOD_TOKEN', default=''),
    },
}
ALGORAND_DEFAULT_NETWORK = config('ALGORAND_DEFAULT_NETWORK', default='testnet')
ALGORAND_REQUEST_TIMEOUT = config('ALGORAND_REQUEST_TIMEOUT', default=10, cast=int)

# ===== Claim escrow =====

CLAIM_CONFIRMATION_ROUNDS = config('CLAIM_CONFIRMATION_ROUNDS', default=15, cast=int)
# Mirrors of the escrow program constants, used for off-chain pre-checks only
CLAIM_RECLAIM_TIMEOUT_SECONDS = 300
CLAIM_ESCROW_DUST_MICROALGOS = 10_000
CLAIM_REGISTRY_RETENTION_SECONDS = config('CLAIM_REGISTRY_RETENTION_SECONDS', default=86400, cast=int)

# ===== Claimer fee sponsorship =====

SEED_WALLET_MNEMONICS = {
    'testnet': config('SEED_WALLET_TESTNET_MNEMONIC', default=''),
    'mainnet': config('SEED_WALLET_MAINNET_MNEMONIC', default=''),
}
CLAIM_SPONSOR_MIN_BALANCE = config('CLAIM_SPONSOR_MIN_BALANCE', default='0.001')
CLAIM_SPONSOR_AMOUNT = config('CLAIM_SPONSOR_AMOUNT', default='0.004')
SEED_WALLET_MIN_RESERVE = config('SEED_WALLET_MIN_RESERVE', default='0.1')
SEED_WALLET_RATE_LIMIT_SECONDS = config('SEED_WALLET_RATE_LIMIT_SECONDS', default=3600, cast=int)

# ===== Claim notifications =====

RESEND_API_KEY = config('RESEND_API_KEY', default='')
RESEND_API_URL = config('RESEND_API_URL', default='https://api.resend.com/emails')
CLAIM_EMAIL_FROM = config('CLAIM_EMAIL_FROM', default='RandCash <claims@randcash.app>')
CLAIM_APP_URL = config('CLAIM_APP_URL', default='https://randcash.app/claim')
