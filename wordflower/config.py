"""
Configuration for the Wordflower server.

Every setting is read from the environment (optionally seeded from a .env
file) with defaults suitable for local development.
"""

from __future__ import annotations
import os

from dotenv import load_dotenv

load_dotenv()


def _bool(name: str, default: str = 'False') -> bool:
    return os.getenv(name, default).lower() == 'true'


class Config:
    # Server
    HOST = os.getenv('HOST', '127.0.0.1')
    PORT = int(os.getenv('PORT', 8000))
    DEBUG = _bool('DEBUG')

    # Logging
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
    LOG_DIR = os.getenv('LOG_DIR') or None

    # Storage; in-memory stores are used when MONGO_URI is unset
    MONGO_URI = os.getenv('MONGO_URI')
    MONGO_DB = os.getenv('MONGO_DB', 'wordflower')
    SNAPSHOT_DIR = os.getenv('SNAPSHOT_DIR') or None

    # Data files
    CATALOG_PATH = os.getenv('CATALOG_PATH') or None
    DICTIONARY_PATH = os.getenv('DICTIONARY_PATH') or None

    # Hint content service
    MW_THESAURUS_KEY = os.getenv('MW_THESAURUS_KEY')
    MW_THESAURUS_URL = os.getenv(
        'MW_THESAURUS_URL',
        'https://www.dictionaryapi.com/api/v3/references/thesaurus/json/',
    )
    HTTP_TIMEOUT_SECONDS = float(os.getenv('HTTP_TIMEOUT_SECONDS', 5))
    HINT_POOL_SIZE = int(os.getenv('HINT_POOL_SIZE', 10))
    HINT_CACHE_SIZE = int(os.getenv('HINT_CACHE_SIZE', 1024))

    # Game rules
    ANSWER_CAP = int(os.getenv('ANSWER_CAP', 60))
    TIMER_MODE = os.getenv('TIMER_MODE', 'countdown')  # 'countdown' | 'countup'
    TIME_BUDGET_SECONDS = int(os.getenv('TIME_BUDGET_SECONDS', 1800))
    TICK_INTERVAL_SECONDS = float(os.getenv('TICK_INTERVAL_SECONDS', 1.0))
    SYNC_INTERVAL_SECONDS = int(os.getenv('SYNC_INTERVAL_SECONDS', 5))
    METADATA_FLUSH_SECONDS = int(os.getenv('METADATA_FLUSH_SECONDS', 30))
    SNAPSHOT_MAX_AGE_HOURS = float(os.getenv('SNAPSHOT_MAX_AGE_HOURS', 24))

    # Analytics
    ANALYTICS_WORKERS = int(os.getenv('ANALYTICS_WORKERS', 2))


class DevelopmentConfig(Config):
    DEBUG = True


class ProductionConfig(Config):
    DEBUG = False


class TestingConfig(Config):
    TESTING = True
    DEBUG = True
    MONGO_URI = None
    SNAPSHOT_DIR = None
    MW_THESAURUS_KEY = None
    TICK_INTERVAL_SECONDS = 0.0


config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig,
}


def get_config(name: str | None = None):
    return config.get(name or os.getenv('WORDFLOWER_ENV', 'default'), DevelopmentConfig)
