"""
Application Configuration
========================

Configuration settings for different environments.
"""

import os
from pathlib import Path


def _env_bool(name: str, default: str = 'false') -> bool:
    return os.environ.get(name, default).lower() in ('1', 'true', 'yes', 'on')


class Config:
    """Base configuration class."""

    # Basic Flask settings
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'dev-secret-key-change-in-production'

    BASE_DIR = Path(__file__).resolve().parent.parent.parent  # This should be /src

    # Logging
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
    LOG_DIR = os.environ.get('LOG_DIR') or str(BASE_DIR.parent / 'logs')
    LOG_TO_FILE = _env_bool('LOG_TO_FILE', 'true')

    # Generation must only run server side; 'client' and 'test' are recognised too
    RUNTIME_CONTEXT = os.environ.get('RUNTIME_CONTEXT', 'server')

    # Provider credentials and switches
    ENABLE_OPENAI = _env_bool('ENABLE_OPENAI', 'true')
    OPENAI_API_KEY = os.environ.get('OPENAI_API_KEY')
    OPENAI_BASE_URL = os.environ.get('OPENAI_BASE_URL')

    ENABLE_GEMINI = _env_bool('ENABLE_GEMINI', 'true')
    GOOGLE_API_KEY = os.environ.get('GOOGLE_API_KEY') or os.environ.get('GEMINI_API_KEY')

    ENABLE_OPENROUTER = _env_bool('ENABLE_OPENROUTER', 'false')
    OPENROUTER_API_KEY = os.environ.get('OPENROUTER_API_KEY')
    OPENROUTER_SITE_URL = os.environ.get('OPENROUTER_SITE_URL', 'http://localhost:5000')
    OPENROUTER_SITE_NAME = os.environ.get('OPENROUTER_SITE_NAME', 'SiteGen')

    # Comma separated provider names, first enabled one serves "auto"
    PROVIDER_PRIORITY = os.environ.get('PROVIDER_PRIORITY', 'openai,gemini,openrouter')
    PROVIDER_TIMEOUT = float(os.environ.get('PROVIDER_TIMEOUT', '60'))
    PROVIDER_TEMPERATURE = float(os.environ.get('PROVIDER_TEMPERATURE', '0.7'))

    # Admission control store (in-memory fallback when unset or unreachable)
    REDIS_URL = os.environ.get('REDIS_URL')
    STARTING_CREDITS = int(os.environ.get('STARTING_CREDITS', '100'))
    RATE_LIMIT_WINDOW_SECONDS = float(os.environ.get('RATE_LIMIT_WINDOW_SECONDS', '60'))
    RATE_LIMIT_MAX_REQUESTS = int(os.environ.get('RATE_LIMIT_MAX_REQUESTS', '100'))

    # Recovery layer
    RECOVERY_MAX_RETRIES = int(os.environ.get('RECOVERY_MAX_RETRIES', '2'))
    RECOVERY_INITIAL_DELAY = float(os.environ.get('RECOVERY_INITIAL_DELAY', '0.25'))
    RECOVERY_JITTER = _env_bool('RECOVERY_JITTER', 'true')

    # Content safety
    SAFETY_LEVEL = os.environ.get('SAFETY_LEVEL', 'strict')


class DevelopmentConfig(Config):
    """Development configuration."""
    DEBUG = True
    TESTING = False
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'DEBUG')


class TestingConfig(Config):
    """Testing configuration."""
    TESTING = True
    DEBUG = True
    RUNTIME_CONTEXT = 'test'
    LOG_TO_FILE = False
    # Never reach real providers or a shared store from the test suite
    ENABLE_OPENAI = False
    ENABLE_GEMINI = False
    ENABLE_OPENROUTER = False
    REDIS_URL = None
    RECOVERY_INITIAL_DELAY = 0.0
    RECOVERY_JITTER = False


class ProductionConfig(Config):
    """Production configuration."""
    DEBUG = False
    TESTING = False

    def __init__(self):
        super().__init__()
        # Credits must be shared across workers in production
        if not os.environ.get('REDIS_URL'):
            raise ValueError("REDIS_URL environment variable is required for production")
        self.REDIS_URL = os.environ.get('REDIS_URL')


# Configuration mapping
config = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
    'default': DevelopmentConfig
}
