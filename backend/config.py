import os
from dotenv import load_dotenv

basedir = os.path.abspath(os.path.dirname(__file__))
load_dotenv(os.path.join(basedir, '.env'))


def _env_list(name, default=''):
    """Split a comma separated environment variable into a clean list"""
    raw = os.environ.get(name, default)
    return [item.strip() for item in raw.split(',') if item.strip()]


def normalize_database_url(database_url):
    """Ensure we're using postgresql:// not postgres://"""
    if database_url and database_url.startswith('postgres://'):
        database_url = database_url.replace('postgres://', 'postgresql://', 1)
    return database_url


class Config:
    """Base configuration shared by every environment"""

    # Security Configuration
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'dev-secret-key-change-in-production'
    TOKEN_MAX_AGE = int(os.environ.get('TOKEN_MAX_AGE', 24 * 60 * 60))
    TWO_FACTOR_TOKEN_MAX_AGE = int(os.environ.get('TWO_FACTOR_TOKEN_MAX_AGE', 5 * 60))
    PASSWORD_RESET_MAX_AGE = int(os.environ.get('PASSWORD_RESET_MAX_AGE', 60 * 60))
    TOTP_ISSUER = os.environ.get('TOTP_ISSUER', 'Blueprint')
    ERP_API_KEYS = _env_list('ERP_API_KEYS')

    @staticmethod
    def get_database_url():
        """Get properly formatted database URL string"""
        database_url = os.environ.get('DATABASE_URL')
        if database_url:
            return normalize_database_url(database_url)
        return 'sqlite:///' + os.path.join(basedir, 'instance', 'blueprint.db')

    SQLALCHEMY_DATABASE_URI = None  # Will be set in __init__
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Pool settings only apply to server databases
    POOLED_ENGINE_OPTIONS = {
        'pool_recycle': 3600,
        'pool_pre_ping': True,
        'pool_size': 10,
        'max_overflow': 20,
        'pool_timeout': 30,
    }

    # Frontend / CORS
    FRONTEND_URL = os.environ.get('FRONTEND_URL', 'http://localhost:3000')
    CORS_ORIGINS = [FRONTEND_URL]
    CORS_SUPPORTS_CREDENTIALS = True

    # File Upload Configuration
    MAX_CONTENT_LENGTH = int(os.environ.get('MAX_CONTENT_LENGTH', 16 * 1024 * 1024))
    UPLOAD_FOLDER = os.environ.get('UPLOAD_FOLDER', os.path.join(basedir, 'uploads'))
    MATERIAL_IMAGE_MAX_BYTES = 5 * 1024 * 1024
    ATTACHMENT_MAX_BYTES = 10 * 1024 * 1024
    MAX_TASK_ATTACHMENTS = 5

    # Business settings
    SUPPORTED_LANGUAGES = ['en', 'fr']
    PERMIT_ALERT_DAYS = int(os.environ.get('PERMIT_ALERT_DAYS', 30))
    PERMIT_CHECK_INTERVAL_HOURS = float(os.environ.get('PERMIT_CHECK_INTERVAL_HOURS', 24))
    MESSAGE_PAGE_LIMIT = 50
    MESSAGE_PAGE_MAX = 200
    TIMEZONE = os.environ.get('TIMEZONE', 'America/Toronto')

    # Realtime
    SOCKETIO_ASYNC_MODE = os.environ.get('SOCKETIO_ASYNC_MODE') or None

    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
    ENVIRONMENT = 'base'

    def __init__(self):
        """Initialize configuration with proper database URL"""
        self.SQLALCHEMY_DATABASE_URI = self.get_database_url()
        self.SQLALCHEMY_ENGINE_OPTIONS = self.engine_options_for(self.SQLALCHEMY_DATABASE_URI)

    def engine_options_for(self, database_url):
        if database_url.startswith('sqlite'):
            return {}
        return dict(self.POOLED_ENGINE_OPTIONS)


class DevelopmentConfig(Config):
    """Development configuration for local testing"""
    DEBUG = True
    DEVELOPMENT = True
    ENVIRONMENT = 'development'

    def __init__(self):
        super().__init__()

        self.CORS_ORIGINS = [
            self.FRONTEND_URL,
            'http://localhost:3000',
            'http://127.0.0.1:3000',
        ]

        dev_database_url = os.environ.get('DEV_DATABASE_URL')
        if dev_database_url:
            self.SQLALCHEMY_DATABASE_URI = normalize_database_url(dev_database_url)
            self.SQLALCHEMY_ENGINE_OPTIONS = self.engine_options_for(self.SQLALCHEMY_DATABASE_URI)


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False
    DEVELOPMENT = False
    ENVIRONMENT = 'production'

    def __init__(self):
        super().__init__()

        secret_key = os.environ.get('SECRET_KEY')
        if not secret_key:
            raise ValueError("SECRET_KEY environment variable is required for production")
        self.SECRET_KEY = secret_key

        database_url = os.environ.get('DATABASE_URL')
        if not database_url:
            raise ValueError("DATABASE_URL environment variable is required for production")
        self.SQLALCHEMY_DATABASE_URI = normalize_database_url(database_url)

        self.CORS_ORIGINS = _env_list('CORS_ORIGINS') or [self.FRONTEND_URL]

        self.SQLALCHEMY_ENGINE_OPTIONS = self.engine_options_for(self.SQLALCHEMY_DATABASE_URI)
        if self.SQLALCHEMY_ENGINE_OPTIONS:
            self.SQLALCHEMY_ENGINE_OPTIONS.update({
                'pool_size': 20,
                'max_overflow': 30,
                'pool_timeout': 60,
            })


class TestingConfig(Config):
    """Testing configuration"""
    TESTING = True
    SECRET_KEY = 'testing-secret-key'
    ENVIRONMENT = 'testing'
    PERMIT_CHECK_INTERVAL_HOURS = 0
    SOCKETIO_ASYNC_MODE = 'threading'
    ERP_API_KEYS = ['test-erp-key']

    def __init__(self):
        super().__init__()
        self.SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
        self.SQLALCHEMY_ENGINE_OPTIONS = {}
        self.CORS_ORIGINS = ['*']


# Configuration mapping
config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}


def get_config_name():
    """Detect environment from the process environment"""
    flask_env = os.environ.get('FLASK_ENV', '').lower()
    if flask_env in ['production', 'testing', 'development']:
        return flask_env

    if os.environ.get('TESTING') or os.environ.get('CI'):
        return 'testing'

    return 'development'


def validate_config():
    """Check required environment variables for the detected environment"""
    config_name = get_config_name()

    if config_name == 'production':
        required_vars = ['SECRET_KEY', 'DATABASE_URL']
        missing_vars = [var for var in required_vars if not os.environ.get(var)]
        if missing_vars:
            return False, f"Missing required environment variables: {', '.join(missing_vars)}"

    return True, "Configuration is valid"


__all__ = [
    'config',
    'get_config_name',
    'validate_config',
]
