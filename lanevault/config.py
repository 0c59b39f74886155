import os


def _env_int(name, default):
    value = os.environ.get(name)
    if value is None or value.strip() == '':
        return default
    return int(value)


class Config:
    """Base configuration"""

    # Remote API
    API_TOKEN = os.environ.get('API_TOKEN', '')
    API_BASE_URL = os.environ.get('API_BASE_URL') or 'https://api.binarylane.com.au/v2'
    API_TIMEOUT = _env_int('API_TIMEOUT', 60)

    # Remote actions
    ACTION_POLL_INTERVAL = _env_int('ACTION_POLL_INTERVAL', 30)
    ACTION_TIMEOUT = _env_int('ACTION_TIMEOUT', 3600)

    # Downloads and local storage
    BACKUP_DIR = os.environ.get('BACKUP_DIR') or '/backup'
    DOWNLOAD_TIMEOUT = _env_int('DOWNLOAD_TIMEOUT', 3600)
    ARTIFACT_EXTENSION = os.environ.get('ARTIFACT_EXTENSION') or 'tar.gz'
    RETENTION_DAYS = _env_int('RETENTION_DAYS', 14)

    # Notifications (empty disables them)
    DISCORD_WEBHOOK_URL = os.environ.get('DISCORD_WEBHOOK_URL', '')

    # Database (run history and scheduler job store)
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or 'sqlite:////data/lanevault.db'
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Logging
    LOG_DIR = os.environ.get('LOG_DIR') or '/data/logs'

    # Scheduler
    SCHEDULER_ENABLED = os.environ.get('SCHEDULER_ENABLED', 'false').lower() == 'true'
    SCHEDULER_TIMEZONE = 'UTC'
    BACKUP_SCHEDULE_CRON = os.environ.get('BACKUP_SCHEDULE_CRON') or '0 1 * * *'
    RETENTION_SCHEDULE_CRON = os.environ.get('RETENTION_SCHEDULE_CRON') or '0 2 * * *'


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True

    # Use local data directory for development
    BASE_DIR = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))
    DATA_DIR = os.path.join(BASE_DIR, 'data')
    SQLALCHEMY_DATABASE_URI = f'sqlite:///{os.path.join(DATA_DIR, "lanevault.db")}'
    BACKUP_DIR = os.path.join(DATA_DIR, 'backups')
    LOG_DIR = os.path.join(DATA_DIR, 'logs')


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False


class TestingConfig(Config):
    """Test configuration - in-memory database, no file logging, no scheduler"""
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    LOG_DIR = None
    SCHEDULER_ENABLED = False
    API_TOKEN = 'test-token'
    API_BASE_URL = 'https://api.example.test/v2'
    DISCORD_WEBHOOK_URL = ''


# Configuration dictionary
config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': ProductionConfig
}
