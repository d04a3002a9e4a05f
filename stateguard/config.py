import os


class Config:
    """Base configuration"""

    # Flask
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'stateguard-local'

    # HTTP API bearer token (the API refuses every request while unset)
    API_TOKEN = os.environ.get('STATEGUARD_API_TOKEN')

    # Product name used in archive names and removable-media folders
    PRODUCT_NAME = os.environ.get('STATEGUARD_PRODUCT') or 'stateguard'

    # Node state
    STATE_DIR = os.environ.get('STATEGUARD_STATE_DIR') or '/var/lib/stateguard'
    USER_DATA_DIR = os.environ.get('STATEGUARD_USER_DATA_DIR') or '/var/lib/data'
    BACKUP_DIR = os.environ.get('STATEGUARD_BACKUP_DIR') or os.path.join(STATE_DIR, 'backups')
    POLICY_PATH = os.environ.get('STATEGUARD_POLICY_PATH') or os.path.join(STATE_DIR, 'backup.yaml')

    # Archive construction (BACKUP_DIR is always excluded in addition)
    DEFAULT_EXCLUDES = ['*.log', '*.tmp']
    SORTED_WALK = True

    # Restore
    RESTORE_ROOT = os.environ.get('STATEGUARD_RESTORE_ROOT') or '/'

    # Removable media
    USB_MOUNT_CANDIDATES = ['/mnt/usb', '/media/usb', '/run/media']

    # External job scheduler
    CRON_FILE = os.environ.get('STATEGUARD_CRON_FILE') or '/etc/cron.d/stateguard-backup'
    CRON_COMMAND = '/usr/bin/stateguard'
    SCHEDULER_TIMEZONE = 'UTC'

    # Logging
    LOG_DIR = os.environ.get('STATEGUARD_LOG_DIR') or '/var/log/stateguard'


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True

    # Use local data directory for development
    BASE_DIR = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))
    DATA_DIR = os.path.join(BASE_DIR, 'data')
    STATE_DIR = os.path.join(DATA_DIR, 'state')
    USER_DATA_DIR = os.path.join(DATA_DIR, 'userdata')
    BACKUP_DIR = os.path.join(STATE_DIR, 'backups')
    POLICY_PATH = os.path.join(STATE_DIR, 'backup.yaml')
    RESTORE_ROOT = os.path.join(DATA_DIR, 'restore')
    USB_MOUNT_CANDIDATES = [os.path.join(DATA_DIR, 'usb')]
    CRON_FILE = os.path.join(DATA_DIR, 'cron.d', 'stateguard-backup')
    LOG_DIR = os.path.join(DATA_DIR, 'logs')


class TestingConfig(Config):
    """Testing configuration (paths are supplied by the test fixtures)"""
    TESTING = True
    DEBUG = False
    LOG_DIR = None


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False


# Configuration dictionary
config = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
    'default': ProductionConfig
}
