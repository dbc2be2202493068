import os


BASE_DIR = os.path.abspath(os.path.dirname(__file__))


def _env_flag(name, default='false'):
    return os.environ.get(name, default).strip().lower() in ('1', 'true', 'yes', 'on')


class Config:
    """Base configuration."""
    SECRET_KEY = os.environ.get('SECRET_KEY', 'dev-secret-change-me-in-production')

    # Database – absolute path so it works wherever the app is started from
    DATABASE_URL = os.environ.get(
        'DATABASE_URL',
        'sqlite:///' + os.path.join(BASE_DIR, 'lti.db')
    )
    # Heroku uses 'postgres://' but SQLAlchemy requires 'postgresql://'
    if DATABASE_URL.startswith('postgres://'):
        DATABASE_URL = DATABASE_URL.replace('postgres://', 'postgresql://', 1)
    SQLALCHEMY_DATABASE_URI = DATABASE_URL
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Session cookie settings: required for LTI in iframes.
    # The consumer embeds the tool in an iframe from a different domain,
    # so the cookie must be SameSite=None + Secure to survive cross-site.
    SESSION_COOKIE_SAMESITE = 'None'
    SESSION_COOKIE_SECURE = True       # Required when SameSite=None
    SESSION_COOKIE_HTTPONLY = True

    # Consumer registered on start-up (skipped when either is blank)
    LTI_KEY = os.environ.get('LTI_KEY', '')
    LTI_SECRET = os.environ.get('LTI_SECRET', '')

    # Launch pipeline
    LTI_AUTO_ENABLE = _env_flag('LTI_AUTO_ENABLE')
    LTI_ALLOW_SHARING = _env_flag('LTI_ALLOW_SHARING')
    LTI_DEFAULT_EMAIL = os.environ.get('LTI_DEFAULT_EMAIL', '')
    LTI_ID_SCOPE = int(os.environ.get('LTI_ID_SCOPE', '0'))  # 0 id only .. 3 resource
    # Where to send the user after a launch; defaults to the built-in landing page
    LTI_SUCCESS_URL = os.environ.get('LTI_SUCCESS_URL', '')
    LTI_TOKEN_MAX_AGE = int(os.environ.get('LTI_TOKEN_MAX_AGE', '86400'))  # seconds


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = 'test-secret'
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SESSION_COOKIE_SECURE = False
    LTI_KEY = ''
    LTI_SECRET = ''
    LTI_AUTO_ENABLE = False
    LTI_ALLOW_SHARING = False
    LTI_DEFAULT_EMAIL = ''
    LTI_ID_SCOPE = 0
    LTI_SUCCESS_URL = ''
