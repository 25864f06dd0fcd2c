import os


def _int_env(name: str, default: int) -> int:
    return int(os.environ.get(name, str(default)))


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY', 'dev')
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL', 'sqlite:///local.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    REDIS_URL = os.environ.get('REDIS_URL', 'redis://localhost:6379/0')
    USE_REDIS = os.environ.get('USE_REDIS', '1').lower() not in ('0', 'false', 'no')

    # Auth: API key for staff tooling, JWT bearer tokens from the identity provider
    ADMIN_API_KEY = os.environ.get('ADMIN_API_KEY')
    JWT_PUBLIC_KEY = os.environ.get('JWT_PUBLIC_KEY')
    JWT_ALG = os.environ.get('JWT_ALG', 'RS256')

    # One-time code and credential freshness
    QR_PERIOD_S = _int_env('QR_PERIOD_S', 30)
    QR_DIGITS = _int_env('QR_DIGITS', 8)
    QR_WINDOW = _int_env('QR_WINDOW', 1)
    QR_MAX_AGE_S = _int_env('QR_MAX_AGE_S', 300)

    SCAN_RATE_LIMIT = _int_env('SCAN_RATE_LIMIT', 60)
    SCAN_RATE_WINDOW_S = _int_env('SCAN_RATE_WINDOW_S', 60)

    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
    LOG_FORMAT = os.environ.get('LOG_FORMAT', 'human')

    def __init__(self):
        # Optional fallbacks to support Secret Files on Render (/etc/secrets)
        if not self.JWT_PUBLIC_KEY:
            self.JWT_PUBLIC_KEY = _read_first('/etc/secrets/jwt.pub', 'jwt.pub')
        if not self.ADMIN_API_KEY:
            self.ADMIN_API_KEY = _read_first('/etc/secrets/admin_api_key')
        if (not self.SECRET_KEY) or self.SECRET_KEY == 'dev':
            self.SECRET_KEY = _read_first('/etc/secrets/secret_key') or self.SECRET_KEY


def _read_first(*paths):
    for p in paths:
        try:
            with open(p, 'r') as f:
                return f.read().strip()
        except OSError:
            continue
    return None
