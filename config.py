import os
import time

class Config:
    PASSWORD = os.environ.get('PASSWORD')
    JWT_SECRET = os.environ.get('JWT_SECRET')
    DATABASE_URL = os.environ.get('DATABASE_URL', '').strip()
    SQLITE_PATH = os.environ.get('SQLITE_PATH', 'calendar.db')
    PORT = int(os.environ.get('PORT', 3001))
    APP_ENV = os.environ.get('APP_ENV', os.environ.get('NODE_ENV', 'development'))
    CORS_ORIGINS = os.environ.get('CORS_ORIGINS', '*')
    TOKEN_EXPIRES_IN = int(os.environ.get('TOKEN_EXPIRES_IN', 7 * 24 * 60 * 60))
    LOGIN_MAX_ATTEMPTS = int(os.environ.get('LOGIN_MAX_ATTEMPTS', 100))
    LOGIN_WINDOW_SECONDS = int(os.environ.get('LOGIN_WINDOW_SECONDS', 60))
    # Shared limiter storage for multi-instance deployments, e.g. redis://localhost:6379
    RATELIMIT_STORAGE_URI = os.environ.get('RATELIMIT_STORAGE_URI', 'memory://')
    # Number of reverse proxies whose X-Forwarded-For entries are trusted
    TRUSTED_PROXIES = int(os.environ.get('TRUSTED_PROXIES', 0))


def fallback_jwt_secret():
    return f'your-super-secret-jwt-key-change-this-in-production-{int(time.time() * 1000)}'
