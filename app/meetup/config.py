import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str
    auth_secret: str
    auth_exchange_secret: str
    super_admin_email: str
    app_url: str

    smtp_host: str
    smtp_port: int
    smtp_user: str
    smtp_pass: str
    smtp_from: str

    discord_bot_token: str
    cron_secret: str

    web_workers: int
    web_timeout: int


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getint(name: str, default: int) -> int:
    raw = _getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def load_settings() -> Settings:
    secret_key = _getenv("SECRET_KEY", "change-me")
    smtp_user = _getenv("SMTP_USER", "")
    return Settings(
        secret_key=secret_key,
        env=_getenv("ENV", "development"),
        database_url=_getenv("DATABASE_URL", "sqlite:///meetup.db"),
        auth_secret=_getenv("AUTH_SECRET", secret_key),
        auth_exchange_secret=_getenv("AUTH_EXCHANGE_SECRET", ""),
        super_admin_email=_getenv("SUPER_ADMIN_EMAIL", "").lower(),
        app_url=_getenv("APP_URL", "http://localhost:5000").rstrip("/"),
        smtp_host=_getenv("SMTP_HOST", ""),
        smtp_port=_getint("SMTP_PORT", 587),
        smtp_user=smtp_user,
        smtp_pass=_getenv("SMTP_PASS", ""),
        smtp_from=_getenv("SMTP_FROM", smtp_user),
        discord_bot_token=_getenv("DISCORD_BOT_TOKEN", ""),
        cron_secret=_getenv("CRON_SECRET", ""),
        web_workers=max(_getint("WEB_CONCURRENCY", 2), 1),
        web_timeout=max(_getint("GUNICORN_TIMEOUT", 60), 1),
    )


def load_config() -> dict:
    s = load_settings()
    is_production = s.env in ("prod", "production")
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "AUTH_SECRET": s.auth_secret,
        "AUTH_EXCHANGE_SECRET": s.auth_exchange_secret,
        "SUPER_ADMIN_EMAIL": s.super_admin_email,
        "APP_URL": s.app_url,
        "SMTP_HOST": s.smtp_host,
        "SMTP_PORT": s.smtp_port,
        "SMTP_USER": s.smtp_user,
        "SMTP_PASS": s.smtp_pass,
        "SMTP_FROM": s.smtp_from,
        "DISCORD_BOT_TOKEN": s.discord_bot_token,
        "CRON_SECRET": s.cron_secret,
        # security defaults
        "SESSION_COOKIE_HTTPONLY": True,
        "SESSION_COOKIE_SAMESITE": "Lax",
        "SESSION_COOKIE_SECURE": is_production,  # Require HTTPS in production
        # logos are stored as data URIs, keep request bodies bounded
        "MAX_CONTENT_LENGTH": 2 * 1024 * 1024,
    }
