from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone

from cryptography.fernet import Fernet, InvalidToken
from sqlalchemy.orm import Session

from broadcast.models import Setting

logger = logging.getLogger(__name__)
_FERNET: Fernet | None = None

FEED_API_KEY = "Feed.ApiKey"
SECRETS_CATEGORY = "Secrets"


@dataclass(frozen=True)
class Config:
    database_url: str = "sqlite:///broadcast.db"
    roster_sheet_name: str = "Roster"
    roster_poll_seconds: int = 7
    log_level: str = "INFO"


def _int_env(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r, using %s", name, raw, default)
        return default
    if value <= 0:
        logger.warning("Ignoring non-positive %s=%s, using %s", name, value, default)
        return default
    return value


def load_config() -> Config:
    defaults = Config()
    return Config(
        database_url=(os.getenv("DATABASE_URL") or "").strip() or defaults.database_url,
        roster_sheet_name=(os.getenv("ROSTER_SHEET_NAME") or "").strip() or defaults.roster_sheet_name,
        roster_poll_seconds=_int_env("ROSTER_POLL_SECONDS", defaults.roster_poll_seconds),
        log_level=(os.getenv("LOG_LEVEL") or "").strip().upper() or defaults.log_level,
    )


def get_setting(db: Session, key: str, default: str | None = None) -> str | None:
    setting = db.get(Setting, key)
    if setting is None:
        return default
    return setting.value


def set_setting(db: Session, key: str, value: str, category: str | None = None) -> Setting:
    setting = db.get(Setting, key)
    if setting is None:
        setting = Setting(key=key)
        db.add(setting)
    setting.value = value
    if category is not None:
        setting.category = category
    setting.last_updated_utc = datetime.now(timezone.utc)
    db.flush()
    logger.info("Saved setting key=%s category=%s", key, setting.category)
    return setting


def get_fernet() -> Fernet:
    global _FERNET
    if _FERNET is not None:
        return _FERNET
    secret = (os.getenv("APP_SECRET_KEY") or "").strip()
    if not secret:
        secret = Fernet.generate_key().decode("utf-8")
        logger.warning(
            "APP_SECRET_KEY missing. Generated a temporary key: %s. "
            "Set APP_SECRET_KEY to this value to persist decryption.",
            secret,
        )
    _FERNET = Fernet(secret.encode("utf-8"))
    return _FERNET


def encrypt_secret(value: str | None) -> str | None:
    if not value:
        return None
    return get_fernet().encrypt(value.encode("utf-8")).decode("utf-8")


def decrypt_secret(encrypted: str | None) -> str | None:
    if not encrypted:
        return None
    try:
        return get_fernet().decrypt(encrypted.encode("utf-8")).decode("utf-8")
    except InvalidToken:
        logger.error("Failed to decrypt stored secret. Check APP_SECRET_KEY.")
        return None


def store_feed_api_key(db: Session, api_key: str | None) -> None:
    set_setting(db, FEED_API_KEY, encrypt_secret(api_key) or "", category=SECRETS_CATEGORY)


def load_feed_api_key(db: Session) -> str | None:
    return decrypt_secret(get_setting(db, FEED_API_KEY))
