import os
from dataclasses import dataclass
from typing import Optional

VERSION = "0.3.0"

DEFAULT_BUCKET_LIMIT = 3
SHARE_LINK_TTL = 7 * 24 * 60 * 60
# SigV4 presigned URLs cannot outlive seven days
SHARE_LINK_MAX_TTL = 7 * 24 * 60 * 60


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None or value == "":
        return default
    return value.strip().lower() not in ("0", "false", "no", "off")


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer, got {value!r}")


@dataclass(frozen=True)
class Settings:
    database_url: str
    encryption_key: str
    jwt_secret: str
    s3_endpoint_url: Optional[str] = None
    s3_addressing_style: str = "auto"
    share_link_ttl: int = SHARE_LINK_TTL
    log_level: str = "INFO"
    log_json: bool = True


def load_settings() -> Settings:
    encryption_key = os.environ.get("ENCRYPTION_KEY", "")
    jwt_secret = os.environ.get("JWT_SECRET", "")

    missing = [k for k, v in [("ENCRYPTION_KEY", encryption_key), ("JWT_SECRET", jwt_secret)] if not v]
    if missing:
        raise RuntimeError("Missing required env var(s): {}".format(", ".join(missing)))

    addressing_style = os.environ.get("S3_ADDRESSING_STYLE", "auto").lower()
    if addressing_style not in ("auto", "path", "virtual"):
        raise RuntimeError(f"S3_ADDRESSING_STYLE must be auto, path or virtual, got {addressing_style!r}")

    share_link_ttl = _env_int("SHARE_LINK_TTL", SHARE_LINK_TTL)
    if not 0 < share_link_ttl <= SHARE_LINK_MAX_TTL:
        raise RuntimeError(f"SHARE_LINK_TTL must be between 1 and {SHARE_LINK_MAX_TTL} seconds")

    return Settings(
        database_url=os.environ.get("DATABASE_URL", "sqlite:///./s3vault.db"),
        encryption_key=encryption_key,
        jwt_secret=jwt_secret,
        s3_endpoint_url=os.environ.get("S3_ENDPOINT_URL") or None,
        s3_addressing_style=addressing_style,
        share_link_ttl=share_link_ttl,
        log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        log_json=_env_bool("LOG_JSON", True),
    )
