from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import structlog

from .config import SHARE_LINK_MAX_TTL, SHARE_LINK_TTL
from .errors import ValidationError

logger = structlog.get_logger(__name__)


@dataclass
class ShareGrant:
    url: str
    expires_at: datetime


def issue_download_link(session, key: str, ttl_seconds: Optional[int] = None) -> ShareGrant:
    """Presign a GET for exactly one object key.

    Existence is checked with a HEAD first, which is best-effort: presigning
    itself never contacts the backend, and an object deleted after the check
    still yields a URL that will 404. Links cannot be revoked; they expire.
    """
    if not key:
        raise ValidationError("File key is required")
    ttl = SHARE_LINK_TTL if ttl_seconds is None else int(ttl_seconds)
    if not 0 < ttl <= SHARE_LINK_MAX_TTL:
        raise ValidationError(
            f"Share link lifetime must be between 1 and {SHARE_LINK_MAX_TTL} seconds",
            max_ttl=SHARE_LINK_MAX_TTL,
        )

    session.head(key)
    issued_at = datetime.now(timezone.utc)
    url = session.presign_get(key, expires_in=ttl)

    logger.info("share_link_issued", bucket=session.bucket_name, key=key, ttl=ttl)
    return ShareGrant(url=url, expires_at=issued_at + timedelta(seconds=ttl))
