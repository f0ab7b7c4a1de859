"""Business rules for a user's bucket connections.

Kept free of I/O so the registry can evaluate them inside its transaction.
"""
from .errors import QuotaExceeded
from .models import UNLIMITED


def check_quota(current_count: int, bucket_limit: int) -> None:
    """Raise ``QuotaExceeded`` if one more connection would break the limit."""
    if bucket_limit == UNLIMITED:
        return
    if current_count >= bucket_limit:
        raise QuotaExceeded(current_count=current_count, max_allowed=bucket_limit)


def should_be_default(current_count: int, requested_default: bool) -> bool:
    # the first connection is always the default
    if current_count == 0:
        return True
    return bool(requested_default)
