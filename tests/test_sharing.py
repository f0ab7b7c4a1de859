from datetime import datetime, timedelta, timezone

import pytest

from s3vault.config import SHARE_LINK_MAX_TTL, SHARE_LINK_TTL
from s3vault.errors import ObjectNotFound, ValidationError
from s3vault.sharing import issue_download_link


def test_issue_link(fake_storage):
    before = datetime.now(timezone.utc)
    grant = issue_download_link(fake_storage, "docs/a.txt", 3600)

    assert "docs/a.txt" in grant.url
    assert "X-Amz-Expires=3600" in grant.url
    assert before + timedelta(seconds=3600) <= grant.expires_at
    assert grant.expires_at <= datetime.now(timezone.utc) + timedelta(seconds=3600)


def test_default_ttl_is_seven_days(fake_storage):
    grant = issue_download_link(fake_storage, "photo.jpg")
    assert f"X-Amz-Expires={SHARE_LINK_TTL}" in grant.url
    assert SHARE_LINK_TTL == 7 * 24 * 60 * 60


def test_missing_object(fake_storage):
    with pytest.raises(ObjectNotFound):
        issue_download_link(fake_storage, "missing.txt", 60)


@pytest.mark.parametrize("ttl", [0, -5, SHARE_LINK_MAX_TTL + 1])
def test_ttl_bounds(fake_storage, ttl):
    with pytest.raises(ValidationError):
        issue_download_link(fake_storage, "photo.jpg", ttl)


def test_key_required(fake_storage):
    with pytest.raises(ValidationError):
        issue_download_link(fake_storage, "", 60)
