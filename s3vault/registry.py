"""Per-user registry of S3 bucket connections.

Secrets go through ``CredentialCipher`` on the way in and out; nothing else in
the service ever sees a plaintext secret key. Every mutation runs in one
transaction with the owning user row locked, so quota checks and the
single-default rule are decided against a consistent view.
"""
from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .crypto import CredentialCipher
from .errors import ConcurrentUpdate, CredentialError, DuplicateBucket, NotConfigured, NotFound, ValidationError
from .models import BucketConnection, User
from .policy import check_quota, should_be_default
from .storage import Credentials

logger = structlog.get_logger(__name__)


class BucketRegistry:
    def __init__(self, db: Session, cipher: CredentialCipher):
        self.db = db
        self.cipher = cipher

    # ---------- Queries ----------

    def list_buckets(self, user_id: str) -> List[BucketConnection]:
        stmt = (
            select(BucketConnection)
            .where(BucketConnection.user_id == user_id)
            .order_by(BucketConnection.is_default.desc(), BucketConnection.created_at.desc())
            .execution_options(populate_existing=True)
        )
        return list(self.db.scalars(stmt))

    def resolve_active(self, user_id: str, bucket_id: Optional[str] = None) -> BucketConnection:
        """Return the selected connection, or the default, or the oldest one."""
        if bucket_id:
            return self._get_owned(user_id, bucket_id)

        stmt = (
            select(BucketConnection)
            .where(BucketConnection.user_id == user_id)
            .order_by(BucketConnection.is_default.desc(), BucketConnection.created_at.asc())
            .limit(1)
        )
        connection = self.db.scalars(stmt).first()
        if connection is None:
            raise NotConfigured()
        return connection

    def decrypted_credentials(self, connection: BucketConnection) -> Credentials:
        try:
            secret_key = self.cipher.decrypt(connection.secret_key_encrypted)
        except CredentialError as exc:
            logger.error(
                "bucket_credentials_unreadable",
                bucket_id=connection.id,
                user_id=connection.user_id,
                code=exc.code,
            )
            raise
        return Credentials(
            access_key_id=connection.access_key_id,
            secret_key=secret_key,
            region=connection.region,
            bucket_name=connection.bucket_name,
        )

    def profile(self, user_id: str) -> Dict[str, Any]:
        user = self.db.get(User, user_id)
        if user is None:
            raise NotFound("User not found")
        count = self._count(user_id)
        return {
            "id": user.id,
            "name": user.name,
            "email": user.email,
            "created_at": user.created_at,
            "bucket_limit": user.bucket_limit,
            "bucket_count": count,
            "has_bucket": count > 0,
        }

    # ---------- Mutations ----------

    def add_bucket(
        self,
        user_id: str,
        name: str,
        bucket_name: str,
        region: str,
        access_key_id: str,
        secret_key: str,
        requested_default: bool = False,
    ) -> BucketConnection:
        fields = {
            "name": name,
            "bucket_name": bucket_name,
            "region": region,
            "access_key_id": access_key_id,
            "secret_key": secret_key,
        }
        missing = [k for k, v in fields.items() if not v or not v.strip()]
        if missing:
            raise ValidationError("All fields are required", fields=missing)
        bucket_name = bucket_name.strip()

        try:
            user = self._lock_user(user_id)
            if self._exists(user_id, bucket_name):
                raise DuplicateBucket(bucket_name)

            count = self._count(user_id)
            check_quota(count, user.bucket_limit)
            make_default = should_be_default(count, requested_default)
            if make_default:
                self._clear_defaults(user_id)

            connection = BucketConnection(
                user_id=user_id,
                name=name.strip(),
                bucket_name=bucket_name,
                region=region.strip(),
                access_key_id=access_key_id.strip(),
                secret_key_encrypted=self.cipher.encrypt(secret_key),
                is_default=make_default,
            )
            self.db.add(connection)
            self.db.flush()
            # SQLite ignores FOR UPDATE; recount with our row in place so an
            # add committed since the first check still trips the quota.
            check_quota(self._count(user_id) - 1, user.bucket_limit)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            if self._exists(user_id, bucket_name):
                raise DuplicateBucket(bucket_name)
            raise ConcurrentUpdate()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            "bucket_added",
            user_id=user_id,
            bucket_id=connection.id,
            bucket_name=bucket_name,
            is_default=make_default,
        )
        return connection

    def set_default(self, user_id: str, bucket_id: str) -> BucketConnection:
        try:
            self._lock_user(user_id)
            connection = self._get_owned(user_id, bucket_id)
            self._clear_defaults(user_id)
            self.db.execute(
                update(BucketConnection)
                .where(BucketConnection.id == connection.id)
                .values(is_default=True)
            )
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise ConcurrentUpdate()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(connection)
        logger.info("default_bucket_set", user_id=user_id, bucket_id=bucket_id)
        return connection

    def remove_bucket(self, user_id: str, bucket_id: str) -> None:
        # Only the local record goes; provider-side objects are untouched and
        # no replacement default is chosen.
        try:
            connection = self._get_owned(user_id, bucket_id)
            was_default = connection.is_default
            self.db.delete(connection)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info("bucket_removed", user_id=user_id, bucket_id=bucket_id, was_default=was_default)

    # ---------- Helpers ----------

    def _lock_user(self, user_id: str) -> User:
        stmt = (
            select(User)
            .where(User.id == user_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        user = self.db.scalars(stmt).one_or_none()
        if user is None:
            raise NotFound("User not found")
        return user

    def _get_owned(self, user_id: str, bucket_id: str) -> BucketConnection:
        connection = self.db.scalars(
            select(BucketConnection).where(
                BucketConnection.id == bucket_id,
                BucketConnection.user_id == user_id,
            )
        ).one_or_none()
        if connection is None:
            raise NotFound("Bucket not found")
        return connection

    def _exists(self, user_id: str, bucket_name: str) -> bool:
        stmt = select(BucketConnection.id).where(
            BucketConnection.user_id == user_id,
            BucketConnection.bucket_name == bucket_name,
        )
        return self.db.scalars(stmt).first() is not None

    def _count(self, user_id: str) -> int:
        stmt = select(func.count()).select_from(BucketConnection).where(BucketConnection.user_id == user_id)
        return int(self.db.scalar(stmt) or 0)

    def _clear_defaults(self, user_id: str) -> None:
        self.db.execute(
            update(BucketConnection)
            .where(BucketConnection.user_id == user_id, BucketConnection.is_default.is_(True))
            .values(is_default=False)
        )
