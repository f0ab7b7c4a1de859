import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint, func, text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from .config import DEFAULT_BUCKET_LIMIT

UNLIMITED = -1


def _new_id() -> str:
    return uuid.uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_id)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    # -1 means unlimited
    bucket_limit: Mapped[int] = mapped_column(Integer, nullable=False, default=DEFAULT_BUCKET_LIMIT)
    created_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False)

    connections: Mapped[list["BucketConnection"]] = relationship(back_populates="user", cascade="all, delete-orphan")


class BucketConnection(Base):
    __tablename__ = "bucket_connections"
    __table_args__ = (
        UniqueConstraint("user_id", "bucket_name", name="uq_user_bucket_name"),
        # at most one default per user, whatever the application layer does
        Index(
            "uq_user_default_bucket",
            "user_id",
            unique=True,
            sqlite_where=text("is_default = 1"),
            postgresql_where=text("is_default"),
        ),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    bucket_name: Mapped[str] = mapped_column(String(63), nullable=False)
    region: Mapped[str] = mapped_column(String(64), nullable=False)
    access_key_id: Mapped[str] = mapped_column(String(128), nullable=False)
    secret_key_encrypted: Mapped[str] = mapped_column(Text, nullable=False)
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False)

    user: Mapped[User] = relationship(back_populates="connections")

    def __repr__(self) -> str:
        return f"BucketConnection(id={self.id!r}, user_id={self.user_id!r}, bucket_name={self.bucket_name!r})"
