from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, Optional

import boto3
import structlog
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from .errors import ObjectNotFound, UpstreamStorageError

logger = structlog.get_logger(__name__)

DELIMITER = "/"
# listings are a single backend page; keys past this are not returned
MAX_KEYS_PER_LISTING = 1000
CHUNK_SIZE = 1024 * 1024

_MISSING_CODES = {"404", "NoSuchKey", "NotFound"}


@dataclass(frozen=True)
class Credentials:
    access_key_id: str
    secret_key: str = field(repr=False)
    region: str
    bucket_name: str


def _translate(exc: Exception, key: Optional[str] = None) -> Exception:
    if isinstance(exc, ClientError):
        error = exc.response.get("Error", {})
        code = str(error.get("Code", ""))
        message = error.get("Message") or str(exc)
        if key is not None and code in _MISSING_CODES:
            return ObjectNotFound(f"File not found: {key}")
        return UpstreamStorageError(f"S3 Error: {message}", backend_code=code or None)
    return UpstreamStorageError(f"S3 Error: {exc}")


def make_client(creds: Credentials, endpoint_url: Optional[str] = None, addressing_style: str = "auto"):
    return boto3.client(
        "s3",
        endpoint_url=endpoint_url,
        aws_access_key_id=creds.access_key_id,
        aws_secret_access_key=creds.secret_key,
        region_name=creds.region,
        config=Config(signature_version="s3v4", s3={"addressing_style": addressing_style}),
    )


class StorageSession:
    """One bucket, one set of credentials, for the lifetime of a request."""

    def __init__(self, client, bucket_name: str):
        self.client = client
        self.bucket_name = bucket_name

    @classmethod
    def open(cls, creds: Credentials, endpoint_url: Optional[str] = None, addressing_style: str = "auto") -> "StorageSession":
        return cls(make_client(creds, endpoint_url, addressing_style), creds.bucket_name)

    def list_prefix(self, prefix: str = "", delimiter: str = DELIMITER, max_keys: int = MAX_KEYS_PER_LISTING) -> Dict[str, Any]:
        try:
            resp = self.client.list_objects_v2(
                Bucket=self.bucket_name,
                Prefix=prefix,
                Delimiter=delimiter,
                MaxKeys=max_keys,
            )
        except (ClientError, BotoCoreError) as exc:
            logger.warning("list_failed", bucket=self.bucket_name, prefix=prefix, error=str(exc))
            raise _translate(exc)

        if resp.get("IsTruncated"):
            logger.info("listing_truncated", bucket=self.bucket_name, prefix=prefix, max_keys=max_keys)
        return resp

    def put_empty(self, key: str, content_type: str) -> None:
        try:
            self.client.put_object(Bucket=self.bucket_name, Key=key, Body=b"", ContentType=content_type)
        except (ClientError, BotoCoreError) as exc:
            logger.warning("put_failed", bucket=self.bucket_name, key=key, error=str(exc))
            raise _translate(exc)

    def head(self, key: str) -> Dict[str, Any]:
        try:
            return self.client.head_object(Bucket=self.bucket_name, Key=key)
        except (ClientError, BotoCoreError) as exc:
            raise _translate(exc, key=key)

    def get(self, key: str) -> Dict[str, Any]:
        try:
            return self.client.get_object(Bucket=self.bucket_name, Key=key)
        except (ClientError, BotoCoreError) as exc:
            logger.warning("get_failed", bucket=self.bucket_name, key=key, error=str(exc))
            raise _translate(exc, key=key)

    def presign_get(self, key: str, expires_in: int) -> str:
        try:
            return self.client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket_name, "Key": key},
                ExpiresIn=expires_in,
            )
        except (ClientError, BotoCoreError) as exc:
            raise _translate(exc, key=key)

    def probe(self) -> None:
        """Cheapest request that proves the credentials can read the bucket."""
        try:
            self.client.list_objects_v2(Bucket=self.bucket_name, MaxKeys=1)
        except (ClientError, BotoCoreError) as exc:
            logger.info("probe_failed", bucket=self.bucket_name, error=str(exc))
            raise _translate(exc)


def iter_body(body, chunk_size: int = CHUNK_SIZE) -> Iterator[bytes]:
    try:
        for chunk in body.iter_chunks(chunk_size=chunk_size):
            if chunk:
                yield chunk
    finally:
        body.close()
