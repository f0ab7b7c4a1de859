import os
from urllib.parse import quote
from typing import Optional

import structlog
import uvicorn
from fastapi import Depends, FastAPI, Query, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, StreamingResponse
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from .auth import current_user_id
from .config import VERSION, Settings, load_settings
from .crypto import CredentialCipher
from .db import init_db, make_engine, make_session_factory, wait_for_db
from .errors import S3VaultError
from .logconfig import configure_logging
from .namespace import ListingFilter, create_folder, list_entries, open_object, path_to_prefix
from .registry import BucketRegistry
from .schemas import (
    BucketCreate,
    BucketList,
    BucketOut,
    BucketTest,
    FolderCreate,
    FolderOut,
    MessageOut,
    ObjectEntryOut,
    ObjectList,
    ProfileOut,
    ShareOut,
    ShareRequest,
)
from .sharing import issue_download_link
from .storage import Credentials, StorageSession

logger = structlog.get_logger(__name__)


# ---------- Dependencies ----------

def get_db(request: Request):
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()


def get_registry(request: Request, db: Session = Depends(get_db)) -> BucketRegistry:
    return BucketRegistry(db, request.app.state.cipher)


def open_storage(request: Request, registry: BucketRegistry, user_id: str, bucket_id: Optional[str]) -> StorageSession:
    connection = registry.resolve_active(user_id, bucket_id)
    creds = registry.decrypted_credentials(connection)
    return request.app.state.storage_factory(creds)


def content_disposition(filename: str) -> str:
    """Attachment header safe for any S3 key: an ASCII ``filename`` plus the
    RFC 5987 ``filename*`` carrying the real UTF-8 name."""
    fallback = "".join(c if " " <= c <= "~" and c not in '"\\' else "_" for c in filename)
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename, safe='')}"


# ---------- App ----------

def create_app(settings: Optional[Settings] = None, engine: Optional[Engine] = None) -> FastAPI:
    settings = settings or load_settings()
    configure_logging(settings.log_level, settings.log_json)
    engine = engine or make_engine(settings.database_url)

    app = FastAPI(title="S3 Vault", version=VERSION)
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = make_session_factory(engine)
    app.state.cipher = CredentialCipher(settings.encryption_key)
    app.state.storage_factory = lambda creds: StorageSession.open(
        creds,
        endpoint_url=settings.s3_endpoint_url,
        addressing_style=settings.s3_addressing_style,
    )

    @app.on_event("startup")
    def startup():
        wait_for_db(engine)
        init_db(engine)
        logger.info("startup_complete", version=VERSION)

    @app.exception_handler(S3VaultError)
    def handle_vault_error(request: Request, exc: S3VaultError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    def handle_request_validation(request: Request, exc: RequestValidationError):
        fields = [".".join(str(p) for p in err.get("loc", ())[1:]) for err in exc.errors()]
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "Invalid request", "code": "VALIDATION_ERROR", "fields": fields},
        )

    @app.get("/health")
    def health():
        return {"status": "ok", "version": VERSION}

    @app.get("/profile", response_model=ProfileOut)
    def profile(user_id: str = Depends(current_user_id), registry: BucketRegistry = Depends(get_registry)):
        return registry.profile(user_id)

    # ---------- Buckets ----------

    @app.get("/buckets", response_model=BucketList)
    def list_buckets(user_id: str = Depends(current_user_id), registry: BucketRegistry = Depends(get_registry)):
        return {"buckets": registry.list_buckets(user_id)}

    @app.post("/buckets", response_model=BucketOut, status_code=status.HTTP_201_CREATED)
    def add_bucket(
        payload: BucketCreate,
        user_id: str = Depends(current_user_id),
        registry: BucketRegistry = Depends(get_registry),
    ):
        return registry.add_bucket(
            user_id,
            name=payload.name,
            bucket_name=payload.bucket_name,
            region=payload.region,
            access_key_id=payload.access_key_id,
            secret_key=payload.secret_access_key,
            requested_default=payload.is_default,
        )

    @app.post("/buckets/test", response_model=MessageOut)
    def test_bucket(payload: BucketTest, request: Request, user_id: str = Depends(current_user_id)):
        creds = Credentials(
            access_key_id=payload.access_key_id,
            secret_key=payload.secret_access_key,
            region=payload.region,
            bucket_name=payload.bucket_name,
        )
        request.app.state.storage_factory(creds).probe()
        return {"message": "Connection successful!"}

    @app.put("/buckets/{bucket_id}/default", response_model=MessageOut)
    def set_default(bucket_id: str, user_id: str = Depends(current_user_id), registry: BucketRegistry = Depends(get_registry)):
        registry.set_default(user_id, bucket_id)
        return {"message": "Default bucket updated successfully"}

    @app.delete("/buckets/{bucket_id}", response_model=MessageOut)
    def remove_bucket(bucket_id: str, user_id: str = Depends(current_user_id), registry: BucketRegistry = Depends(get_registry)):
        registry.remove_bucket(user_id, bucket_id)
        return {"message": "Bucket removed successfully"}

    # ---------- Objects ----------

    @app.get("/files", response_model=ObjectList)
    def list_files(
        request: Request,
        bucket_id: Optional[str] = None,
        path: str = "",
        type: str = Query(default="all"),
        search: str = "",
        user_id: str = Depends(current_user_id),
        registry: BucketRegistry = Depends(get_registry),
    ):
        storage = open_storage(request, registry, user_id, bucket_id)
        entries = list_entries(storage, path_to_prefix(path), ListingFilter(type=type, search=search))
        return {"files": [ObjectEntryOut.model_validate(e) for e in entries]}

    @app.post("/folders", response_model=FolderOut, status_code=status.HTTP_201_CREATED)
    def make_folder(
        payload: FolderCreate,
        request: Request,
        user_id: str = Depends(current_user_id),
        registry: BucketRegistry = Depends(get_registry),
    ):
        storage = open_storage(request, registry, user_id, payload.bucket_id)
        folder_path = create_folder(storage, payload.parent_path, payload.folder_name)
        logger.info("folder_created", user_id=user_id, bucket=storage.bucket_name, folder_path=folder_path)
        return {"message": "Folder created successfully", "folder_path": folder_path}

    @app.post("/share", response_model=ShareOut)
    def share(
        payload: ShareRequest,
        request: Request,
        user_id: str = Depends(current_user_id),
        registry: BucketRegistry = Depends(get_registry),
    ):
        storage = open_storage(request, registry, user_id, payload.bucket_id)
        ttl = payload.ttl_seconds if payload.ttl_seconds is not None else settings.share_link_ttl
        grant = issue_download_link(storage, payload.key, ttl)
        return {"url": grant.url, "expires_at": grant.expires_at}

    @app.get("/download")
    def download(
        request: Request,
        key: str = "",
        bucket_id: Optional[str] = None,
        user_id: str = Depends(current_user_id),
        registry: BucketRegistry = Depends(get_registry),
    ):
        storage = open_storage(request, registry, user_id, bucket_id)
        obj = open_object(storage, key)
        headers = {"Content-Disposition": content_disposition(obj.filename)}
        if obj.content_length is not None:
            headers["Content-Length"] = str(obj.content_length)
        return StreamingResponse(obj.chunks, media_type=obj.content_type, headers=headers)

    return app


def run():
    uvicorn.run(
        create_app(),
        host=os.environ.get("HOST", "127.0.0.1"),
        port=int(os.environ.get("PORT", "8000")),
        log_config=None,
    )
