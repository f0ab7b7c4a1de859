from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

class BucketCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    bucket_name: str = Field(min_length=1, max_length=63)
    region: str = Field(min_length=1, max_length=64)
    access_key_id: str = Field(min_length=1, max_length=128)
    secret_access_key: str = Field(min_length=1)
    is_default: bool = False

class BucketTest(BaseModel):
    bucket_name: str = Field(min_length=1, max_length=63)
    region: str = Field(min_length=1, max_length=64)
    access_key_id: str = Field(min_length=1, max_length=128)
    secret_access_key: str = Field(min_length=1)

class BucketOut(BaseModel):
    id: str
    name: str
    bucket_name: str
    region: str
    is_default: bool
    created_at: datetime

    class Config:
        from_attributes = True

class BucketList(BaseModel):
    buckets: list[BucketOut]

class MessageOut(BaseModel):
    message: str

class ProfileOut(BaseModel):
    id: str
    name: str
    email: str
    created_at: datetime
    bucket_limit: int
    bucket_count: int
    has_bucket: bool

class ObjectEntryOut(BaseModel):
    key: str
    name: str
    size: int
    last_modified: datetime
    mime_type: str
    is_folder: bool

    class Config:
        from_attributes = True

class ObjectList(BaseModel):
    files: list[ObjectEntryOut]

class FolderCreate(BaseModel):
    folder_name: str
    parent_path: str = ""
    bucket_id: Optional[str] = None

class FolderOut(BaseModel):
    message: str
    folder_path: str

class ShareRequest(BaseModel):
    key: str = Field(min_length=1)
    bucket_id: Optional[str] = None
    ttl_seconds: Optional[int] = None

class ShareOut(BaseModel):
    url: str
    expires_at: datetime
