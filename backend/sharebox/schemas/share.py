from __future__ import annotations

from datetime import datetime

from pydantic import AliasChoices, BaseModel, Field


class UploadResponse(BaseModel):
    share_id: str
    expiry_description: str
    expires_at: datetime
    max_downloads: int
    file_count: int

    class Config:
        from_attributes = True


class ShareFileResponse(BaseModel):
    index: int
    name: str
    size: int = Field(validation_alias=AliasChoices("size", "size_bytes"))
    mime_type: str | None

    class Config:
        from_attributes = True


class ShareResponse(BaseModel):
    share_id: str
    files: list[ShareFileResponse]
    total_size: int
    created_at: datetime
    expires_at: datetime
    max_downloads: int
    download_count: int
    remaining_downloads: int | None
    password_protected: bool
    access_token: str | None = None
    access_token_expires_at: datetime | None = None

    class Config:
        from_attributes = True


class UnlockRequest(BaseModel):
    password: str = Field(min_length=1)
