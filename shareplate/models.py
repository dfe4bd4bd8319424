from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class StorageHandle(BaseModel):
    """Where a relayed file lives on the Telegram side."""

    model_config = ConfigDict(frozen=True)

    file_id: str
    message_id: int
    file_name: str


class FileRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    original_name: str
    storage_handle: StorageHandle
    file_size: int = Field(ge=0)
    mime_type: str
    share_code: str
    share_link: str
    uploaded_at: datetime


class FileStats(BaseModel):
    total_files: int
    total_storage_bytes: int
    today_uploads: int
    active_links: int


class UploadResponse(BaseModel):
    message: str
    files: list[FileRecord]


class RetrieveRequest(BaseModel):
    identifier: str = Field(min_length=1)


class RetrievedFile(BaseModel):
    id: str
    original_name: str
    file_size: int
    mime_type: str
    uploaded_at: datetime
    download_link: str


class RetrieveResponse(BaseModel):
    file: RetrievedFile


class AdminLoginRequest(BaseModel):
    password: str = Field(min_length=1)


class MessageResponse(BaseModel):
    message: str


class FileListResponse(BaseModel):
    files: list[FileRecord]
