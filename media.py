"""
File intake and external document links.

Uploaded files are embedded in the portfolio document as base64 data URIs,
so every upload is capped. Resumes point at Google Drive files by id instead.
"""
import base64
import mimetypes
from dataclasses import dataclass, field
from typing import Optional

from config import MAX_UPLOAD_BYTES

COVER_TOO_LARGE = "File size should be less than 1MB for best performance"
FILE_TOO_LARGE = "File size should be less than 1MB. For larger files, use Google Drive links."

DRIVE_PREVIEW_URL = "https://drive.google.com/file/d/{file_id}/preview"
DRIVE_DOWNLOAD_URL = "https://drive.google.com/uc?export=download&id={file_id}"


class FileTooLarge(Exception):
    def __init__(self, message: str = FILE_TOO_LARGE, size: int = 0, limit: int = MAX_UPLOAD_BYTES):
        super().__init__(message)
        self.message = message
        self.size = size
        self.limit = limit


@dataclass(frozen=True)
class InlineFile:
    name: str
    content: bytes = field(repr=False)
    content_type: Optional[str] = None
    limit: int = MAX_UPLOAD_BYTES
    rejection_message: str = FILE_TOO_LARGE

    def __post_init__(self):
        if len(self.content) > self.limit:
            raise FileTooLarge(self.rejection_message, size=len(self.content), limit=self.limit)

    @property
    def mime_type(self) -> str:
        if self.content_type:
            return self.content_type
        guessed, _ = mimetypes.guess_type(self.name)
        return guessed or "application/octet-stream"

    def to_data_uri(self) -> str:
        encoded = base64.b64encode(self.content).decode("ascii")
        return f"data:{self.mime_type};base64,{encoded}"


def drive_preview_url(file_id: str) -> str:
    return DRIVE_PREVIEW_URL.format(file_id=file_id)


def drive_download_url(file_id: str) -> str:
    return DRIVE_DOWNLOAD_URL.format(file_id=file_id)
