"""
Asset table definition.

The table is owned by the content application; this mapping mirrors its
columns so tests and local tooling can create a compatible schema.
"""
from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel


class FileAsset(SQLModel, table=True):
    """One uploaded media file as stored by the content application."""
    __tablename__ = "files"

    id: Optional[int] = Field(default=None, primary_key=True)
    document_id: Optional[str] = Field(default=None, max_length=255)
    name: str = Field(max_length=255)
    alternative_text: Optional[str] = None
    caption: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    # JSON-encoded text in the content application's schema
    formats: Optional[str] = None
    hash: str = Field(max_length=255, index=True)
    ext: Optional[str] = Field(default=None, max_length=32)
    mime: str = Field(max_length=255)
    size: float = 0.0  # kilobytes
    url: str
    preview_url: Optional[str] = None
    provider: str = Field(max_length=255, index=True)
    provider_metadata: Optional[str] = None
    folder_path: Optional[str] = Field(default="/", max_length=255)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
