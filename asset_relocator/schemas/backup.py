"""
Backup artifact schemas.
"""
from pathlib import Path
from typing import Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from asset_relocator.schemas.asset import AssetRecord


class BackupMetadata(BaseModel):
    """Header of the JSON export."""
    backup_date: str
    database_type: str
    source_provider: str
    total_files: int


class ExportedFile(BaseModel):
    """Per-record entry of the JSON export."""
    model_config = ConfigDict(populate_by_name=True)

    id: Union[int, str]
    name: str
    alternative_text: Optional[str] = Field(None, serialization_alias="alternativeText")
    caption: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    hash: str
    ext: str
    mime: Optional[str] = None
    size: Optional[float] = None
    url: str
    formats: Any = None
    provider: str
    provider_metadata: Any = None
    folder_path: Optional[str] = Field(None, serialization_alias="folderPath")
    created_at: Optional[str] = Field(None, serialization_alias="createdAt")
    updated_at: Optional[str] = Field(None, serialization_alias="updatedAt")

    @classmethod
    def from_record(cls, record: AssetRecord) -> "ExportedFile":
        return cls(
            id=record.id,
            name=record.name,
            alternative_text=record.alternative_text,
            caption=record.caption,
            width=record.width,
            height=record.height,
            hash=record.hash,
            ext=record.ext,
            mime=record.mime,
            size=record.size,
            url=record.url,
            formats=record.formats,
            provider=record.provider,
            provider_metadata=record.provider_metadata,
            folder_path=record.folder_path,
            created_at=None if record.created_at is None else str(record.created_at),
            updated_at=None if record.updated_at is None else str(record.updated_at),
        )


class BackupExport(BaseModel):
    """Self-describing snapshot of all source-tagged records."""
    backup_metadata: BackupMetadata
    files: List[ExportedFile]


class BackupInfo(BaseModel):
    """Artifacts produced by one backup invocation."""
    timestamp: str
    database_type: str
    database_backup: Path
    json_backup: Path
    csv_backup: Path
    report: Optional[Path] = None
    total_files: int
    total_size_kb: Optional[float] = None
    status: str = "COMPLETED"

    def artifacts(self) -> List[Path]:
        paths = [self.database_backup, self.json_backup, self.csv_backup]
        if self.report is not None:
            paths.append(self.report)
        return paths


class BackupSet(BaseModel):
    """Artifacts in a backup directory sharing one timestamp token."""
    timestamp: str
    files: List[str] = Field(default_factory=list)

    def database_artifact(self) -> Optional[str]:
        """Name of the database snapshot within this set, if any."""
        for name in self.files:
            if name.startswith("data.db.backup-") or name.endswith(".sql"):
                return name
        return None
