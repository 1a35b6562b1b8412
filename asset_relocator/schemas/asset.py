"""
Asset record schema shared by the store adapter, engine and backups.
"""
import json
from typing import Any, Dict, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


def _decode_json_column(value: Any) -> Any:
    """Decode JSON stored as text; leave structured or invalid values untouched."""
    if isinstance(value, (bytes, bytearray)):
        value = value.decode("utf-8")
    if isinstance(value, str):
        if not value.strip():
            return None
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return value
    return value


class AssetRecord(BaseModel):
    """
    One media file row.

    ``provider`` and ``url`` always agree: a record tagged with the destination
    provider resolves at the destination store.
    """
    model_config = ConfigDict(frozen=True)

    id: Union[int, str]
    name: str = ""
    hash: str
    ext: str = ""
    mime: Optional[str] = None
    size: Optional[float] = Field(None, description="Size in kilobytes")
    url: str
    provider: str
    formats: Any = None
    provider_metadata: Any = None
    alternative_text: Optional[str] = None
    caption: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    folder_path: Optional[str] = None
    created_at: Any = None
    updated_at: Any = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "AssetRecord":
        """Build a record from a database row mapping."""
        data: Dict[str, Any] = dict(row)
        data["formats"] = _decode_json_column(data.get("formats"))
        data["provider_metadata"] = _decode_json_column(data.get("provider_metadata"))
        data["ext"] = data.get("ext") or ""
        data["name"] = data.get("name") or ""
        known = {name: data.get(name) for name in cls.model_fields if name in data}
        return cls(**known)

    @property
    def storage_key(self) -> str:
        """Content-addressed destination key: hash + extension."""
        return f"{self.hash}{self.ext}"

    @property
    def size_bytes(self) -> Optional[int]:
        if self.size is None:
            return None
        return int(round(self.size * 1024))
