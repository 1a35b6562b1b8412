"""
Pytest fixtures shared across the unit and CLI suites.

Every test runs against a real SQLite file in ``tmp_path`` created from the
SQLModel table definition; object stores and source URLs are faked.
"""
from __future__ import annotations

import json
from pathlib import Path
from typing import Callable, Dict, Iterable, Optional, Set
from unittest.mock import MagicMock

import httpx
import pytest
from botocore.exceptions import ClientError
from sqlmodel import Session, SQLModel, create_engine

from asset_relocator.core.config import Settings
from asset_relocator.core.database import AssetStore
from asset_relocator.models.file_asset import FileAsset
from asset_relocator.services.object_storage import ObjectStoreClient
from asset_relocator.services.source_client import SourceClient

TEST_ENDPOINT = "https://acct123.r2.cloudflarestorage.com"
TEST_PUBLIC_URL = "https://cdn.example"


def client_error(status: int, code: Optional[str] = None, operation: str = "HeadObject") -> ClientError:
    """botocore ClientError with the given HTTP status."""
    return ClientError(
        {
            "Error": {"Code": code or str(status), "Message": "error"},
            "ResponseMetadata": {"HTTPStatusCode": status},
        },
        operation,
    )


@pytest.fixture
def make_client_error() -> Callable[..., ClientError]:
    return client_error


@pytest.fixture
def make_settings(tmp_path: Path) -> Callable[..., Settings]:
    """Factory for Settings isolated from .env files and pointed at tmp_path."""

    def _make(**overrides) -> Settings:
        values = dict(
            database_filename=str(tmp_path / "data.db"),
            backup_dir=str(tmp_path / "backups"),
            log_dir=str(tmp_path / "logs"),
            migration_state_file=str(tmp_path / "migration-state.json"),
            aws_access_key_id="test-key",
            aws_access_secret="test-secret",
            aws_bucket="media",
            aws_endpoint=TEST_ENDPOINT,
            r2_public_url=TEST_PUBLIC_URL,
            download_retry_delay=0,
        )
        values.update(overrides)
        return Settings(_env_file=None, **values)

    return _make


@pytest.fixture
def settings(make_settings) -> Settings:
    return make_settings()


@pytest.fixture
def asset_db(settings: Settings) -> Path:
    """Empty SQLite database with the asset table."""
    settings.sqlite_path.parent.mkdir(parents=True, exist_ok=True)
    engine = create_engine(f"sqlite:///{settings.sqlite_path}")
    SQLModel.metadata.create_all(engine)
    engine.dispose()
    return settings.sqlite_path


@pytest.fixture
def insert_assets(asset_db: Path) -> Callable[..., None]:
    """
    Insert asset rows; each dict needs an ``id``, everything else defaults
    to a source-tagged PNG whose hash is derived from the id.
    """

    def _insert(*assets: Dict) -> None:
        engine = create_engine(f"sqlite:///{asset_db}")
        with Session(engine) as session:
            for values in assets:
                file_id = values["id"]
                row = {
                    "name": f"image-{file_id}.png",
                    "hash": f"hash{file_id}",
                    "ext": ".png",
                    "mime": "image/png",
                    "size": 1.5,
                    "url": f"https://res.cloudinary.com/demo/image/upload/hash{file_id}.png",
                    "provider": "cloudinary",
                    "formats": json.dumps({"thumbnail": {"url": "thumb.png"}}),
                    "provider_metadata": json.dumps({"public_id": f"hash{file_id}"}),
                }
                row.update(values)
                session.add(FileAsset(**row))
            session.commit()
        engine.dispose()

    return _insert


@pytest.fixture
def asset_store(settings: Settings, asset_db: Path) -> AssetStore:
    store = AssetStore.from_settings(settings)
    yield store
    store.dispose()


@pytest.fixture
def s3_client() -> MagicMock:
    """boto3 S3 client stand-in; every object is absent until told otherwise."""
    client = MagicMock()
    client.head_object.side_effect = client_error(404, "NotFound")
    return client


@pytest.fixture
def object_store(settings: Settings, s3_client: MagicMock) -> ObjectStoreClient:
    return ObjectStoreClient.from_settings(settings, client=s3_client)


class FakeSource:
    """Programmable source provider behind an httpx.MockTransport."""

    def __init__(self):
        self.missing: Set[str] = set()
        self.failing: Set[str] = set()
        self.requests = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.requests.append((request.method, url))
        if url in self.missing:
            return httpx.Response(404)
        if request.method == "GET" and url in self.failing:
            return httpx.Response(500)
        return httpx.Response(200, content=f"payload:{request.url.path}".encode())

    def methods_for(self, url: str) -> Iterable[str]:
        return [method for method, requested in self.requests if requested == url]


@pytest.fixture
def fake_source() -> FakeSource:
    return FakeSource()


@pytest.fixture
def source_client(fake_source: FakeSource) -> SourceClient:
    client = SourceClient(
        retries=3,
        retry_delay=0,
        transport=httpx.MockTransport(fake_source.handler),
        sleep=lambda seconds: None,
    )
    yield client
    client.close()
