"""
Unit tests for the relational store adapter against a real SQLite file.
"""
import pytest

from asset_relocator.core.database import (
    POSTGRES_DIALECT,
    SQLITE_DIALECT,
    AssetStore,
    create_store_engine,
)
from asset_relocator.core.exceptions import StoreUnavailable


class TestCreateStoreEngine:

    def test_missing_sqlite_file_is_unavailable(self, settings):
        with pytest.raises(StoreUnavailable) as exc_info:
            create_store_engine(settings)
        assert "SQLite database not found" in str(exc_info.value)

    def test_postgres_without_url_is_unavailable(self, make_settings):
        settings = make_settings(database_client="postgres", database_url=None, database_private_url=None)
        with pytest.raises(StoreUnavailable):
            create_store_engine(settings)

    def test_from_settings_picks_dialect(self, settings, asset_db):
        store = AssetStore.from_settings(settings)
        try:
            assert store.dialect is SQLITE_DIALECT
            assert store.client == "sqlite"
            assert store.database_path() == asset_db
        finally:
            store.dispose()

    def test_dialect_now_functions_differ(self):
        assert SQLITE_DIALECT.now_function == "datetime('now')"
        assert POSTGRES_DIALECT.now_function == "NOW()"


class TestAssetQueries:

    def test_get_source_files_filters_by_provider_and_orders_by_id(self, asset_store, insert_assets):
        insert_assets(
            {"id": 3},
            {"id": 1},
            {"id": 2, "provider": "aws-s3", "url": "https://cdn.example/hash2.png"},
        )

        records = asset_store.get_source_files()

        assert [record.id for record in records] == [1, 3]
        assert all(record.provider == "cloudinary" for record in records)

    def test_json_columns_are_decoded(self, asset_store, insert_assets):
        insert_assets({"id": 1})

        record = asset_store.get_source_files()[0]

        assert record.formats == {"thumbnail": {"url": "thumb.png"}}
        assert record.provider_metadata == {"public_id": "hash1"}
        assert record.storage_key == "hash1.png"
        assert record.size_bytes == 1536

    def test_update_file_to_destination(self, asset_store, insert_assets):
        insert_assets({"id": 1})

        updated = asset_store.update_file_to_destination(1, "https://cdn.example/hash1.png")

        assert updated == 1
        record = asset_store.get_file_by_id(1)
        assert record.provider == "aws-s3"
        assert record.url == "https://cdn.example/hash1.png"
        assert record.formats is None
        assert record.provider_metadata is None
        assert record.updated_at is not None

    def test_update_unknown_record_matches_nothing(self, asset_store, insert_assets):
        insert_assets({"id": 1})
        assert asset_store.update_file_to_destination(999, "https://cdn.example/x.png") == 0

    def test_count_by_provider(self, asset_store, insert_assets):
        insert_assets({"id": 1}, {"id": 2}, {"id": 3, "provider": "aws-s3"})

        assert asset_store.count_by_provider("cloudinary") == 2
        assert asset_store.count_by_provider("aws-s3") == 1
        assert asset_store.count_by_provider("local") == 0

    def test_query_one_returns_none_when_missing(self, asset_store):
        assert asset_store.query_one("SELECT * FROM files WHERE id = :id", {"id": 1}) is None
        assert asset_store.get_file_by_id(1) is None


class TestTransactions:

    def test_rollback_discards_update(self, asset_store, insert_assets):
        insert_assets({"id": 1})

        asset_store.begin_transaction()
        asset_store.update_file_to_destination(1, "https://cdn.example/hash1.png")
        asset_store.rollback()

        assert asset_store.get_file_by_id(1).provider == "cloudinary"

    def test_commit_is_visible_to_other_connections(self, asset_store, insert_assets):
        insert_assets({"id": 1})
        worker = asset_store.clone()

        worker.begin_transaction()
        worker.update_file_to_destination(1, "https://cdn.example/hash1.png")
        worker.commit()
        worker.close()

        assert asset_store.get_file_by_id(1).provider == "aws-s3"

    def test_nested_begin_is_rejected(self, asset_store):
        asset_store.begin_transaction()
        with pytest.raises(RuntimeError):
            asset_store.begin_transaction()
        asset_store.rollback()
        assert not asset_store.in_transaction

    def test_commit_without_transaction_is_rejected(self, asset_store):
        with pytest.raises(RuntimeError):
            asset_store.commit()

    def test_rollback_without_transaction_is_noop(self, asset_store):
        asset_store.rollback()
        assert not asset_store.in_transaction

    def test_clone_owns_separate_connection(self, asset_store):
        clone = asset_store.clone()
        try:
            assert clone.engine is asset_store.engine
            assert clone.connection is not asset_store.connection
            assert clone.source_provider == asset_store.source_provider
        finally:
            clone.close()
