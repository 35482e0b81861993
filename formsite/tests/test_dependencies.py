import tempfile
import unittest
from pathlib import Path
from unittest import mock

from formsite.config import Settings
from formsite.db import JsonFileDbClient, PostgresDbClient, SqliteDbClient
from formsite.dependencies import select_db_client
from formsite.errors import StorageError


class SelectDbClientTests(unittest.TestCase):
    def setUp(self):
        self.tmp = Path(self.enterContext(tempfile.TemporaryDirectory()))

    def settings(self, **overrides) -> Settings:
        values = dict(
            storage_backend="auto",
            database_url=None,
            force_file_store=False,
            db_ssl_disable=False,
            sqlite_path=str(self.tmp / "data.sqlite"),
            json_store_path=str(self.tmp / "data.json"),
        )
        values.update(overrides)
        return Settings(**values)

    def test_sqlite_mode(self):
        client = select_db_client(self.settings(storage_backend="sqlite"))
        self.assertIsInstance(client, SqliteDbClient)
        self.assertTrue((self.tmp / "data.sqlite").exists())

    def test_json_mode(self):
        client = select_db_client(self.settings(storage_backend="json"))
        self.assertIsInstance(client, JsonFileDbClient)

    def test_auto_without_url_uses_json_store(self):
        client = select_db_client(self.settings())
        self.assertIsInstance(client, JsonFileDbClient)
        self.assertEqual(client.path, self.tmp / "data.json")

    def test_auto_with_reachable_database(self):
        url = f"sqlite+pysqlite:///{self.tmp / 'remote.sqlite'}"
        client = select_db_client(self.settings(database_url=url))
        self.assertIsInstance(client, PostgresDbClient)

    def test_auto_forced_file_store(self):
        url = f"sqlite+pysqlite:///{self.tmp / 'remote.sqlite'}"
        client = select_db_client(self.settings(database_url=url, force_file_store=True))
        self.assertIsInstance(client, JsonFileDbClient)
        self.assertFalse((self.tmp / "remote.sqlite").exists())

    def test_auto_falls_back_when_database_fails(self):
        with mock.patch(
            "formsite.dependencies.PostgresDbClient",
            side_effect=StorageError("connection refused"),
        ) as factory, self.assertLogs("formsite.dependencies", level="WARNING"):
            client = select_db_client(
                self.settings(database_url="postgresql://u@db/site", db_ssl_disable=True)
            )
        self.assertIsInstance(client, JsonFileDbClient)
        factory.assert_called_once_with("postgresql://u@db/site", ssl_disabled=True)

    def test_postgres_mode_failure_propagates(self):
        with mock.patch(
            "formsite.dependencies.PostgresDbClient",
            side_effect=StorageError("connection refused"),
        ):
            with self.assertRaises(StorageError):
                select_db_client(
                    self.settings(
                        storage_backend="postgres", database_url="postgresql://u@db/site"
                    )
                )

    def test_postgres_mode_requires_url(self):
        with self.assertRaises(ValueError):
            select_db_client(self.settings(storage_backend="postgres"))


if __name__ == "__main__":
    unittest.main()
