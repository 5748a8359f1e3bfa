"""
Pytest configuration and fixtures for SCADA import tests.

Unit tests never touch live services: the database is a throwaway SQLite
file and object storage is an in-memory stand-in for the boto3 client.
"""

import os

# Never bootstrap the real database from tests.
os.environ.setdefault("SKIP_DB_INIT", "1")

import pytest
from sqlalchemy import create_engine, text

from scada_import.db import session as db_session
from scada_import.domain.imports import history
from scada_import.integrations import storage


class FakePaginator:
    def __init__(self, client):
        self.client = client

    def paginate(self, Bucket, Prefix):
        keys = sorted(key for key in self.client.objects if key.startswith(Prefix))
        yield {"Contents": [{"Key": key} for key in keys]}


class FakeS3Client:
    """Just enough of the boto3 S3 client for the storage module."""

    def __init__(self):
        self.objects = {}

    def put_object(self, Bucket, Key, Body):
        self.objects[Key] = Body
        return {"ETag": '"fake-etag"'}

    def get_paginator(self, name):
        assert name == "list_objects_v2"
        return FakePaginator(self)

    def delete_objects(self, Bucket, Delete):
        for item in Delete["Objects"]:
            self.objects.pop(item["Key"], None)
        return {}


@pytest.fixture
def fake_storage(monkeypatch):
    client = FakeS3Client()
    monkeypatch.setattr(storage, "get_storage_client", lambda: client)
    monkeypatch.setattr(storage.settings, "scada_storage_folder", "scada-csvs")
    return client


@pytest.fixture
def sqlite_engine(tmp_path, monkeypatch):
    """
    Point the service at a fresh SQLite database.

    The project_tenants table belongs to the hosted project store, so tests
    create a minimal version of it themselves.
    """
    engine = create_engine(f"sqlite:///{tmp_path / 'scada.db'}")
    monkeypatch.setattr(db_session, "_engine", engine)
    monkeypatch.setattr(history, "_table_initialized", False)

    with engine.begin() as conn:
        conn.execute(
            text(
                """
                CREATE TABLE project_tenants (
                    id VARCHAR(64) PRIMARY KEY,
                    project_id VARCHAR(64) NOT NULL,
                    name VARCHAR(255),
                    shop_name VARCHAR(255),
                    shop_number VARCHAR(32),
                    scada_import_id VARCHAR(36)
                )
                """
            )
        )
    yield engine
    engine.dispose()
