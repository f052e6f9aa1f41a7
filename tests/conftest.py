"""
PyTest configuration and fixtures for ExcelVC Agent tests.

Provides:
- A fresh SQLite store per test under tmp_path
- A crypto envelope with a fixed test key
- Capture pipeline and restore workflow sharing one capture lock
"""

import threading

import pytest

from excelvc_agent.codec import ContentCodec
from excelvc_agent.crypto import CryptoEnvelope
from excelvc_agent.database import Database
from excelvc_agent.capture import VersionCapturePipeline
from excelvc_agent.restore import RestoreWorkflow

TEST_KEY = b"0123456789abcdef0123456789abcdef"


@pytest.fixture
def db(tmp_path):
    database = Database(str(tmp_path / "store" / "excelvc.db"))
    database.init()
    return database


@pytest.fixture
def codec():
    return ContentCodec()


@pytest.fixture
def envelope():
    return CryptoEnvelope(TEST_KEY)


@pytest.fixture
def capture_lock():
    return threading.Lock()


@pytest.fixture
def pipeline(db, codec, envelope, capture_lock):
    return VersionCapturePipeline(
        db=db,
        codec=codec,
        envelope=envelope,
        capture_lock=capture_lock,
        poll_interval=0.01
    )


@pytest.fixture
def restorer(db, codec, envelope, capture_lock):
    return RestoreWorkflow(db=db, codec=codec, envelope=envelope, capture_lock=capture_lock)


@pytest.fixture
def docs(tmp_path):
    """A watched-folder stand-in."""
    folder = tmp_path / "docs"
    folder.mkdir()
    return folder


@pytest.fixture
def stored_content(db, codec, envelope):
    """Decrypt and decompress a stored version."""
    def read(file_id, version_number):
        payload = db.get_version_payload(file_id, version_number)
        return codec.decompress(envelope.open(payload))
    return read
