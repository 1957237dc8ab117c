import copy
import json
from pathlib import Path

import pytest

DATA_DIR = Path(__file__).parent / "data"
SCHEMA_PATH = DATA_DIR / "heal_schema.json"
RECORD_PATH = DATA_DIR / "heal_record.json"


def _load(path: Path) -> dict:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


@pytest.fixture(scope="session")
def _schema_document() -> dict:
    return _load(SCHEMA_PATH)


@pytest.fixture
def heal_schema_document(_schema_document: dict) -> dict:
    """The raw HEAL JSON schema used throughout the tests."""
    return copy.deepcopy(_schema_document)


@pytest.fixture
def heal_record() -> dict:
    """A complete, valid HEAL record; each test gets a fresh copy."""
    return _load(RECORD_PATH)


@pytest.fixture
def schema_path() -> Path:
    return SCHEMA_PATH


@pytest.fixture
def record_path() -> Path:
    return RECORD_PATH
