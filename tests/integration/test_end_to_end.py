import json

import pytest
from pytest_httpx import HTTPXMock
from typer.testing import CliRunner

from heal_dataverse.cli import app
from heal_dataverse.schema import clear_schema_cache

# Mark all tests in this file as integration tests
pytestmark = pytest.mark.integration

runner = CliRunner()

PROD_SCHEMA_URL = "https://heal-hdv.org/heal-schema-latest.json"


@pytest.fixture(autouse=True)
def _fresh_cache():
    clear_schema_cache()
    yield
    clear_schema_cache()


def _scalar_values(node):
    """Yield every scalar leaf of a nested JSON structure."""
    if isinstance(node, dict):
        for value in node.values():
            yield from _scalar_values(value)
    elif isinstance(node, list):
        for value in node:
            yield from _scalar_values(value)
    else:
        yield node


def test_prod_host_converts_against_remote_schema(
    tmp_path, record_path, heal_schema_document, httpx_mock: HTTPXMock
):
    """The prod host fetches the published schema and produces a full document."""
    httpx_mock.add_response(method="GET", url=PROD_SCHEMA_URL, json=heal_schema_document)
    output = tmp_path / "out.json"

    result = runner.invoke(
        app, ["convert", str(record_path), "--host", "heal-hdv.org", "--output", str(output)]
    )

    assert result.exit_code == 0
    document = json.loads(output.read_text())
    heal_fields = document["datasetVersion"]["metadataBlocks"]["heal"]["fields"]
    assert heal_fields[2]["typeName"] == "heal_citation"
    assert heal_fields[-2]["typeName"] == "registrants"
    assert heal_fields[-1]["typeName"] == "data_repositories"


def test_string_values_survive_conversion(tmp_path, record_path, schema_path, heal_record):
    """Every kept string from the record shows up somewhere in the output."""
    output = tmp_path / "out.json"
    result = runner.invoke(
        app, ["convert", str(record_path), "--schema", str(schema_path), "--output", str(output)]
    )
    assert result.exit_code == 0
    emitted = set(_scalar_values(json.loads(output.read_text())))

    dropped = {
        "",
        "LT-77",  # not declared in the schema
        "Existing",  # only the first treatment_novelty value is kept
        "true",  # coerced to Yes
        "false",  # coerced to No
        "2023-02-30",  # not a real date
        "Jane",  # names are joined as "last, first"
        "Doe",
        "John",
        "Roe",
    }
    for value in set(_scalar_values(heal_record)) - dropped:
        if isinstance(value, str):
            assert value in emitted, value
    assert "Doe, Jane" in emitted
    assert "Roe, John" in emitted


def test_config_file_selects_collection(
    tmp_path, record_path, schema_path, monkeypatch, httpx_mock: HTTPXMock
):
    monkeypatch.setenv("HEAL_API_TOKEN", "token-abc")
    config_file = tmp_path / "config.yaml"
    config_file.write_text(
        "profiles:\n"
        "  demo:\n"
        "    name: demo\n"
        "    schema_url: unused.json\n"
        "    dataverse_url: https://dv.test\n"
        "    dataverse_collection: sandbox\n"
        "  prod:\n"
        "    name: prod\n"
        "    schema_url: unused.json\n"
        "    dataverse_url: https://dv.example\n"
        "    dataverse_collection: heal\n"
    )
    httpx_mock.add_response(
        method="POST",
        url="https://dv.test/api/dataverses/sandbox/datasets",
        json={"status": "OK", "data": {"id": 7}},
    )

    result = runner.invoke(
        app,
        ["upload", str(record_path), "--schema", str(schema_path), "--config", str(config_file)],
    )

    assert result.exit_code == 0
