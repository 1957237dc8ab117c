import json

import httpx
import pytest
from pytest_httpx import HTTPXMock

from heal_dataverse.errors import SchemaFetchError, ValidationError
from heal_dataverse.schema import (
    FieldKind,
    FieldSpec,
    HealSchema,
    SchemaLoader,
    clear_schema_cache,
)

pytestmark = pytest.mark.unit

SCHEMA_URL = "https://heal.example.org/heal-schema-latest.json"


@pytest.fixture(autouse=True)
def _fresh_cache():
    clear_schema_cache()
    yield
    clear_schema_cache()


def test_from_document_builds_field_lookup(heal_schema_document):
    schema = HealSchema.from_document(heal_schema_document)

    stage = schema.field_spec("study_type", "study_stage")
    assert stage.kind is FieldKind.ARRAY
    assert stage.item_kind is FieldKind.STRING
    assert stage.items_enumerated
    assert "Stage 1" in stage.item_enum_values

    status = schema.field_spec("data", "data_collection_status")
    assert status.kind is FieldKind.STRING
    assert status.is_enumerated

    count = schema.field_spec("data", "subject_data_unit_of_collection_expected_number")
    assert count.kind is FieldKind.INTEGER
    assert not count.is_enumerated


def test_field_spec_returns_none_for_undeclared_fields(heal_schema_document):
    schema = HealSchema.from_document(heal_schema_document)
    assert schema.field_spec("metadata_location", "legacy_tracking_code") is None
    assert schema.field_spec("no_such_category", "anything") is None


def test_type_list_resolves_to_first_non_null_type():
    spec = FieldSpec.from_node({"type": ["null", "integer"]})
    assert spec.kind is FieldKind.INTEGER


def test_unknown_type_is_marked_unknown():
    assert FieldSpec.from_node({"type": "date"}).kind is FieldKind.UNKNOWN
    assert FieldSpec.from_node({}).kind is FieldKind.UNKNOWN


def test_validate_record_accepts_valid_record(heal_schema_document, heal_record):
    schema = HealSchema.from_document(heal_schema_document)
    heal_record["study_type"]["study_stage"] = ["Stage 1"]
    schema.validate_record(heal_record)


def test_validate_record_reports_every_violation(heal_schema_document, heal_record):
    schema = HealSchema.from_document(heal_schema_document)
    heal_record["data"]["subject_data_unit_of_collection_expected_number"] = "many"
    heal_record["data"]["data_available"] = "everything"
    heal_record["study_type"]["study_stage"] = ["Stage 1"]

    with pytest.raises(ValidationError) as excinfo:
        schema.validate_record(heal_record)

    diagnostics = excinfo.value.diagnostics
    assert len(diagnostics) == 2
    assert any("$.data.data_available" in d for d in diagnostics)
    assert any("subject_data_unit_of_collection_expected_number" in d for d in diagnostics)


def test_validate_record_reports_missing_required_category(heal_schema_document):
    schema = HealSchema.from_document(heal_schema_document)
    with pytest.raises(ValidationError, match="minimal_info"):
        schema.validate_record({})


@pytest.mark.asyncio
async def test_loader_reads_local_file(schema_path):
    schema = await SchemaLoader(str(schema_path)).load()
    assert "minimal_info" in schema.categories


@pytest.mark.asyncio
async def test_loader_missing_file_raises(tmp_path):
    with pytest.raises(SchemaFetchError):
        await SchemaLoader(str(tmp_path / "missing.json")).load()


@pytest.mark.asyncio
async def test_loader_invalid_json_file_raises(tmp_path):
    bad = tmp_path / "bad.json"
    bad.write_text("{not json")
    with pytest.raises(SchemaFetchError, match="invalid JSON"):
        await SchemaLoader(str(bad)).load()


@pytest.mark.asyncio
async def test_loader_fetches_remote_schema_once(
    heal_schema_document, httpx_mock: HTTPXMock
):
    """The schema is fetched on first use and served from the cache afterwards."""
    httpx_mock.add_response(method="GET", url=SCHEMA_URL, json=heal_schema_document)

    async with httpx.AsyncClient() as client:
        first = await SchemaLoader(SCHEMA_URL, client=client).load()
        second = await SchemaLoader(SCHEMA_URL, client=client).load()

    assert first is second
    assert len(httpx_mock.get_requests()) == 1


@pytest.mark.asyncio
async def test_loader_remote_http_error_raises(httpx_mock: HTTPXMock):
    httpx_mock.add_response(method="GET", url=SCHEMA_URL, status_code=404)

    with pytest.raises(SchemaFetchError, match="404"):
        await SchemaLoader(SCHEMA_URL).load()


@pytest.mark.asyncio
async def test_loader_failure_is_not_cached(heal_schema_document, httpx_mock: HTTPXMock):
    httpx_mock.add_response(method="GET", url=SCHEMA_URL, status_code=503)
    httpx_mock.add_response(method="GET", url=SCHEMA_URL, json=heal_schema_document)

    loader = SchemaLoader(SCHEMA_URL)
    with pytest.raises(SchemaFetchError):
        await loader.load()
    schema = await loader.load()

    assert "citation" in schema.categories


@pytest.mark.asyncio
async def test_loader_rejects_non_object_schema(httpx_mock: HTTPXMock):
    httpx_mock.add_response(method="GET", url=SCHEMA_URL, text=json.dumps([1, 2]))

    with pytest.raises(SchemaFetchError, match="not a JSON object"):
        await SchemaLoader(SCHEMA_URL).load()
