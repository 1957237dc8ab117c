# Copyright 2025 Gowtham Rao <rao@ohdsi.org>
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
"""Loads the HEAL JSON schema and turns it into a typed field lookup."""

import json
import logging
from enum import Enum
from pathlib import Path
from typing import Any

import httpx
from jsonschema import Draft202012Validator
from pydantic import BaseModel, ConfigDict, PrivateAttr

from .errors import SchemaFetchError, ValidationError

logger = logging.getLogger(__name__)

USER_AGENT = "heal-dataverse/0.1.0"


class FieldKind(str, Enum):
    STRING = "string"
    INTEGER = "integer"
    NUMBER = "number"
    BOOLEAN = "boolean"
    ARRAY = "array"
    OBJECT = "object"
    UNKNOWN = "unknown"


def _resolve_kind(node: dict[str, Any] | None) -> FieldKind:
    """Read the JSON schema `type` of a node, skipping "null" in type lists."""
    if not isinstance(node, dict):
        return FieldKind.UNKNOWN
    declared = node.get("type")
    if isinstance(declared, list):
        declared = next((t for t in declared if t != "null"), None)
    try:
        return FieldKind(declared)
    except ValueError:
        return FieldKind.UNKNOWN


class FieldSpec(BaseModel):
    """What the schema declares about one second-level HEAL field."""

    model_config = ConfigDict(frozen=True)

    kind: FieldKind
    enum_values: tuple[Any, ...] | None = None
    item_kind: FieldKind | None = None
    item_enum_values: tuple[Any, ...] | None = None

    @property
    def is_enumerated(self) -> bool:
        return self.enum_values is not None

    @property
    def items_enumerated(self) -> bool:
        return self.item_enum_values is not None

    @classmethod
    def from_node(cls, node: dict[str, Any]) -> "FieldSpec":
        kind = _resolve_kind(node)
        enum_values = tuple(node["enum"]) if "enum" in node else None
        item_kind = None
        item_enum_values = None
        if kind is FieldKind.ARRAY:
            items = node.get("items")
            item_kind = _resolve_kind(items)
            if isinstance(items, dict) and "enum" in items:
                item_enum_values = tuple(items["enum"])
        return cls(
            kind=kind,
            enum_values=enum_values,
            item_kind=item_kind,
            item_enum_values=item_enum_values,
        )


class HealSchema(BaseModel):
    """A parsed HEAL schema: the raw document plus a category/field lookup.

    Built once per schema document and never mutated afterwards, so one
    instance can serve any number of concurrent conversions.
    """

    model_config = ConfigDict(frozen=True)

    document: dict[str, Any]
    categories: dict[str, dict[str, FieldSpec]]

    _validator: Draft202012Validator = PrivateAttr()

    def model_post_init(self, __context: Any) -> None:
        self._validator = Draft202012Validator(self.document)

    @classmethod
    def from_document(cls, document: dict[str, Any]) -> "HealSchema":
        categories: dict[str, dict[str, FieldSpec]] = {}
        for category, node in document.get("properties", {}).items():
            if not isinstance(node, dict):
                continue
            categories[category] = {
                key: FieldSpec.from_node(field_node)
                for key, field_node in node.get("properties", {}).items()
                if isinstance(field_node, dict)
            }
        return cls(document=document, categories=categories)

    def field_spec(self, category: str, key: str) -> FieldSpec | None:
        """Return the declared spec for `category.key`, or None if undeclared."""
        return self.categories.get(category, {}).get(key)

    def validate_record(self, record: dict[str, Any]) -> None:
        """Raise ValidationError listing every schema violation in `record`."""
        errors = sorted(
            self._validator.iter_errors(record), key=lambda e: list(map(str, e.path))
        )
        if errors:
            diagnostics = [f"{e.json_path}: {e.message}" for e in errors]
            for diagnostic in diagnostics:
                logger.debug("Schema violation %s", diagnostic)
            raise ValidationError(diagnostics)


# Parsed schemas keyed by location, shared by every loader in the process.
_SCHEMA_CACHE: dict[str, HealSchema] = {}


def clear_schema_cache() -> None:
    _SCHEMA_CACHE.clear()


class SchemaLoader:
    """Fetches the HEAL schema from a URL or a local file.

    The first successful load of a location is cached for the lifetime of
    the process; failures are never cached and are not retried.
    """

    def __init__(
        self,
        location: str,
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ) -> None:
        self.location = location
        self.client = client
        self.timeout = timeout

    @property
    def is_remote(self) -> bool:
        return self.location.startswith(("http://", "https://"))

    async def _fetch_remote(self) -> dict[str, Any]:
        client = self.client or httpx.AsyncClient(
            headers={"User-Agent": USER_AGENT},
            follow_redirects=True,
            timeout=self.timeout,
        )
        try:
            response = await client.get(self.location)
            response.raise_for_status()
            return response.json()
        except (httpx.RequestError, httpx.HTTPStatusError) as e:
            logger.error("Failed to fetch HEAL schema: %s", e)
            raise SchemaFetchError(self.location, str(e)) from e
        except json.JSONDecodeError as e:
            raise SchemaFetchError(self.location, f"invalid JSON: {e}") from e
        finally:
            if self.client is None:
                await client.aclose()

    def _read_local(self) -> dict[str, Any]:
        try:
            with open(Path(self.location), encoding="utf-8") as f:
                return json.load(f)
        except OSError as e:
            logger.error("Failed to read HEAL schema: %s", e)
            raise SchemaFetchError(self.location, str(e)) from e
        except json.JSONDecodeError as e:
            raise SchemaFetchError(self.location, f"invalid JSON: {e}") from e

    async def load(self) -> HealSchema:
        """Return the parsed schema, fetching it on first use."""
        cached = _SCHEMA_CACHE.get(self.location)
        if cached is not None:
            return cached

        logger.info("Loading HEAL schema from %s", self.location)
        if self.is_remote:
            document = await self._fetch_remote()
        else:
            document = self._read_local()
        if not isinstance(document, dict):
            raise SchemaFetchError(self.location, "schema is not a JSON object")

        schema = HealSchema.from_document(document)
        _SCHEMA_CACHE[self.location] = schema
        return schema
