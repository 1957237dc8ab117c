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
"""Converts a HEAL metadata record into a Dataverse dataset document."""

import copy
import logging
from typing import Any

from .errors import (
    MissingContactEmailError,
    MissingRequiredFieldError,
    UnsupportedIdentifierSchemeError,
)
from .models import (
    DatasetVersion,
    DataverseDataset,
    DataverseField,
    MetadataBlock,
    TypeClass,
)
from .rules import (
    NESTED_SKIPPED_KEYS,
    RELOCATED_COLLECTIONS,
    RENAMED_CATEGORIES,
    SKIPPED_CATEGORIES,
    apply_rules,
    as_text,
)
from .schema import HealSchema, SchemaLoader

logger = logging.getLogger(__name__)

SUBJECT = "Medicine, Health and Life Sciences"
SUPPORTED_ID_SCHEME = "ORCID"

# Checked in this order before any output is built.
REQUIRED_FIELDS = (
    ("citation", "heal_funded_status"),
    ("contacts_and_registrants", "registrants"),
    ("contacts_and_registrants", "contacts"),
    ("citation", "investigators"),
)


def _primitive(name: str, value: Any) -> DataverseField:
    return DataverseField(
        type_name=name,
        type_class=TypeClass.PRIMITIVE,
        multiple=False,
        value=as_text(value),
    )


def _entry_fields(entry: dict[str, Any]) -> dict[str, DataverseField]:
    """Wrap each value of a relocated collection entry as a primitive field.

    Lists become multiple primitives; nested objects have no primitive
    form and are left out.
    """
    fields = {}
    for name, value in entry.items():
        if isinstance(value, dict):
            logger.debug("Skipping nested object '%s' in relocated entry.", name)
        elif isinstance(value, list):
            fields[name] = DataverseField(
                type_name=name,
                type_class=TypeClass.PRIMITIVE,
                multiple=True,
                value=[as_text(item) for item in value if item is not None],
            )
        else:
            fields[name] = _primitive(name, value)
    return fields


def preprocess(source: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of `source` with known form-data quirks smoothed over.

    An empty `study_type.study_stage` is removed and a bare string is
    wrapped in a list, since the schema declares it as an array.
    """
    record = copy.deepcopy(source)
    study_type = record.get("study_type")
    if isinstance(study_type, dict) and "study_stage" in study_type:
        stage = study_type["study_stage"]
        if stage == "":
            del study_type["study_stage"]
        elif isinstance(stage, str):
            study_type["study_stage"] = [stage]
    return record


class MetadataTransformer:
    """Maps a validated HEAL record onto Dataverse's citation and heal blocks."""

    CITATION_BLOCK = ("citation", "Citation Metadata")
    HEAL_BLOCK = ("heal", "HEAL metadata schema")

    def transform(
        self, source: dict[str, Any], schema: HealSchema | dict[str, Any]
    ) -> dict[str, Any]:
        """Convert `source` to Dataverse JSON.

        Args:
            source: The HEAL record. It is not modified.
            schema: The HEAL JSON schema, raw or already parsed.

        Returns:
            The dataset document as a JSON-ready dict.

        Raises:
            ValidationError: The record does not conform to the schema.
            MissingRequiredFieldError: A field needed for the conversion is absent.
            UnsupportedIdentifierSchemeError: An investigator ID is not ORCID.
            MissingContactEmailError: A contact has no email address.
        """
        if not isinstance(schema, HealSchema):
            schema = HealSchema.from_document(schema)

        record = preprocess(source)
        schema.validate_record(record)
        self._check_required(record)

        heal_fields = self._build_heal_fields(record, schema)
        heal_fields.extend(self._build_relocated_fields(record))
        citation_fields = self._build_citation_fields(record)

        citation_name, citation_display = self.CITATION_BLOCK
        heal_name, heal_display = self.HEAL_BLOCK
        dataset = DataverseDataset(
            dataset_version=DatasetVersion(
                metadata_blocks={
                    citation_name: MetadataBlock(
                        name=citation_name,
                        display_name=citation_display,
                        fields=citation_fields,
                    ),
                    heal_name: MetadataBlock(
                        name=heal_name, display_name=heal_display, fields=heal_fields
                    ),
                }
            )
        )
        logger.info(
            "Converted HEAL record into %d citation and %d heal fields.",
            len(citation_fields),
            len(heal_fields),
        )
        return dataset.to_json_dict()

    @staticmethod
    def _check_required(record: dict[str, Any]) -> None:
        for category, key in REQUIRED_FIELDS:
            section = record.get(category)
            if not isinstance(section, dict) or key not in section:
                raise MissingRequiredFieldError(f"{category}.{key}")

    def _build_heal_fields(
        self, record: dict[str, Any], schema: HealSchema
    ) -> list[DataverseField]:
        fields = []
        for category, section in record.items():
            if category in SKIPPED_CATEGORIES:
                continue
            if not isinstance(section, dict):
                logger.debug("Skipping non-object category '%s'.", category)
                continue

            nested: dict[str, DataverseField] = {}
            for key, value in section.items():
                if key in NESTED_SKIPPED_KEYS:
                    continue
                spec = schema.field_spec(category, key)
                if spec is None:
                    logger.debug("No schema entry for '%s.%s'; skipping.", category, key)
                    continue
                outcome = apply_rules(key, value, spec)
                if outcome.field is not None:
                    nested[key] = outcome.field
                elif outcome.rule is None:
                    logger.debug(
                        "No rule handles '%s.%s' (%s); skipping.",
                        category,
                        key,
                        spec.kind.value,
                    )

            fields.append(
                DataverseField(
                    type_name=RENAMED_CATEGORIES.get(category, category),
                    type_class=TypeClass.COMPOUND,
                    multiple=False,
                    value=nested,
                )
            )
        return fields

    @staticmethod
    def _build_relocated_fields(record: dict[str, Any]) -> list[DataverseField]:
        fields = []
        for category, key in RELOCATED_COLLECTIONS:
            section = record.get(category)
            if not isinstance(section, dict) or key not in section:
                continue
            entries = [_entry_fields(entry) for entry in section[key]]
            fields.append(
                DataverseField(
                    type_name=key,
                    type_class=TypeClass.COMPOUND,
                    multiple=True,
                    value=entries,
                )
            )
        return fields

    def _build_citation_fields(self, record: dict[str, Any]) -> list[DataverseField]:
        minimal_info = record.get("minimal_info", {})
        return [
            _primitive("title", minimal_info.get("study_name", "")),
            self._build_authors(record["citation"]["investigators"]),
            self._build_contacts(record["contacts_and_registrants"]["contacts"]),
            DataverseField(
                type_name="dsDescription",
                type_class=TypeClass.COMPOUND,
                multiple=True,
                value=[
                    {
                        "dsDescriptionValue": _primitive(
                            "dsDescriptionValue",
                            minimal_info.get("study_description", ""),
                        )
                    }
                ],
            ),
            DataverseField(
                type_name="subject",
                type_class=TypeClass.CONTROLLED_VOCABULARY,
                multiple=True,
                value=[SUBJECT],
            ),
        ]

    @staticmethod
    def _build_authors(investigators: list[dict[str, Any]]) -> DataverseField:
        authors = []
        for index, investigator in enumerate(investigators):
            path = f"citation.investigators[{index}]"
            identifiers = investigator.get("investigator_ID") or [
                {"investigator_ID_type": SUPPORTED_ID_SCHEME, "investigator_ID_value": ""}
            ]
            identifier = identifiers[0]
            scheme = identifier.get("investigator_ID_type")
            if scheme != SUPPORTED_ID_SCHEME:
                raise UnsupportedIdentifierSchemeError(
                    str(scheme), f"{path}.investigator_ID[0].investigator_ID_type"
                )

            last_name = investigator.get("investigator_last_name", "")
            first_name = investigator.get("investigator_first_name", "")
            authors.append(
                {
                    "authorName": _primitive("authorName", f"{last_name}, {first_name}"),
                    "authorAffiliation": _primitive(
                        "authorAffiliation", investigator.get("investigator_affiliation", "")
                    ),
                    "authorIdentifierScheme": DataverseField(
                        type_name="authorIdentifierScheme",
                        type_class=TypeClass.CONTROLLED_VOCABULARY,
                        multiple=False,
                        value=scheme,
                    ),
                    "authorIdentifier": _primitive(
                        "authorIdentifier", identifier.get("investigator_ID_value", "")
                    ),
                }
            )
        return DataverseField(
            type_name="author", type_class=TypeClass.COMPOUND, multiple=True, value=authors
        )

    @staticmethod
    def _build_contacts(contacts: list[dict[str, Any]]) -> DataverseField:
        dataset_contacts = []
        for index, contact in enumerate(contacts):
            if "contact_email" not in contact:
                raise MissingContactEmailError(
                    f"contacts_and_registrants.contacts[{index}].contact_email"
                )
            last_name = contact.get("contact_last_name", "")
            first_name = contact.get("contact_first_name", "")
            dataset_contacts.append(
                {
                    "datasetContactEmail": _primitive(
                        "datasetContactEmail", contact["contact_email"]
                    ),
                    "datasetContactName": _primitive(
                        "datasetContactName", f"{last_name}, {first_name}"
                    ),
                }
            )
        return DataverseField(
            type_name="datasetContact",
            type_class=TypeClass.COMPOUND,
            multiple=True,
            value=dataset_contacts,
        )


async def convert(
    source: dict[str, Any],
    loader: SchemaLoader,
    transformer: MetadataTransformer | None = None,
) -> dict[str, Any]:
    """Fetch the HEAL schema and convert `source` against it."""
    schema = await loader.load()
    return (transformer or MetadataTransformer()).transform(source, schema)
