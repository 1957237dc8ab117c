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
"""Defines the Pydantic models for the Dataverse native API dataset JSON."""

from enum import Enum
from typing import Any, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


class TypeClass(str, Enum):
    PRIMITIVE = "primitive"
    COMPOUND = "compound"
    CONTROLLED_VOCABULARY = "controlledVocabulary"


FieldValue = Union[
    str,
    list[str],
    dict[str, "DataverseField"],
    list[dict[str, "DataverseField"]],
]


class DataverseField(BaseModel):
    """A single field in Dataverse's `typeName/typeClass/multiple/value` envelope.

    Compound fields nest further fields in their value, either as one
    mapping (``multiple=False``) or as a list of mappings (``multiple=True``).
    """

    model_config = ConfigDict(populate_by_name=True, use_enum_values=True)

    type_name: str = Field(..., alias="typeName")
    type_class: TypeClass = Field(..., alias="typeClass")
    multiple: bool = False
    value: FieldValue

    @model_validator(mode="after")
    def _check_cardinality(self) -> "DataverseField":
        if self.multiple != isinstance(self.value, list):
            raise ValueError(
                f"Field {self.type_name!r}: multiple={self.multiple} does not "
                f"match a value of type {type(self.value).__name__}"
            )
        return self


class MetadataBlock(BaseModel):
    """A named Dataverse metadata block holding an ordered list of fields."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    display_name: str = Field(..., alias="displayName")
    fields: list[DataverseField] = Field(default_factory=list)


class DatasetVersion(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    metadata_blocks: dict[str, MetadataBlock] = Field(..., alias="metadataBlocks")


class DataverseDataset(BaseModel):
    """Top-level document accepted by the Dataverse create-dataset endpoint."""

    model_config = ConfigDict(populate_by_name=True)

    dataset_version: DatasetVersion = Field(..., alias="datasetVersion")

    def to_json_dict(self) -> dict[str, Any]:
        """Dump the document with Dataverse's camelCase keys."""
        return self.model_dump(mode="json", by_alias=True)


DataverseField.model_rebuild()
