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
"""Field tables and coercion rules for the HEAL metadata block.

Each second-level HEAL field is run through `PRIMARY_RULES` in order; the
first rule whose predicate matches produces the Dataverse field (or drops
it by returning None). `OVERRIDE_RULES` are then evaluated unconditionally
and replace whatever the primary pass produced.
"""

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable

from .models import DataverseField, TypeClass
from .schema import FieldKind, FieldSpec

# Fields holding a stringified boolean that Dataverse expects as Yes/No.
YES_NO_FIELDS = frozenset(
    {"heal_funded_status", "study_collection_status", "produce_data", "produce_other"}
)

DATE_FIELDS = frozenset(
    {
        "data_collection_start_date",
        "data_collection_finish_date",
        "data_release_start_date",
        "data_release_finish_date",
    }
)

# String fields the form leaves as "" when unanswered; emitted only when filled.
FLOWING_EMPTY_FIELDS = frozenset(
    {
        "study_primary_or_secondary",
        "study_observational_or_experimental",
        "data_release_status",
        "data_available",
        "data_collection_status",
        "data_restricted",
        "study_translational_focus",
    }
)

# Array fields that Dataverse models as a single value.
SINGLE_VALUE_ARRAY_FIELDS = frozenset(
    {"treatment_mode", "treatment_application_level", "treatment_novelty"}
)

# Top-level names that collide with reserved Dataverse names.
RENAMED_CATEGORIES = {
    "citation": "heal_citation",
    "study_translational_focus": "study_translational_focus_group",
}

# Category handled outside the generic traversal.
SKIPPED_CATEGORIES = frozenset({"contacts_and_registrants"})

# (category, key) pairs lifted to the top of the heal block, in output order.
RELOCATED_COLLECTIONS = (
    ("contacts_and_registrants", "registrants"),
    ("metadata_location", "data_repositories"),
)

# Second-level keys left out of their category compound; relocated instead.
NESTED_SKIPPED_KEYS = frozenset({"data_repositories"})

_DATE_PATTERN = re.compile(r"\d{4}-\d{2}-\d{2}")


def is_valid_date(value: Any) -> bool:
    """True for a real calendar date written exactly as YYYY-MM-DD."""
    if not isinstance(value, str) or not _DATE_PATTERN.fullmatch(value):
        return False
    try:
        datetime.strptime(value, "%Y-%m-%d")
    except ValueError:
        return False
    return True


def yes_no(flag: bool) -> str:
    return "Yes" if flag else "No"


def as_text(value: Any) -> str:
    """Render a JSON scalar the way Dataverse primitives expect it."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return value if isinstance(value, str) else str(value)


def _field(key: str, type_class: TypeClass, value: Any, multiple: bool = False) -> DataverseField:
    return DataverseField(
        type_name=key, type_class=type_class, multiple=multiple, value=value
    )


@dataclass(frozen=True)
class FieldRule:
    """A named predicate/coercion pair applied to one HEAL field."""

    name: str
    matches: Callable[[str, FieldSpec], bool]
    apply: Callable[[str, Any, FieldSpec], DataverseField | None]


def _apply_yes_no(key: str, value: Any, spec: FieldSpec) -> DataverseField:
    return _field(
        key, TypeClass.CONTROLLED_VOCABULARY, yes_no(str(value).lower() == "true")
    )


def _apply_date(key: str, value: Any, spec: FieldSpec) -> DataverseField:
    return _field(key, TypeClass.PRIMITIVE, value if is_valid_date(value) else "")


def _apply_string(key: str, value: Any, spec: FieldSpec) -> DataverseField | None:
    value = as_text(value)
    if key in FLOWING_EMPTY_FIELDS and value == "":
        return None
    type_class = (
        TypeClass.CONTROLLED_VOCABULARY if spec.is_enumerated else TypeClass.PRIMITIVE
    )
    return _field(key, type_class, value)


def _apply_numeric(key: str, value: Any, spec: FieldSpec) -> DataverseField:
    # Dataverse primitives travel as strings.
    return _field(key, TypeClass.PRIMITIVE, as_text(value))


def _apply_string_array(key: str, value: Any, spec: FieldSpec) -> DataverseField | None:
    type_class = (
        TypeClass.CONTROLLED_VOCABULARY
        if spec.items_enumerated
        else TypeClass.PRIMITIVE
    )
    # Null items carry no answer.
    items = [as_text(item) for item in value or () if item is not None]
    if key in SINGLE_VALUE_ARRAY_FIELDS:
        # Dataverse rejects "" for these, so an unanswered field is left out.
        if not items or not items[0]:
            return None
        return _field(key, type_class, items[0])
    return _field(key, type_class, items, multiple=True)


def _apply_boolean(key: str, value: Any, spec: FieldSpec) -> DataverseField:
    return _field(key, TypeClass.CONTROLLED_VOCABULARY, yes_no(bool(value)))


PRIMARY_RULES: tuple[FieldRule, ...] = (
    FieldRule("yes_no", lambda key, spec: key in YES_NO_FIELDS, _apply_yes_no),
    FieldRule("date", lambda key, spec: key in DATE_FIELDS, _apply_date),
    FieldRule("string", lambda key, spec: spec.kind is FieldKind.STRING, _apply_string),
    FieldRule(
        "numeric",
        lambda key, spec: spec.kind in (FieldKind.INTEGER, FieldKind.NUMBER),
        _apply_numeric,
    ),
    FieldRule(
        "string_array",
        lambda key, spec: spec.kind is FieldKind.ARRAY
        and spec.item_kind is FieldKind.STRING,
        _apply_string_array,
    ),
)

OVERRIDE_RULES: tuple[FieldRule, ...] = (
    FieldRule("boolean", lambda key, spec: spec.kind is FieldKind.BOOLEAN, _apply_boolean),
)


@dataclass(frozen=True)
class RuleOutcome:
    """Result of running one field through the rule table.

    `field` is None when the field is not emitted; `rule` names the last
    rule that decided the outcome, or is None when no rule matched.
    """

    field: DataverseField | None
    rule: str | None


def apply_rules(key: str, value: Any, spec: FieldSpec) -> RuleOutcome:
    """Run a HEAL field through the primary rules, then the overrides."""
    outcome = RuleOutcome(field=None, rule=None)
    for rule in PRIMARY_RULES:
        if rule.matches(key, spec):
            outcome = RuleOutcome(field=rule.apply(key, value, spec), rule=rule.name)
            break
    for rule in OVERRIDE_RULES:
        if rule.matches(key, spec):
            outcome = RuleOutcome(field=rule.apply(key, value, spec), rule=rule.name)
    return outcome
