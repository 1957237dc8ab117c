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
"""Errors raised while converting a HEAL record to Dataverse JSON."""


class HealConversionError(Exception):
    """Base class for every conversion failure.

    `field_path` points at the offending location in the HEAL record
    (dotted, with list indexes), so a caller can report it back to the
    person filling out the form.
    """

    def __init__(self, message: str, field_path: str | None = None) -> None:
        self.field_path = field_path
        context = f" (at {field_path})" if field_path else ""
        super().__init__(f"{message}{context}")


class ValidationError(HealConversionError):
    """The HEAL record does not conform to the HEAL JSON schema."""

    def __init__(self, diagnostics: list[str]) -> None:
        self.diagnostics = diagnostics
        summary = "; ".join(diagnostics[:5])
        if len(diagnostics) > 5:
            summary += f"; ... {len(diagnostics) - 5} more"
        super().__init__(f"HEAL record failed schema validation: {summary}")


class MissingRequiredFieldError(HealConversionError):
    """A field the conversion cannot do without is absent."""

    def __init__(self, field_path: str) -> None:
        super().__init__("Missing required field", field_path)


class UnsupportedIdentifierSchemeError(HealConversionError):
    """An investigator identifier uses a scheme other than ORCID."""

    def __init__(self, scheme: str, field_path: str) -> None:
        self.scheme = scheme
        super().__init__(
            f"Only ORCID identifiers are currently supported, got {scheme!r}",
            field_path,
        )


class MissingContactEmailError(HealConversionError):
    """A contact entry has no email address."""

    def __init__(self, field_path: str) -> None:
        super().__init__("Contact is missing an email address", field_path)


class SchemaFetchError(HealConversionError):
    """The HEAL JSON schema could not be retrieved or decoded."""

    def __init__(self, location: str, reason: str) -> None:
        self.location = location
        super().__init__(f"Could not load HEAL schema from {location}: {reason}")
