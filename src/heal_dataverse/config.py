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
"""Manages the application's configuration using Pydantic."""

import logging
from typing import Any

import yaml
from pydantic import BaseModel, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class DeploymentProfile(BaseModel):
    """Where a deployment serves its schema and which Dataverse it targets."""

    name: str
    schema_url: str
    dataverse_url: str
    dataverse_collection: str


def _default_profiles() -> dict[str, DeploymentProfile]:
    return {
        "demo": DeploymentProfile(
            name="demo",
            schema_url="heal-schema-latest.json",
            dataverse_url="https://demo.dataverse.org",
            dataverse_collection="heal",
        ),
        "prod": DeploymentProfile(
            name="prod",
            schema_url="https://heal-hdv.org/heal-schema-latest.json",
            dataverse_url="https://dataverse.harvard.edu",
            dataverse_collection="heal",
        ),
    }


class Settings(BaseSettings):
    """Manages configuration for the application.

    Reads settings from environment variables with the prefix 'HEAL_'.
    """

    model_config = SettingsConfigDict(env_prefix="HEAL_")

    # Requests from this host use the "prod" profile, anything else "demo".
    prod_hostname: str = "heal-hdv.org"
    profiles: dict[str, DeploymentProfile] = _default_profiles()

    # S105: the token is only ever supplied through the environment.
    api_token: str | None = None
    request_timeout: float = 30.0

    @field_validator("profiles")
    @classmethod
    def merge_default_profiles(
        cls, profiles: dict[str, DeploymentProfile]
    ) -> dict[str, DeploymentProfile]:
        # Overrides may name only some profiles; the rest keep their defaults.
        return {**_default_profiles(), **profiles}

    def select_profile(self, hostname: str | None) -> DeploymentProfile:
        """Pick the deployment profile for a calling host name."""
        name = "prod" if hostname == self.prod_hostname else "demo"
        return self.profiles[name]


def load_config(config_file: str | None) -> dict[str, Any]:
    """Loads configuration overrides from a YAML file."""
    if config_file:
        try:
            with open(config_file, "r") as f:
                return yaml.safe_load(f) or {}
        except FileNotFoundError:
            logger.warning("Config file not found: %s", config_file)
    return {}


# Instantiate the settings so it can be imported directly
settings = Settings()
