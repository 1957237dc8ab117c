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
"""Command line entry points for converting and uploading HEAL records."""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any

import httpx
import typer

from heal_dataverse.config import DeploymentProfile, Settings, load_config
from heal_dataverse.errors import HealConversionError, ValidationError
from heal_dataverse.schema import SchemaLoader
from heal_dataverse.transformer import convert as convert_record
from heal_dataverse.uploader import DataverseUploader

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

app = typer.Typer(help="Convert HEAL metadata records to Dataverse dataset JSON.")


def _resolve_settings(
    config_file: str | None, host: str | None
) -> tuple[Settings, DeploymentProfile]:
    settings = Settings(**load_config(config_file))
    profile = settings.select_profile(host)
    logger.info("Using deployment profile '%s'.", profile.name)
    return settings, profile


def _read_record(source: Path) -> dict[str, Any]:
    try:
        with open(source, "r", encoding="utf-8") as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        logger.error("%s is not valid JSON: %s", source, e)
        raise typer.Exit(code=1)


def _run_conversion(record: dict[str, Any], loader: SchemaLoader) -> dict[str, Any]:
    try:
        return asyncio.run(convert_record(record, loader))
    except HealConversionError as e:
        logger.error("Conversion failed: %s", e)
        if isinstance(e, ValidationError):
            for diagnostic in e.diagnostics:
                logger.error("  %s", diagnostic)
        raise typer.Exit(code=1)


@app.command()
def convert(
    source: Path = typer.Argument(
        ..., exists=True, dir_okay=False, help="HEAL metadata JSON file."
    ),
    schema: str = typer.Option(
        None, help="Schema URL or path. Defaults to the profile's schema."
    ),
    host: str = typer.Option(
        None, help="Calling host name, used to pick the deployment profile."
    ),
    config_file: str = typer.Option(
        None, "--config", help="Path to YAML config file."
    ),
    output: Path = typer.Option(
        None, help="Write the Dataverse JSON here instead of stdout."
    ),
):
    """Convert a HEAL record to Dataverse dataset JSON."""
    settings, profile = _resolve_settings(config_file, host)
    loader = SchemaLoader(schema or profile.schema_url, timeout=settings.request_timeout)
    document = _run_conversion(_read_record(source), loader)

    text = json.dumps(document, indent=2)
    if output:
        output.write_text(text + "\n", encoding="utf-8")
        logger.info("Wrote Dataverse JSON to %s", output)
    else:
        typer.echo(text)


@app.command()
def upload(
    source: Path = typer.Argument(
        ..., exists=True, dir_okay=False, help="HEAL metadata JSON file."
    ),
    collection: str = typer.Option(
        None, help="Dataverse collection alias. Defaults to the profile's."
    ),
    schema: str = typer.Option(
        None, help="Schema URL or path. Defaults to the profile's schema."
    ),
    host: str = typer.Option(
        None, help="Calling host name, used to pick the deployment profile."
    ),
    config_file: str = typer.Option(
        None, "--config", help="Path to YAML config file."
    ),
):
    """Convert a HEAL record and create a draft dataset in Dataverse."""
    settings, profile = _resolve_settings(config_file, host)
    if not settings.api_token:
        logger.error("No Dataverse API token configured (set HEAL_API_TOKEN).")
        raise typer.Exit(code=1)

    loader = SchemaLoader(schema or profile.schema_url, timeout=settings.request_timeout)
    document = _run_conversion(_read_record(source), loader)
    target = collection or profile.dataverse_collection

    async def _post() -> dict[str, Any]:
        uploader = DataverseUploader(
            profile.dataverse_url, settings.api_token, timeout=settings.request_timeout
        )
        try:
            return await uploader.create_dataset(target, document)
        finally:
            await uploader.aclose()

    try:
        reply = asyncio.run(_post())
    except httpx.HTTPError:
        raise typer.Exit(code=1)
    typer.echo(json.dumps(reply, indent=2))


def main():
    app()


if __name__ == "__main__":
    main()
