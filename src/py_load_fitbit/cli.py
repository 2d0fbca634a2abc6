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
"""Command line entry point for the Fitbit worker."""

import json
import logging
from typing import Any

import httpx
import typer
import yaml

from .bridge import BridgeHelper
from .config import Settings
from .exceptions import BadRequestError
from .files import FileHelper
from .fitbit_client import USER_AGENT, FitBitClient
from .loader.postgres import PostgresLoader
from .processor import FitBitWorkerProcessor, UserProcessor
from .schema import load_endpoint_schemas
from .table_processor import TableProcessor

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

app = typer.Typer(help="Load participants' Fitbit data into per-study tables.")


def load_config(config_file: str | None) -> dict[str, Any]:
    """Loads configuration from a YAML file."""
    if config_file:
        try:
            with open(config_file) as f:
                return yaml.safe_load(f) or {}
        except FileNotFoundError:
            logger.warning("Config file not found: %s", config_file)
    return {}


def parse_request(date: str | None, request: str | None) -> dict[str, Any]:
    """Build the worker request from either --date or a raw JSON body."""
    if request is not None:
        try:
            parsed = json.loads(request)
        except json.JSONDecodeError as e:
            msg = f"Request is not valid JSON: {e}"
            raise BadRequestError(msg) from e
        if not isinstance(parsed, dict):
            msg = "Request must be a JSON object"
            raise BadRequestError(msg)
        return parsed
    return {"date": date}


def build_processor(
    settings: Settings, fitbit_http: httpx.Client, bridge_http: httpx.Client,
) -> FitBitWorkerProcessor:
    """Wire the worker and its collaborators from settings."""
    table_processor = TableProcessor(
        loader_factory=lambda: PostgresLoader(settings.db_connection_string),
        db_schema=settings.db_schema,
    )
    user_processor = UserProcessor(
        FitBitClient(client=fitbit_http),
        file_uploader=table_processor.create_file_handle,
    )
    return FitBitWorkerProcessor(
        bridge_helper=BridgeHelper(settings.bridge_base_url, client=bridge_http),
        endpoint_schemas=load_endpoint_schemas(settings.schema_file),
        file_helper=FileHelper(settings.tmp_root),
        table_processor=table_processor,
        user_processor=user_processor,
        per_user_rate_limit=settings.per_user_rate_limit,
        reporting_interval=settings.reporting_interval,
    )


@app.command()
def run(
    date: str = typer.Option(None, help="Date to process, in YYYY-MM-DD format."),
    request: str = typer.Option(
        None, help='Raw JSON request body, e.g. {"date": "2017-12-11"}.',
    ),
    config_file: str = typer.Option("config.yaml", help="Path to YAML config file."),
) -> None:
    """Process one date for every configured study."""
    settings = Settings(**load_config(config_file))

    with httpx.Client(
        headers={"User-Agent": USER_AGENT},
        follow_redirects=True,
        timeout=settings.http_timeout,
    ) as fitbit_http, httpx.Client(
        headers={"User-Agent": USER_AGENT, "Bridge-Session": settings.bridge_session_token},
        follow_redirects=True,
        timeout=settings.http_timeout,
    ) as bridge_http:
        processor = build_processor(settings, fitbit_http, bridge_http)
        try:
            processor.accept(parse_request(date, request))
        except BadRequestError as e:
            logger.error("Bad request: %s", e)
            raise typer.Exit(code=2) from e


@app.command("list-endpoints")
def list_endpoints(
    config_file: str = typer.Option("config.yaml", help="Path to YAML config file."),
) -> None:
    """Print the endpoints and tables in the schema catalog."""
    settings = Settings(**load_config(config_file))
    for endpoint in load_endpoint_schemas(settings.schema_file):
        typer.echo(endpoint.endpoint_id)
        for table in endpoint.tables:
            typer.echo(f"  {table.table_id(endpoint.endpoint_id)} ({len(table.columns)} columns)")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
