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
"""Persists populated tables and stored files to the destination table store."""

import csv
import io
import logging
import uuid
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import IO

from jinja2 import Environment, FileSystemLoader

from .context import PopulatedTable, RequestContext, Row
from .loader.base import BaseLoader
from .schema import COLUMN_CREATED_DATE, COLUMN_HEALTH_CODE, ColumnSchema, ColumnType

logger = logging.getLogger(__name__)

SQL_TEMPLATE_DIR = Path(__file__).parent / "sql"

_SQL_TYPES = {
    ColumnType.BOOLEAN: "BOOLEAN",
    ColumnType.DATE: "BIGINT",
    ColumnType.DOUBLE: "DOUBLE PRECISION",
    ColumnType.INTEGER: "BIGINT",
    ColumnType.LARGETEXT: "TEXT",
    ColumnType.FILEHANDLEID: "UUID",
}


def quote_ident(name: str) -> str:
    """Quote a PostgreSQL identifier."""
    return '"' + name.replace('"', '""') + '"'


def sql_type_for(column: ColumnSchema) -> str:
    if column.column_type is ColumnType.STRING and column.max_length:
        return f"VARCHAR({column.max_length})"
    return _SQL_TYPES.get(column.column_type, "TEXT")


def rows_to_csv_stream(rows: Iterable[Row], columns: list[str]) -> IO[bytes]:
    """Convert rows to an in-memory CSV byte stream without a header.

    Every present value is quoted. A column missing from a row is written as an
    unquoted empty field, which COPY loads as NULL, while an empty string
    survives as `""`.
    """
    buffer = io.StringIO()
    writer = csv.DictWriter(
        buffer,
        fieldnames=columns,
        restval=None,
        extrasaction="ignore",
        quoting=csv.QUOTE_NOTNULL,
    )
    for row in rows:
        writer.writerow(row)
    return io.BytesIO(buffer.getvalue().encode("utf-8"))


class TableProcessor:
    """Loads each study's populated tables, one transaction per table.

    Tables live in a schema named after the study and are named by table id.
    Reprocessing a date replaces the rows previously loaded for that date.
    """

    def __init__(self, loader_factory: Callable[[], BaseLoader], db_schema: str = "fitbit") -> None:
        self.loader_factory = loader_factory
        self.db_schema = db_schema
        self.jinja_env = Environment(
            loader=FileSystemLoader(SQL_TEMPLATE_DIR),
            autoescape=False,  # SQL is not HTML
        )
        self.jinja_env.filters["ident"] = quote_ident

    def _render(self, template_name: str, **kwargs) -> str:
        return self.jinja_env.get_template(template_name).render(**kwargs)

    def process_table(self, ctx: RequestContext, populated_table: PopulatedTable) -> None:
        """Create the destination table if needed and load all its rows.

        A table without rows is still created and the date's old rows are
        still removed; only the COPY is skipped.
        """
        schema = ctx.study.identifier
        table = populated_table.table_id
        data_columns = list(populated_table.table_schema.columns)
        column_names = [COLUMN_HEALTH_CODE, COLUMN_CREATED_DATE] + [
            column.column_id for column in data_columns
        ]

        with self.loader_factory() as loader:
            loader.execute_sql(self._render(
                "create_table.sql",
                schema=schema,
                table=table,
                health_code_column=COLUMN_HEALTH_CODE,
                created_date_column=COLUMN_CREATED_DATE,
                columns=[(column.column_id, sql_type_for(column)) for column in data_columns],
            ))
            loader.execute_sql(
                self._render(
                    "delete_rows_for_date.sql",
                    schema=schema,
                    table=table,
                    created_date_column=COLUMN_CREATED_DATE,
                ),
                (ctx.date,),
            )
            if populated_table.rows:
                loader.bulk_load_stream(
                    schema,
                    table,
                    rows_to_csv_stream(populated_table.rows, column_names),
                    columns=column_names,
                )
        logger.info("Loaded %d rows into %s.%s", len(populated_table.rows), schema, table)

    def create_file_handle(self, path: Path) -> str:
        """Store a file's contents and return the new file handle id."""
        file_handle_id = str(uuid.uuid4())
        with self.loader_factory() as loader:
            loader.execute_sql(self._render("create_file_handles_table.sql", schema=self.db_schema))
            loader.execute_sql(
                self._render("insert_file_handle.sql", schema=self.db_schema),
                (file_handle_id, path.name, "application/json", path.read_bytes()),
                fetch="one",
            )
        logger.debug("Stored %s as file handle %s", path.name, file_handle_id)
        return file_handle_id
