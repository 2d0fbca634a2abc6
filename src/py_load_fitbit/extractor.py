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
"""Flattens one endpoint response into rows for the endpoint's tables.

Extraction does not log and does not touch the context's tables. Schema
mismatches come back as `SchemaWarning`s next to the rows, and the caller
decides what to do with both.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .coercer import FileUploader, coerce_value
from .context import RequestContext, Row
from .models import FitBitUser
from .schema import (
    COLUMN_CREATED_DATE,
    COLUMN_HEALTH_CODE,
    METADATA_COLUMNS,
    EndpointSchema,
    TableSchema,
)


class WarningKind(str, Enum):
    UNEXPECTED_TABLE = "unexpected_table"
    NOT_ARRAY_OR_OBJECT = "not_array_or_object"
    ROW_NOT_OBJECT = "row_not_object"
    UNEXPECTED_COLUMN = "unexpected_column"


@dataclass(frozen=True)
class SchemaWarning:
    """A part of the response that did not match the schema and was dropped."""

    kind: WarningKind
    table_id: str
    health_code: str
    column_id: str | None = None

    @property
    def message(self) -> str:
        if self.kind is WarningKind.UNEXPECTED_TABLE:
            return f"Unexpected table {self.table_id} for user {self.health_code}"
        if self.kind is WarningKind.NOT_ARRAY_OR_OBJECT:
            return f"Table {self.table_id} is neither array nor object for user {self.health_code}"
        if self.kind is WarningKind.ROW_NOT_OBJECT:
            return f"Row in table {self.table_id} is not an object for user {self.health_code}"
        return (
            f"Unexpected column {self.column_id} in table {self.table_id} "
            f"for user {self.health_code}"
        )


@dataclass
class TableRows:
    table_schema: TableSchema
    rows: list[Row] = field(default_factory=list)


@dataclass
class ExtractionResult:
    """Rows per table id, in response order, plus any schema warnings."""

    tables: dict[str, TableRows] = field(default_factory=dict)
    warnings: list[SchemaWarning] = field(default_factory=list)


def parse_response(raw_json: str) -> dict[str, Any]:
    """Parse an endpoint response, which must be a JSON object."""
    document = json.loads(raw_json)
    if not isinstance(document, dict):
        msg = f"Expected a JSON object response, got {type(document).__name__}"
        raise ValueError(msg)
    return document


def build_row(
    ctx: RequestContext,
    user: FitBitUser,
    table_id: str,
    table_schema: TableSchema,
    row_document: dict[str, Any],
    warnings: list[SchemaWarning],
    file_uploader: FileUploader | None = None,
) -> Row:
    """Build one row from one JSON object.

    The row always carries the metadata columns. A declared column is only set
    if its value coerced; undeclared keys are reported and dropped. Use
    `has_data_columns` to tell whether anything besides the metadata survived.
    """
    columns_by_id = table_schema.columns_by_id()
    row: Row = {
        COLUMN_HEALTH_CODE: user.health_code,
        COLUMN_CREATED_DATE: ctx.date,
    }
    for key, value in row_document.items():
        column = columns_by_id.get(key)
        if column is None:
            warnings.append(SchemaWarning(
                WarningKind.UNEXPECTED_COLUMN, table_id, user.health_code, column_id=key,
            ))
            continue

        serialized = coerce_value(ctx, value, column, file_uploader)
        if serialized is not None:
            row[key] = serialized
    return row


def has_data_columns(row: Row) -> bool:
    return any(key not in METADATA_COLUMNS for key in row)


def extract_rows(
    ctx: RequestContext,
    user: FitBitUser,
    endpoint_schema: EndpointSchema,
    raw_json: str,
    file_uploader: FileUploader | None = None,
) -> ExtractionResult:
    """Turn one user's response for one endpoint into rows.

    Raises ValueError if the response is not a JSON object.
    """
    document = parse_response(raw_json)
    result = ExtractionResult()

    for key, value in document.items():
        if key in endpoint_schema.ignored_keys:
            continue

        table_schema = endpoint_schema.table_for_key(key)
        if table_schema is None:
            table_id = f"{endpoint_schema.endpoint_id}.{key}"
            result.warnings.append(
                SchemaWarning(WarningKind.UNEXPECTED_TABLE, table_id, user.health_code),
            )
            continue
        table_id = table_schema.table_id(endpoint_schema.endpoint_id)

        if isinstance(value, list):
            row_documents = value
        elif isinstance(value, dict):
            row_documents = [value]
        else:
            result.warnings.append(
                SchemaWarning(WarningKind.NOT_ARRAY_OR_OBJECT, table_id, user.health_code),
            )
            continue

        for row_document in row_documents:
            if not isinstance(row_document, dict):
                result.warnings.append(
                    SchemaWarning(WarningKind.ROW_NOT_OBJECT, table_id, user.health_code),
                )
                continue
            # A row document creates the table even if none of its columns survive.
            table_rows = result.tables.setdefault(table_id, TableRows(table_schema))
            row = build_row(
                ctx, user, table_id, table_schema, row_document, result.warnings, file_uploader,
            )
            if has_data_columns(row):
                table_rows.rows.append(row)

    return result
