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
"""Defines the schema catalog: which endpoints to call and how to flatten them.

The catalog is a JSON list of endpoint descriptors. Each endpoint maps some of
the top-level keys of its response onto destination tables, and each table
declares the typed columns it accepts.
"""

import string
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, TypeAdapter, model_validator
from pydantic.alias_generators import to_camel

if TYPE_CHECKING:
    from .models import FitBitUser

COLUMN_HEALTH_CODE = "healthCode"
COLUMN_CREATED_DATE = "createdDate"
METADATA_COLUMNS = (COLUMN_HEALTH_CODE, COLUMN_CREATED_DATE)


class ColumnType(str, Enum):
    """Column types of the destination table store."""

    BOOLEAN = "BOOLEAN"
    DATE = "DATE"
    DOUBLE = "DOUBLE"
    INTEGER = "INTEGER"
    STRING = "STRING"
    LARGETEXT = "LARGETEXT"
    FILEHANDLEID = "FILEHANDLEID"
    # Valid in the catalog, but never populated from Fitbit data.
    ENTITYID = "ENTITYID"
    LINK = "LINK"
    USERID = "USERID"
    STRING_LIST = "STRING_LIST"
    INTEGER_LIST = "INTEGER_LIST"


class UrlParameterType(str, Enum):
    """Values that can be substituted into an endpoint's URL template."""

    USER_ID = "USER_ID"
    DATE = "DATE"


class _CatalogModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True,
    )


class ColumnSchema(_CatalogModel):
    """One destination column."""

    column_id: str
    column_type: ColumnType
    max_length: int | None = None


class TableSchema(_CatalogModel):
    """One destination table, fed by one key of an endpoint's response."""

    table_key: str
    columns: tuple[ColumnSchema, ...] = ()

    @model_validator(mode="after")
    def _check_columns(self) -> "TableSchema":
        seen: set[str] = set()
        for column in self.columns:
            if column.column_id in METADATA_COLUMNS:
                msg = f"Column {column.column_id} in table {self.table_key} is reserved"
                raise ValueError(msg)
            if column.column_id in seen:
                msg = f"Duplicate column {column.column_id} in table {self.table_key}"
                raise ValueError(msg)
            seen.add(column.column_id)
        return self

    def table_id(self, endpoint_id: str) -> str:
        """Return the globally unique table identifier."""
        return f"{endpoint_id}.{self.table_key}"

    def columns_by_id(self) -> dict[str, ColumnSchema]:
        return {column.column_id: column for column in self.columns}


class EndpointSchema(_CatalogModel):
    """One Fitbit Web API resource and the tables it populates."""

    endpoint_id: str
    url: str
    url_parameters: tuple[UrlParameterType, ...] = ()
    ignored_keys: frozenset[str] = frozenset()
    tables: tuple[TableSchema, ...] = ()

    @model_validator(mode="after")
    def _check_endpoint(self) -> "EndpointSchema":
        slots = [
            field_name
            for _, field_name, _, _ in string.Formatter().parse(self.url)
            if field_name is not None
        ]
        if any(slots):
            msg = f"URL for endpoint {self.endpoint_id} must only use positional {{}} slots"
            raise ValueError(msg)
        if len(slots) != len(self.url_parameters):
            msg = (
                f"URL for endpoint {self.endpoint_id} has {len(slots)} slots but "
                f"{len(self.url_parameters)} parameters are declared"
            )
            raise ValueError(msg)

        table_keys = [table.table_key for table in self.tables]
        if len(table_keys) != len(set(table_keys)):
            msg = f"Duplicate table key in endpoint {self.endpoint_id}"
            raise ValueError(msg)
        return self

    def build_url(self, user: "FitBitUser", date: str) -> str:
        """Substitute the URL parameters in declaration order."""
        values = []
        for parameter in self.url_parameters:
            if parameter is UrlParameterType.USER_ID:
                values.append(user.user_id)
            elif parameter is UrlParameterType.DATE:
                values.append(date)
        return self.url.format(*values)

    def table_for_key(self, key: str) -> TableSchema | None:
        for table in self.tables:
            if table.table_key == key:
                return table
        return None


PACKAGED_CATALOG = Path(__file__).parent / "schema.json"

_CATALOG_ADAPTER = TypeAdapter(list[EndpointSchema])


def parse_endpoint_schemas(raw: str | bytes) -> tuple[EndpointSchema, ...]:
    """Parse and validate a JSON schema catalog."""
    endpoints = _CATALOG_ADAPTER.validate_json(raw)
    seen: set[str] = set()
    for endpoint in endpoints:
        if endpoint.endpoint_id in seen:
            msg = f"Duplicate endpoint {endpoint.endpoint_id} in schema catalog"
            raise ValueError(msg)
        seen.add(endpoint.endpoint_id)
    return tuple(endpoints)


def load_endpoint_schemas(path: Path | None = None) -> tuple[EndpointSchema, ...]:
    """Load the schema catalog from `path`, or the one shipped with the package."""
    return parse_endpoint_schemas(Path(path or PACKAGED_CATALOG).read_bytes())
