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

import json
import logging
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from py_load_fitbit.context import PopulatedTable, RequestContext
from py_load_fitbit.fitbit_client import FitBitClient
from py_load_fitbit.models import FitBitUser, Study
from py_load_fitbit.processor import UserProcessor
from py_load_fitbit.schema import (
    COLUMN_CREATED_DATE,
    COLUMN_HEALTH_CODE,
    ColumnSchema,
    ColumnType,
    EndpointSchema,
    TableSchema,
    UrlParameterType,
)

pytestmark = pytest.mark.unit

ACCESS_TOKEN = "my-access-token"
COLUMN_ID = "my-column"
DATE_STRING = "2017-12-12"
ENDPOINT_ID = "my-endpoint"
HEALTH_CODE = "my-health-code"
TABLE_KEY = "table-key"
TABLE_ID = f"{ENDPOINT_ID}.{TABLE_KEY}"
URL = "http://example.com/users/my-user/date/2017-12-12"

USER = FitBitUser(user_id="my-user", access_token=ACCESS_TOKEN, health_code=HEALTH_CODE)
TABLE_SCHEMA = TableSchema(
    table_key=TABLE_KEY,
    columns=(
        ColumnSchema(column_id=COLUMN_ID, column_type=ColumnType.STRING, max_length=128),
        ColumnSchema(column_id="levels", column_type=ColumnType.FILEHANDLEID),
    ),
)
ENDPOINT_SCHEMA = EndpointSchema(
    endpoint_id=ENDPOINT_ID,
    url="http://example.com/users/{}/date/{}",
    url_parameters=(UrlParameterType.USER_ID, UrlParameterType.DATE),
    tables=(TABLE_SCHEMA,),
)


@pytest.fixture
def ctx(tmp_path: Path) -> RequestContext:
    return RequestContext(DATE_STRING, Study(identifier="my-study"), tmp_path)


@pytest.fixture
def mock_client() -> MagicMock:
    return MagicMock(spec=FitBitClient)


def test_process_endpoint_for_user(ctx: RequestContext, mock_client: MagicMock):
    """The user's response is fetched with their token and merged into the context."""
    mock_client.get.return_value = json.dumps({TABLE_KEY: {COLUMN_ID: "Just one value"}})
    processor = UserProcessor(mock_client)

    processor.process_endpoint_for_user(ctx, USER, ENDPOINT_SCHEMA)

    mock_client.get.assert_called_once_with(URL, ACCESS_TOKEN)
    table = ctx.populated_tables_by_id[TABLE_ID]
    assert table.table_schema is TABLE_SCHEMA
    assert table.rows == [{
        COLUMN_HEALTH_CODE: HEALTH_CODE,
        COLUMN_CREATED_DATE: DATE_STRING,
        COLUMN_ID: "Just one value",
    }]


def test_context_already_has_table(ctx: RequestContext, mock_client: MagicMock):
    previous_row = {
        COLUMN_HEALTH_CODE: "previous user's health code",
        COLUMN_CREATED_DATE: DATE_STRING,
        COLUMN_ID: "previous user's data",
    }
    populated_table = PopulatedTable(TABLE_ID, TABLE_SCHEMA)
    populated_table.rows.append(previous_row)
    ctx.populated_tables_by_id[TABLE_ID] = populated_table

    mock_client.get.return_value = json.dumps({TABLE_KEY: {COLUMN_ID: "current user's data"}})
    UserProcessor(mock_client).process_endpoint_for_user(ctx, USER, ENDPOINT_SCHEMA)

    rows = ctx.populated_tables_by_id[TABLE_ID].rows
    assert len(rows) == 2
    assert rows[0] == previous_row
    assert rows[1][COLUMN_ID] == "current user's data"


def test_warnings_are_logged(ctx: RequestContext, mock_client: MagicMock, caplog):
    mock_client.get.return_value = json.dumps({"wrong-table-key": {}, TABLE_KEY: {"wrong-column": 1}})

    with caplog.at_level(logging.WARNING):
        UserProcessor(mock_client).process_endpoint_for_user(ctx, USER, ENDPOINT_SCHEMA)

    assert f"Unexpected table {ENDPOINT_ID}.wrong-table-key for user {HEALTH_CODE}" in caplog.text
    assert f"Unexpected column wrong-column in table {TABLE_ID} for user {HEALTH_CODE}" in caplog.text


def test_file_handle_columns_use_uploader(ctx: RequestContext, mock_client: MagicMock):
    mock_client.get.return_value = json.dumps({TABLE_KEY: {"levels": {"data": [1, 2]}}})
    uploader = MagicMock(return_value="file-handle-id")

    UserProcessor(mock_client, file_uploader=uploader).process_endpoint_for_user(
        ctx, USER, ENDPOINT_SCHEMA,
    )

    uploader.assert_called_once()
    assert ctx.populated_tables_by_id[TABLE_ID].rows[0]["levels"] == "file-handle-id"


def test_failed_extraction_contributes_nothing(ctx: RequestContext, mock_client: MagicMock):
    """If the upload for a later row fails, rows built earlier are not merged."""
    mock_client.get.return_value = json.dumps(
        {TABLE_KEY: [{COLUMN_ID: "first"}, {"levels": {"data": []}}]},
    )
    uploader = MagicMock(side_effect=RuntimeError("upload failed"))

    with pytest.raises(RuntimeError):
        UserProcessor(mock_client, file_uploader=uploader).process_endpoint_for_user(
            ctx, USER, ENDPOINT_SCHEMA,
        )

    assert ctx.populated_tables_by_id == {}


def test_http_error_propagates(ctx: RequestContext, mock_client: MagicMock):
    mock_client.get.side_effect = RuntimeError("network down")

    with pytest.raises(RuntimeError, match="network down"):
        UserProcessor(mock_client).process_endpoint_for_user(ctx, USER, ENDPOINT_SCHEMA)
