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

import pydantic
import pytest

from py_load_fitbit.models import FitBitUser
from py_load_fitbit.schema import (
    ColumnType,
    EndpointSchema,
    TableSchema,
    UrlParameterType,
    load_endpoint_schemas,
    parse_endpoint_schemas,
)

pytestmark = pytest.mark.unit

USER = FitBitUser(user_id="my-user", access_token="token", health_code="hc")


def _endpoint(**overrides) -> dict:
    endpoint = {
        "endpointId": "my-endpoint",
        "url": "http://example.com/users/{}/date/{}",
        "urlParameters": ["USER_ID", "DATE"],
        "ignoredKeys": ["ignored-key"],
        "tables": [
            {
                "tableKey": "table-key",
                "columns": [
                    {"columnId": "name", "columnType": "STRING", "maxLength": 32},
                    {"columnId": "steps", "columnType": "INTEGER"},
                ],
            },
        ],
    }
    endpoint.update(overrides)
    return endpoint


def test_parse_catalog():
    (endpoint,) = parse_endpoint_schemas(json.dumps([_endpoint()]))

    assert endpoint.endpoint_id == "my-endpoint"
    assert endpoint.url_parameters == (UrlParameterType.USER_ID, UrlParameterType.DATE)
    assert endpoint.ignored_keys == frozenset({"ignored-key"})
    table = endpoint.tables[0]
    assert table.table_id(endpoint.endpoint_id) == "my-endpoint.table-key"
    assert table.columns[0].column_type is ColumnType.STRING
    assert table.columns[0].max_length == 32
    assert table.columns[1].max_length is None


def test_build_url_substitutes_in_declaration_order():
    endpoint = EndpointSchema.model_validate(_endpoint())
    assert endpoint.build_url(USER, "2017-12-12") == "http://example.com/users/my-user/date/2017-12-12"

    reversed_endpoint = EndpointSchema.model_validate(
        _endpoint(url="http://example.com/{}/{}", urlParameters=["DATE", "USER_ID"]),
    )
    assert reversed_endpoint.build_url(USER, "2017-12-12") == "http://example.com/2017-12-12/my-user"


def test_table_for_key():
    endpoint = EndpointSchema.model_validate(_endpoint())
    assert endpoint.table_for_key("table-key") is endpoint.tables[0]
    assert endpoint.table_for_key("other") is None


@pytest.mark.parametrize(
    "overrides",
    [
        {"urlParameters": ["USER_ID"]},
        {"url": "http://example.com/{user}/{}"},
        {"tables": [{"tableKey": "t"}, {"tableKey": "t"}]},
        {"tables": [{"tableKey": "t", "columns": [
            {"columnId": "a", "columnType": "INTEGER"},
            {"columnId": "a", "columnType": "DOUBLE"},
        ]}]},
        {"tables": [{"tableKey": "t", "columns": [
            {"columnId": "healthCode", "columnType": "STRING"},
        ]}]},
        {"tables": [{"tableKey": "t", "columns": [
            {"columnId": "a", "columnType": "NOT_A_TYPE"},
        ]}]},
    ],
)
def test_invalid_endpoint_rejected(overrides):
    with pytest.raises(pydantic.ValidationError):
        EndpointSchema.model_validate(_endpoint(**overrides))


def test_duplicate_endpoint_ids_rejected():
    with pytest.raises(ValueError, match="Duplicate endpoint"):
        parse_endpoint_schemas(json.dumps([_endpoint(), _endpoint()]))


def test_schemas_are_immutable():
    table = TableSchema(table_key="t")
    with pytest.raises(pydantic.ValidationError):
        table.table_key = "other"


def test_load_packaged_catalog():
    """The shipped catalog loads and every table id is globally unique."""
    endpoints = load_endpoint_schemas()

    assert [e.endpoint_id for e in endpoints] == ["ActivitiesDaily", "HeartRate", "Sleep", "UserProfile"]
    table_ids = [t.table_id(e.endpoint_id) for e in endpoints for t in e.tables]
    assert len(table_ids) == len(set(table_ids))
    assert "Sleep.sleep" in table_ids


def test_load_catalog_from_file(tmp_path):
    path = tmp_path / "schema.json"
    path.write_text(json.dumps([_endpoint()]))

    (endpoint,) = load_endpoint_schemas(path)
    assert endpoint.endpoint_id == "my-endpoint"
