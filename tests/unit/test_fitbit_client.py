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

import httpx
import pytest
from pytest_httpx import HTTPXMock

from py_load_fitbit.fitbit_client import FitBitClient

pytestmark = pytest.mark.unit

URL = "https://api.fitbit.com/1/user/my-user/profile.json"


def test_get_returns_body_text(httpx_mock: HTTPXMock):
    httpx_mock.add_response(
        method="GET",
        url=URL,
        match_headers={"Authorization": "Bearer my-access-token"},
        text='{"user": {"age": 30}}',
    )

    client = FitBitClient()
    assert client.get(URL, "my-access-token") == '{"user": {"age": 30}}'


def test_get_raises_on_error_status(httpx_mock: HTTPXMock):
    httpx_mock.add_response(url=URL, status_code=429)

    with pytest.raises(httpx.HTTPStatusError):
        FitBitClient().get(URL, "my-access-token")


def test_get_raises_on_timeout(httpx_mock: HTTPXMock):
    httpx_mock.add_exception(httpx.TimeoutException("Timeout"), url=URL)

    with pytest.raises(httpx.TimeoutException):
        FitBitClient().get(URL, "my-access-token")
