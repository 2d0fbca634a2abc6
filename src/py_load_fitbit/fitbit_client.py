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
"""Provides a client for the Fitbit Web API."""

import logging

import httpx

USER_AGENT = "py-load-fitbit/0.1.0"

logger = logging.getLogger(__name__)


class FitBitClient:
    """Fetches raw endpoint responses on behalf of one participant at a time."""

    def __init__(self, client: httpx.Client | None = None, timeout: float = 30.0) -> None:
        self.client = client or httpx.Client(
            headers={"User-Agent": USER_AGENT},
            follow_redirects=True,
            timeout=timeout,
        )

    def get(self, url: str, access_token: str) -> str:
        """Return the response body of `url` as text.

        Raises httpx.HTTPStatusError on a 4xx/5xx response and httpx.RequestError
        on transport failures. There are no retries here.
        """
        logger.debug("GET %s", url)
        response = self.client.get(url, headers={"Authorization": f"Bearer {access_token}"})
        response.raise_for_status()
        return response.text

    def close(self) -> None:
        self.client.close()
