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
"""Provides a client for the Bridge directory service.

Bridge knows which studies exist and which participants have connected a
Fitbit account, along with the OAuth tokens for those accounts.
"""

import logging
from collections.abc import Iterator

import httpx

from .fitbit_client import USER_AGENT
from .models import FitBitUser, Study

OAUTH_VENDOR = "fitbit"

logger = logging.getLogger(__name__)


class BridgeHelper:
    """Lists studies and the Fitbit users enrolled in them."""

    def __init__(
        self,
        base_url: str,
        session_token: str = "",
        client: httpx.Client | None = None,
        timeout: float = 30.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.client = client or httpx.Client(
            headers={"User-Agent": USER_AGENT, "Bridge-Session": session_token},
            follow_redirects=True,
            timeout=timeout,
        )

    def _get_json(self, path: str, params: dict | None = None) -> dict:
        response = self.client.get(f"{self.base_url}{path}", params=params)
        response.raise_for_status()
        return response.json()

    def get_all_studies(self) -> list[Study]:
        """Return every study, configured for this worker or not."""
        body = self._get_json("/v3/studies", params={"summary": "false"})
        return [Study.model_validate(item) for item in body.get("items", [])]

    def _iter_health_codes(self, study_id: str) -> Iterator[str]:
        offset_key: str | None = None
        while True:
            params = {"offsetKey": offset_key} if offset_key else None
            body = self._get_json(f"/v3/studies/{study_id}/oauth/{OAUTH_VENDOR}", params=params)
            yield from body.get("items", [])

            offset_key = body.get("nextPageOffsetKey")
            if not offset_key:
                break

    def get_fitbit_user(self, study_id: str, health_code: str) -> FitBitUser:
        body = self._get_json(f"/v3/studies/{study_id}/oauth/{OAUTH_VENDOR}/{health_code}")
        return FitBitUser(
            user_id=body["providerUserId"],
            access_token=body["accessToken"],
            health_code=health_code,
        )

    def get_fitbit_users_for_study(self, study_id: str) -> Iterator[FitBitUser]:
        """Lazily yield the study's Fitbit users, one page of health codes at a time.

        A failure listing health codes propagates. A failure fetching a single
        user's token is logged and that user is skipped.
        """
        for health_code in self._iter_health_codes(study_id):
            try:
                yield self.get_fitbit_user(study_id, health_code)
            except (httpx.RequestError, httpx.HTTPStatusError, KeyError) as e:
                logger.error(
                    "Could not get Fitbit token for healthCode %s in study %s: %s",
                    health_code,
                    study_id,
                    e,
                )

    def close(self) -> None:
        self.client.close()
