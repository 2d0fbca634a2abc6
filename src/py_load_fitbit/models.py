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
"""Defines the Pydantic models for records obtained from the directory service."""

from pydantic import BaseModel, ConfigDict, Field


class Study(BaseModel):
    """A study as returned by the Bridge directory service."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    identifier: str
    synapse_project_id: str | None = Field(default=None, alias="synapseProjectId")
    synapse_data_access_team_id: int | None = Field(
        default=None, alias="synapseDataAccessTeamId",
    )

    @property
    def is_configured(self) -> bool:
        """Whether the study has a destination set up for wearable data."""
        return bool(self.synapse_project_id) and self.synapse_data_access_team_id is not None


class FitBitUser(BaseModel):
    """A participant who has connected a Fitbit account.

    The health code is the row key in every destination table. The user id is
    the Fitbit user id and is only ever used to call the Fitbit API.
    """

    model_config = ConfigDict(frozen=True)

    user_id: str
    access_token: str
    health_code: str
