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
"""The worker: walks studies, users and endpoints, then uploads the tables.

Failures are isolated at every level. An endpoint failing for one user, a
table failing to upload, or a whole study failing is logged and the run goes
on. Only a request without a date is rejected outright.
"""

import logging
import time
from collections.abc import Mapping, Sequence
from typing import Any

from .bridge import BridgeHelper
from .coercer import FileUploader
from .context import RequestContext
from .exceptions import BadRequestError
from .extractor import extract_rows
from .files import FileHelper
from .fitbit_client import FitBitClient
from .models import FitBitUser, Study
from .rate_limiter import RateLimiter
from .schema import EndpointSchema
from .table_processor import TableProcessor

logger = logging.getLogger(__name__)

REQUEST_PARAM_DATE = "date"
DEFAULT_REPORTING_INTERVAL = 10


class UserProcessor:
    """Calls one endpoint for one user and merges the rows into the context."""

    def __init__(self, client: FitBitClient, file_uploader: FileUploader | None = None) -> None:
        self.client = client
        self.file_uploader = file_uploader

    def make_http_request(self, url: str, access_token: str) -> str:
        return self.client.get(url, access_token)

    def warn(self, message: str) -> None:
        logger.warning(message)

    def process_endpoint_for_user(
        self, ctx: RequestContext, user: FitBitUser, endpoint_schema: EndpointSchema,
    ) -> None:
        url = endpoint_schema.build_url(user, ctx.date)
        response_text = self.make_http_request(url, user.access_token)
        result = extract_rows(ctx, user, endpoint_schema, response_text, self.file_uploader)

        for warning in result.warnings:
            self.warn(warning.message)
        for table_id, table_rows in result.tables.items():
            ctx.add_rows(table_id, table_rows.table_schema, table_rows.rows)


class FitBitWorkerProcessor:
    """Main entry point: processes one request for one date across all studies."""

    def __init__(
        self,
        bridge_helper: BridgeHelper,
        endpoint_schemas: Sequence[EndpointSchema],
        file_helper: FileHelper,
        table_processor: TableProcessor,
        user_processor: UserProcessor,
        per_user_rate_limit: float = 1.0,
        reporting_interval: int = DEFAULT_REPORTING_INTERVAL,
    ) -> None:
        self.bridge_helper = bridge_helper
        self.endpoint_schemas = list(endpoint_schemas)
        self.file_helper = file_helper
        self.table_processor = table_processor
        self.user_processor = user_processor
        self.per_user_rate_limiter = RateLimiter(per_user_rate_limit)
        self.reporting_interval = reporting_interval

    def set_per_user_rate_limit(self, rate: float) -> None:
        """Set rate limit, in users per second."""
        self.per_user_rate_limiter.set_rate(rate)

    def accept(self, request: Mapping[str, Any]) -> None:
        """Process a request of the form {"date": "YYYY-MM-DD"}.

        Raises:
            BadRequestError: if the date is missing or null.

        """
        date = request.get(REQUEST_PARAM_DATE)
        if date is None:
            msg = "date must be specified"
            raise BadRequestError(msg)
        date = str(date)

        logger.info("Received request for date %s", date)
        request_start = time.monotonic()
        for study in self.bridge_helper.get_all_studies():
            study_id = study.identifier
            if not study.is_configured:
                logger.info("Skipping study %s", study_id)
                continue

            logger.info("Processing study %s", study_id)
            study_start = time.monotonic()
            try:
                self.process_study(date, study)
            except Exception as e:
                logger.error("Error processing study %s: %s", study_id, e, exc_info=True)
            finally:
                logger.info(
                    "Finished processing study %s in %.1f seconds",
                    study_id,
                    time.monotonic() - study_start,
                )
        logger.info(
            "Finished processing request for date %s in %.1f seconds",
            date,
            time.monotonic() - request_start,
        )

    def process_study(self, date: str, study: Study) -> RequestContext:
        """Process every user of one study, then upload every populated table.

        The study's temp directory is removed on the way out, whether or not
        processing succeeded.
        """
        study_id = study.identifier
        tmp_dir = self.file_helper.create_temp_dir()
        try:
            ctx = RequestContext(date, study, tmp_dir)
            self._process_users(ctx)
            self._process_tables(ctx)
            return ctx
        finally:
            self.file_helper.delete_dir(tmp_dir)
            logger.debug("Cleaned up temp dir for study %s", study_id)

    def _process_users(self, ctx: RequestContext) -> None:
        study_id = ctx.study.identifier
        users = self.bridge_helper.get_fitbit_users_for_study(study_id)
        logger.info("Processing users in study %s", study_id)

        num_users = 0
        users_start = time.monotonic()
        for user in users:
            self.per_user_rate_limiter.acquire()

            for endpoint_schema in self.endpoint_schemas:
                try:
                    self.user_processor.process_endpoint_for_user(ctx, user, endpoint_schema)
                except Exception as e:
                    logger.error(
                        "Error processing user for healthCode %s on endpoint %s: %s",
                        user.health_code,
                        endpoint_schema.endpoint_id,
                        e,
                        exc_info=True,
                    )

            num_users += 1
            if num_users % self.reporting_interval == 0:
                logger.info(
                    "Processing users in progress: %d users in %.1f seconds",
                    num_users,
                    time.monotonic() - users_start,
                )
        logger.info(
            "Finished processing users: %d users in %.1f seconds",
            num_users,
            time.monotonic() - users_start,
        )

    def _process_tables(self, ctx: RequestContext) -> None:
        for populated_table in list(ctx.populated_tables_by_id.values()):
            table_id = populated_table.table_id
            logger.info("Processing table %s", table_id)
            table_start = time.monotonic()
            try:
                self.table_processor.process_table(ctx, populated_table)
            except Exception as e:
                logger.error("Error processing table %s: %s", table_id, e, exc_info=True)
            finally:
                logger.info(
                    "Finished processing table %s in %.1f seconds",
                    table_id,
                    time.monotonic() - table_start,
                )
