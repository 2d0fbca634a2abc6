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
"""Defines the abstract base class for destination table stores."""

import abc
import types
from collections.abc import Iterable
from typing import IO, Any


class BaseLoader(abc.ABC):
    """Abstract Base Class for all table store loaders.

    A loader is a context manager: entering it opens a connection and a
    transaction, leaving it commits on success and rolls back on error. Each
    populated table is loaded inside its own loader block, so one failing
    table never affects another.
    """

    @abc.abstractmethod
    def __enter__(self) -> "BaseLoader":
        """Establish the database connection and begin a transaction.

        Returns:
            The loader instance.

        """
        raise NotImplementedError

    @abc.abstractmethod
    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: types.TracebackType | None,
    ) -> None:
        """Commit the transaction on success or roll back on error.

        Closes the database connection.
        """
        raise NotImplementedError

    @abc.abstractmethod
    def bulk_load_stream(
        self,
        schema: str,
        table: str,
        data_stream: IO[bytes],
        columns: list[str] | None = None,
        delimiter: str = ",",
    ) -> None:
        """Execute a native bulk load operation.

        Args:
            schema: The schema holding the target table.
            table: The name of the table to load data into. Table ids contain
                   dots, so the name is never split.
            data_stream: A file-like object containing CSV rows without a header.
            columns: The column names, in the order they appear in each row.
            delimiter: The delimiter used in the data stream.

        """
        raise NotImplementedError

    @abc.abstractmethod
    def execute_sql(
        self, sql: str, params: Iterable[Any] | None = None, fetch: str | None = None,
    ) -> Any:
        """Execute an arbitrary SQL command.

        Args:
            sql: The SQL statement to execute.
            params: Optional parameters for the statement.
            fetch: "one" or "all" to return rows, None to return nothing.

        """
        raise NotImplementedError
