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
"""Per-study working state and the table aggregation it owns."""

import threading
from collections.abc import Iterable
from pathlib import Path

from .models import Study
from .schema import TableSchema

Row = dict[str, str]


class PopulatedTable:
    """All rows destined for one table, across every user of one study."""

    def __init__(self, table_id: str, table_schema: TableSchema) -> None:
        self.table_id = table_id
        self.table_schema = table_schema
        self.rows: list[Row] = []

    def __repr__(self) -> str:
        return f"PopulatedTable({self.table_id!r}, rows={len(self.rows)})"


class RequestContext:
    """Mutable state for processing one study on one date.

    The context owns its scoped temp directory and the populated tables. It is
    created once per study and discarded when the study is done.
    """

    def __init__(self, date: str, study: Study, tmp_dir: Path) -> None:
        self.date = date
        self.study = study
        self.tmp_dir = tmp_dir
        self.populated_tables_by_id: dict[str, PopulatedTable] = {}
        self._lock = threading.Lock()

    def add_rows(
        self, table_id: str, table_schema: TableSchema, rows: Iterable[Row],
    ) -> PopulatedTable:
        """Append rows to a table, creating the table if it does not exist yet.

        The table is created even when `rows` is empty: a row document was seen
        for it, though none of its columns survived coercion.
        """
        rows = list(rows)
        with self._lock:
            table = self.populated_tables_by_id.get(table_id)
            if table is None:
                table = PopulatedTable(table_id, table_schema)
                self.populated_tables_by_id[table_id] = table
            table.rows.extend(rows)
            return table
