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
"""Converts single JSON values into the string form stored in a column.

Each supported column type has one coercion function. A function returns the
serialized value, or None when the JSON value has the wrong shape for the
column and should be dropped. Shapes are checked strictly: a numeric string
is never parsed into a number, and a "true" string is never a boolean. Numbers
too large for a double (`1e400` parses to infinity) are dropped as well.
"""

import json
import logging
import math
import uuid
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

from .context import RequestContext
from .schema import ColumnSchema, ColumnType

logger = logging.getLogger(__name__)

FileUploader = Callable[[Path], str]

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def to_canonical_json(value: Any) -> str:
    """Serialize a JSON value back to compact text.

    Raises ValueError for non-finite floats, which have no JSON form.
    """
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False, allow_nan=False)


def _is_number(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, float):
        return math.isfinite(value)
    return isinstance(value, int)


def _coerce_boolean(value: Any, column: ColumnSchema) -> str | None:
    if isinstance(value, bool):
        return "true" if value else "false"
    return None


def _coerce_date(value: Any, column: ColumnSchema) -> str | None:
    if not isinstance(value, str):
        return None
    try:
        parsed = datetime.strptime(value, _TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)
    except ValueError:
        return None
    return str((parsed - _EPOCH) // timedelta(milliseconds=1))


def _coerce_double(value: Any, column: ColumnSchema) -> str | None:
    if not _is_number(value):
        return None
    if isinstance(value, float):
        return repr(value)
    return str(value)


def _coerce_integer(value: Any, column: ColumnSchema) -> str | None:
    if not _is_number(value):
        return None
    # int() truncates toward zero.
    return str(int(value))


def _coerce_string(value: Any, column: ColumnSchema) -> str | None:
    if isinstance(value, str):
        text = value
    elif _is_number(value):
        text = _coerce_double(value, column)
    else:
        return None
    if column.max_length is not None and len(text) > column.max_length:
        text = text[: column.max_length]
    return text


def _to_json_or_none(value: Any) -> str | None:
    try:
        return to_canonical_json(value)
    except ValueError:
        return None


def _coerce_large_text(value: Any, column: ColumnSchema) -> str | None:
    return _to_json_or_none(value)


_COERCERS: dict[ColumnType, Callable[[Any, ColumnSchema], str | None]] = {
    ColumnType.BOOLEAN: _coerce_boolean,
    ColumnType.DATE: _coerce_date,
    ColumnType.DOUBLE: _coerce_double,
    ColumnType.INTEGER: _coerce_integer,
    ColumnType.STRING: _coerce_string,
    ColumnType.LARGETEXT: _coerce_large_text,
}


def upload_as_file(
    ctx: RequestContext, content: str, column: ColumnSchema, file_uploader: FileUploader,
) -> str:
    """Write serialized JSON to a temp file, upload it, and return the file handle id.

    The temp file lives in the context's temp directory and is removed once the
    upload returns or raises.
    """
    tmp_file = ctx.tmp_dir / f"{column.column_id}-{uuid.uuid4()}.json"
    tmp_file.write_text(content, encoding="utf-8")
    try:
        return file_uploader(tmp_file)
    finally:
        tmp_file.unlink(missing_ok=True)


def coerce_value(
    ctx: RequestContext,
    value: Any,
    column: ColumnSchema,
    file_uploader: FileUploader | None = None,
) -> str | None:
    """Coerce one JSON value for `column`, returning None if it should be dropped."""
    if value is None:
        return None

    if column.column_type is ColumnType.FILEHANDLEID:
        if file_uploader is None:
            msg = f"Column {column.column_id} needs a file uploader"
            raise ValueError(msg)
        content = _to_json_or_none(value)
        if content is None:
            return None
        return upload_as_file(ctx, content, column, file_uploader)

    coercer = _COERCERS.get(column.column_type)
    if coercer is None:
        logger.debug(
            "Dropping value for column %s with unsupported type %s",
            column.column_id,
            column.column_type.value,
        )
        return None
    return coercer(value, column)
