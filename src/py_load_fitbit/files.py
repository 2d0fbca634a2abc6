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
"""Scoped temp directories for per-study scratch files."""

import logging
import shutil
import tempfile
from pathlib import Path

logger = logging.getLogger(__name__)


class FileHelper:
    """Creates and removes temp directories under an optional root."""

    def __init__(self, tmp_root: Path | None = None) -> None:
        self.tmp_root = tmp_root

    def create_temp_dir(self) -> Path:
        if self.tmp_root is not None:
            self.tmp_root.mkdir(parents=True, exist_ok=True)
        return Path(tempfile.mkdtemp(prefix="fitbit-", dir=self.tmp_root))

    def delete_dir(self, path: Path) -> None:
        """Recursively delete `path`. Missing directories are ignored."""
        if not path.exists():
            return
        shutil.rmtree(path)
        logger.debug("Deleted temp dir %s", path)
