"""In-memory copy of the rendered site.

Every file under the web root is read once and kept in memory keyed by
its URL path. Directories that contain an ``index.html`` are also keyed
by their slash-terminated path.
"""

import logging
import mimetypes
import os
import re
from datetime import datetime, timezone
from pathlib import Path
from urllib.parse import quote_plus

from pydantic import BaseModel, ConfigDict

logger = logging.getLogger(__name__)

CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")

TEXT_TYPES = ("text/", "application/javascript", "application/json", "application/xml")


def sanitize_path(path: str) -> str:
    """Escape a request path for lookups, logs and metric labels.

    Everything except unreserved characters and ``/`` is percent-escaped
    (space becomes ``+``) and control characters are dropped.
    """
    escaped = quote_plus(path, safe="/")
    return CONTROL_CHARS.sub("", escaped)


def guess_content_type(path: str) -> str:
    """Content-Type header value for a file name."""
    content_type, _ = mimetypes.guess_type(path)
    if content_type is None:
        return "application/octet-stream"
    if content_type.startswith(TEXT_TYPES):
        return f"{content_type}; charset=utf-8"
    return content_type


class CachedFile(BaseModel):
    """A file held in memory."""

    model_config = ConfigDict(frozen=True)

    content: bytes
    content_type: str
    mod_time: datetime

    @property
    def etag(self) -> str:
        return f'"{int(self.mod_time.timestamp())}"'


class FileCache:
    """URL path to file content mapping for a rendered site."""

    def __init__(self) -> None:
        self._files: dict[str, CachedFile] = {}

    def __len__(self) -> int:
        return len(self._files)

    def __contains__(self, url_path: str) -> bool:
        return url_path in self._files

    def load(self, root: Path) -> int:
        """Read every file under ``root`` into memory. Returns the entry count.

        Replaces whatever was loaded before. Raises OSError when ``root``
        cannot be walked or a file cannot be read.
        """
        if not root.is_dir():
            raise NotADirectoryError(f"web root {root} is not a directory")

        files: dict[str, CachedFile] = {}
        loaded_at = datetime.now(timezone.utc).replace(microsecond=0)

        def on_error(error: OSError) -> None:
            raise error

        for dirpath, _dirnames, filenames in os.walk(root, onerror=on_error):
            directory = Path(dirpath)
            rel_dir = directory.relative_to(root).as_posix()
            dir_url = "/" if rel_dir == "." else f"/{rel_dir}/"

            index = directory / "index.html"
            if index.is_file():
                files[sanitize_path(dir_url)] = self._read(index, loaded_at)
                logger.debug("Directory %s loaded with index.html", dir_url)
            else:
                logger.debug("Directory %s does not contain an index.html", dir_url)

            for name in filenames:
                file_path = directory / name
                url_path = dir_url + name
                files[sanitize_path(url_path)] = self._read(file_path, loaded_at)
                logger.debug("File %s loaded with url path %s", file_path, url_path)

        self._files = files
        logger.info("Loaded %d entries from %s into memory", len(files), root)
        return len(files)

    def _read(self, path: Path, loaded_at: datetime) -> CachedFile:
        return CachedFile(
            content=path.read_bytes(),
            content_type=guess_content_type(path.name),
            mod_time=loaded_at,
        )

    def lookup(self, sanitized_path: str) -> tuple[str, CachedFile] | None:
        """Find the file for an already sanitized request path.

        A path ending in ``/`` is served by its ``index.html``; any other
        miss is retried as ``<path>/index.html``.
        """
        path = sanitized_path
        if path.endswith("/"):
            path += "index.html"

        found = self._files.get(path)
        if found is not None:
            return path, found

        if not path.endswith("/index.html"):
            index_path = path + "/index.html"
            found = self._files.get(index_path)
            if found is not None:
                logger.debug("Found index.html for path: %s", index_path)
                return index_path, found

        return None
