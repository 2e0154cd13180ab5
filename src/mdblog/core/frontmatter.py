"""Front-matter codec for post files.

A post starts with a metadata block delimited by ``---`` (YAML) or
``+++`` (TOML) lines, followed by the Markdown body.
"""

import tomllib
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

import yaml

from mdblog.core.models import FrontMatterFormat

DELIMITERS: dict[str, FrontMatterFormat] = {
    "---": "yaml",
    "+++": "toml",
}


class FrontMatterError(ValueError):
    """Raised when a post's front-matter block is missing or malformed."""

    def __init__(self, message: str, line: int | None = None):
        super().__init__(message)
        self.message = message
        self.line = line

    def __str__(self) -> str:
        if self.line is None:
            return self.message
        return f"line {self.line}: {self.message}"


@dataclass
class FrontMatter:
    """A parsed front-matter block and the body that follows it."""

    format: FrontMatterFormat
    data: dict[str, Any] = field(default_factory=dict)
    body: str = ""
    # Number of lines the block occupies, delimiters included
    line_count: int = 0


def split_front_matter(text: str) -> FrontMatter:
    """Split ``text`` into parsed front-matter and body.

    Raises:
        FrontMatterError: no opening delimiter, no closing delimiter, the
            block does not parse, or it does not parse to a mapping.
    """
    text = text.removeprefix("\ufeff")
    lines = text.splitlines(keepends=True)
    if not lines:
        raise FrontMatterError("file is empty", line=1)

    opener = lines[0].rstrip()
    fmt = DELIMITERS.get(opener)
    if fmt is None:
        raise FrontMatterError(
            "missing front-matter: first line must be '---' or '+++'", line=1
        )

    for index in range(1, len(lines)):
        if lines[index].rstrip() == opener:
            closing = index
            break
    else:
        raise FrontMatterError(f"front-matter opened with '{opener}' is never closed", line=1)

    block = "".join(lines[1:closing])
    body = "".join(lines[closing + 1 :])
    data = _load_block(block, fmt)

    return FrontMatter(format=fmt, data=data, body=body, line_count=closing + 1)


def _load_block(block: str, fmt: FrontMatterFormat) -> dict[str, Any]:
    """Parse a front-matter block. Line numbers are file-relative."""
    if fmt == "toml":
        try:
            data = tomllib.loads(block)
        except tomllib.TOMLDecodeError as e:
            line = getattr(e, "lineno", None)
            raise FrontMatterError(
                f"invalid TOML: {e}", line=line + 1 if line else None
            ) from e
        return data

    try:
        data = yaml.safe_load(block)
    except yaml.YAMLError as e:
        mark = getattr(e, "problem_mark", None)
        raise FrontMatterError(
            f"invalid YAML: {getattr(e, 'problem', None) or e}",
            line=mark.line + 2 if mark is not None else None,
        ) from e
    except ValueError as e:
        # Timestamp-shaped scalars such as 2024-13-45 fail in the constructor
        raise FrontMatterError(f"invalid YAML value: {e}", line=_bad_timestamp_line(block)) from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise FrontMatterError(
            f"front-matter must be a mapping, got {type(data).__name__}", line=2
        )
    return data


def dump_front_matter(data: dict[str, Any]) -> str:
    """Create a YAML front-matter block from ``data``, keeping key order."""
    if not data:
        return "---\n---\n"
    serialisable = {
        key: value.isoformat() if isinstance(value, (datetime, date)) else value
        for key, value in data.items()
    }
    dumped = yaml.safe_dump(
        serialisable,
        default_flow_style=False,
        sort_keys=False,
        allow_unicode=True,
    )
    return f"---\n{dumped}---\n"


def _bad_timestamp_line(block: str) -> int | None:
    """File line of the first timestamp scalar in ``block`` that is not a real date."""
    constructor = yaml.SafeLoader("")
    pending = [yaml.compose(block, Loader=yaml.SafeLoader)]
    while pending:
        node = pending.pop(0)
        if node is None:
            continue
        if isinstance(node, yaml.MappingNode):
            pending[:0] = [item for pair in node.value for item in pair]
        elif isinstance(node, yaml.SequenceNode):
            pending[:0] = list(node.value)
        elif node.tag == "tag:yaml.org,2002:timestamp":
            try:
                constructor.construct_yaml_timestamp(node)
            except ValueError:
                return node.start_mark.line + 2
    return None
