"""Structural checks for post files.

Every post file is checked on its own (encoding, front-matter, required fields,
field types, more marker, code fences, shortcodes, draft state, author)
and then against the other posts (url uniqueness).
"""

import logging
import re
from collections.abc import Iterator
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, ValidationError

from mdblog.core.frontmatter import FrontMatter, FrontMatterError, split_front_matter
from mdblog.core.models import MORE_MARKER, PostMetadata
from mdblog.core.storage import FileStorage

logger = logging.getLogger(__name__)

Severity = Literal["error", "warning"]

REQUIRED_FIELDS = ("title", "date", "url")

# Up to three spaces of indentation, then three or more backticks or tildes
FENCE_PATTERN = re.compile(r"^ {0,3}(`{3,}|~{3,})(.*)$")

SHORTCODE_PAIRS = (("{{<", ">}}"), ("{{%", "%}}"))


class CheckIssue(BaseModel):
    """A single problem found in a post file."""

    path: str
    line: int | None = None
    rule: str
    severity: Severity = "error"
    message: str

    def __str__(self) -> str:
        location = self.path if self.line is None else f"{self.path}:{self.line}"
        return f"{location}: {self.severity}: [{self.rule}] {self.message}"


class CheckReport(BaseModel):
    """Result of checking a set of post files."""

    files_checked: int = 0
    issues: list[CheckIssue] = Field(default_factory=list)
    strict: bool = False

    @property
    def errors(self) -> list[CheckIssue]:
        return [i for i in self.issues if i.severity == "error"]

    @property
    def warnings(self) -> list[CheckIssue]:
        return [i for i in self.issues if i.severity == "warning"]

    @property
    def ok(self) -> bool:
        """True when nothing fails the run; warnings fail only in strict mode."""
        if self.strict:
            return not self.issues
        return not self.errors


class FencedBlock(BaseModel):
    """A fenced code block. ``end`` is None when the block is never closed."""

    start: int
    end: int | None = None
    info: str = ""


def scan_fences(text: str, first_line: int = 1) -> tuple[list[FencedBlock], list[bool]]:
    """Find fenced code blocks in ``text``.

    Returns the blocks and, per line, whether that line is inside a fence
    (delimiter lines included). Line numbers start at ``first_line``.
    """
    blocks: list[FencedBlock] = []
    in_fence: list[bool] = []
    current: FencedBlock | None = None
    fence = ""

    for offset, line in enumerate(text.splitlines()):
        number = first_line + offset
        match = FENCE_PATTERN.match(line)

        if current is None:
            # A backtick fence's info string may not contain backticks
            if match and not (match.group(1)[0] == "`" and "`" in match.group(2)):
                fence = match.group(1)
                current = FencedBlock(start=number, info=match.group(2).strip())
                in_fence.append(True)
            else:
                in_fence.append(False)
            continue

        in_fence.append(True)
        if (
            match
            and match.group(1)[0] == fence[0]
            and len(match.group(1)) >= len(fence)
            and not match.group(2).strip()
        ):
            current.end = number
            blocks.append(current)
            current = None

    if current is not None:
        blocks.append(current)
    return blocks, in_fence


def _prose_lines(text: str, first_line: int) -> Iterator[tuple[int, str]]:
    """Yield (line number, line) for lines outside fenced code blocks."""
    _, in_fence = scan_fences(text, first_line)
    for offset, line in enumerate(text.splitlines()):
        if not in_fence[offset]:
            yield first_line + offset, line


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


def normalize_url(url: str) -> str:
    """Canonical form used to compare url values: one leading and trailing slash."""
    stripped = url.strip().strip("/")
    return f"/{stripped}/" if stripped else "/"


class PostChecker:
    """Runs the per-file and cross-file rules over post files."""

    def __init__(self, site_author: str | None = None, strict: bool = False):
        self.site_author = site_author
        self.strict = strict

    def check_text(self, path: str, text: str) -> tuple[list[CheckIssue], FrontMatter | None]:
        """Check one file. Returns its issues and the parsed front-matter, if any."""
        issues: list[CheckIssue] = []

        def issue(rule: str, message: str, line: int | None = None, severity: Severity = "error"):
            issues.append(
                CheckIssue(path=path, line=line, rule=rule, severity=severity, message=message)
            )

        try:
            front = split_front_matter(text)
        except FrontMatterError as e:
            issue("front-matter", e.message, line=e.line)
            front = None

        if front is not None:
            body, first_line = front.body, front.line_count + 1
            self._check_fields(front.data, issue)
        else:
            body, first_line = text.removeprefix("\ufeff"), 1

        self._check_body(body, first_line, issue)
        return issues, front

    def _check_fields(self, data: dict[str, Any], issue) -> None:
        for key in REQUIRED_FIELDS:
            if _is_empty(data.get(key)):
                issue("required-field", f"'{key}' is missing or empty", line=1)

        try:
            PostMetadata.model_validate(data)
        except ValidationError as e:
            # Union fields report one error per member; keep the first per field
            reported: set[str] = set()
            for error in e.errors():
                field = str(error["loc"][0]) if error["loc"] else "?"
                if field in reported:
                    continue
                reported.add(field)
                issue("invalid-field", f"'{field}': {error['msg']}", line=1)

        if data.get("draft") is True:
            issue("draft", "post is marked as draft", line=1, severity="warning")

        author = data.get("author")
        if self.site_author and not _is_empty(author) and author != self.site_author:
            issue(
                "author",
                f"author {author!r} differs from site author {self.site_author!r}",
                line=1,
                severity="warning",
            )

    def _check_body(self, body: str, first_line: int, issue) -> None:
        blocks, _ = scan_fences(body, first_line)
        for block in blocks:
            if block.end is None:
                issue("unclosed-fence", "fenced code block is never closed", line=block.start)

        marker_seen = False
        for number, line in _prose_lines(body, first_line):
            for _ in range(line.count(MORE_MARKER)):
                if marker_seen:
                    issue("more-marker", f"'{MORE_MARKER}' appears more than once", line=number)
                marker_seen = True

            for opener, closer in SHORTCODE_PAIRS:
                position = line.find(opener)
                while position != -1:
                    close = line.find(closer, position + len(opener))
                    if close == -1:
                        issue(
                            "unclosed-shortcode",
                            f"shortcode '{opener}' has no '{closer}' on the same line",
                            line=number,
                        )
                        break
                    position = line.find(opener, close + len(closer))

    def check_files(self, files: list[tuple[str, str | bytes]]) -> CheckReport:
        """Check ``(path, content)`` pairs, including url uniqueness across them.

        Content given as bytes must be UTF-8; anything else is reported as
        an ``encoding`` issue and the file's other rules are skipped.
        """
        report = CheckReport(strict=self.strict)
        seen_urls: dict[str, str] = {}

        for path, content in files:
            report.files_checked += 1
            if isinstance(content, bytes):
                try:
                    content = content.decode("utf-8")
                except UnicodeDecodeError as e:
                    report.issues.append(
                        CheckIssue(
                            path=path,
                            line=content[: e.start].count(b"\n") + 1,
                            rule="encoding",
                            message=f"file is not valid UTF-8: {e.reason} at byte {e.start}",
                        )
                    )
                    continue

            issues, front = self.check_text(path, content)
            report.issues.extend(issues)

            url = front.data.get("url") if front is not None else None
            if not isinstance(url, str) or _is_empty(url):
                continue
            key = normalize_url(url)
            if key in seen_urls:
                report.issues.append(
                    CheckIssue(
                        path=path,
                        line=1,
                        rule="duplicate-url",
                        message=f"url {url!r} is already used by {seen_urls[key]}",
                    )
                )
            else:
                seen_urls[key] = path

        logger.info(
            "Checked %d files: %d errors, %d warnings",
            report.files_checked,
            len(report.errors),
            len(report.warnings),
        )
        return report


async def check_posts(
    storage: FileStorage,
    site_author: str | None = None,
    strict: bool = False,
) -> CheckReport:
    """Check every post file in ``storage``."""
    files: list[tuple[str, str | bytes]] = []
    for slug in await storage.list_posts():
        path = storage.path_for(slug)
        files.append((str(_display_path(path)), path.read_bytes()))
    checker = PostChecker(site_author=site_author, strict=strict)
    return checker.check_files(files)


def _display_path(path: Path) -> Path:
    try:
        return path.relative_to(Path.cwd())
    except ValueError:
        return path
