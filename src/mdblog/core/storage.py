"""Storage abstraction for blog posts."""

import logging
import re
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path

from pydantic import ValidationError

from mdblog.core.frontmatter import FrontMatterError, dump_front_matter, split_front_matter
from mdblog.core.models import MORE_MARKER, Post, PostMetadata

logger = logging.getLogger(__name__)

SLUG_PATTERN = re.compile(r"^[a-z0-9][a-z0-9-]*$")


class InvalidSlugError(ValueError):
    """Raised when a slug cannot be used as a post file name."""


class Storage(ABC):
    """Abstract base class for post storage."""

    @abstractmethod
    async def get_post(self, slug: str) -> Post | None:
        """Get a post by slug. Returns None if not found.

        Raises FrontMatterError when the file exists but is not valid
        UTF-8 or its front-matter is malformed.
        """
        ...

    @abstractmethod
    async def create_post(
        self,
        slug: str,
        title: str,
        *,
        tags: list[str] | None = None,
        categories: list[str] | None = None,
        author: str | None = None,
        description: str = "",
    ) -> Post:
        """Create a new draft post. Never overwrites an existing one."""
        ...

    @abstractmethod
    async def list_posts(self) -> list[str]:
        """List all post slugs."""
        ...

    @abstractmethod
    async def post_exists(self, slug: str) -> bool:
        """Check if a post exists."""
        ...

    @abstractmethod
    async def list_posts_with_metadata(self, include_drafts: bool = True) -> list[Post]:
        """List all parseable posts with full metadata, newest first."""
        ...

    @abstractmethod
    async def get_raw_content(self, slug: str) -> str | None:
        """Get raw file content including front-matter.

        Raises FrontMatterError when the file is not valid UTF-8.
        """
        ...

    @abstractmethod
    async def search_by_tag(self, tag: str) -> list[Post]:
        """Filter posts by tag."""
        ...

    @abstractmethod
    async def search_by_category(self, category: str) -> list[Post]:
        """Filter posts by category."""
        ...


class FileStorage(Storage):
    """File-based storage implementation.

    Posts are stored as Markdown files with YAML or TOML front-matter.
    File naming: <slug>.md. Files starting with an underscore (such as
    ``_template.md`` or ``_index.md``) are not posts.
    """

    def __init__(self, base_path: Path):
        self.base_path = base_path

    def _slug_to_filename(self, slug: str) -> str:
        """Convert slug to filename."""
        return slug + ".md"

    def _filename_to_slug(self, filename: str) -> str:
        """Convert filename to slug."""
        return filename.removesuffix(".md")

    def path_for(self, slug: str) -> Path:
        """Get full path for a post."""
        return self.base_path / self._slug_to_filename(slug)

    def _iter_paths(self) -> list[Path]:
        if not self.base_path.is_dir():
            return []
        return sorted(
            path
            for path in self.base_path.glob("*.md")
            if path.is_file() and not path.name.startswith("_")
        )

    def _read(self, path: Path) -> str:
        """Read a post file as UTF-8."""
        content = path.read_bytes()
        try:
            return content.decode("utf-8")
        except UnicodeDecodeError as e:
            line = content[: e.start].count(b"\n") + 1
            raise FrontMatterError(f"not valid UTF-8: {e.reason}", line=line) from e

    def _parse_post(self, slug: str, path: Path, raw: str) -> Post:
        """Build a Post from raw file content.

        Raises FrontMatterError when the front-matter is malformed or its
        fields have the wrong types.
        """
        front = split_front_matter(raw)
        try:
            metadata = PostMetadata.model_validate(front.data)
        except ValidationError as e:
            error = e.errors()[0]
            field = ".".join(str(part) for part in error["loc"]) or "?"
            raise FrontMatterError(f"invalid field '{field}': {error['msg']}", line=1) from e
        return Post(
            slug=slug,
            body=front.body,
            metadata=metadata,
            path=path,
            format=front.format,
        )

    def _load_all(self) -> list[Post]:
        """Load every parseable post, logging and skipping the rest."""
        posts = []
        for path in self._iter_paths():
            slug = self._filename_to_slug(path.name)
            try:
                posts.append(self._parse_post(slug, path, self._read(path)))
            except FrontMatterError as e:
                logger.warning("Skipping %s: %s", path, e)
        return posts

    async def get_post(self, slug: str) -> Post | None:
        """Get a post by slug."""
        path = self.path_for(slug)
        if not path.is_file():
            return None
        return self._parse_post(slug, path, self._read(path))

    async def create_post(
        self,
        slug: str,
        title: str,
        *,
        tags: list[str] | None = None,
        categories: list[str] | None = None,
        author: str | None = None,
        description: str = "",
    ) -> Post:
        """Create a new draft post."""
        if not SLUG_PATTERN.match(slug):
            raise InvalidSlugError(
                f"invalid slug {slug!r}: use lowercase letters, digits and dashes"
            )

        path = self.path_for(slug)
        self.base_path.mkdir(parents=True, exist_ok=True)

        data = {
            "title": title,
            "date": datetime.now().astimezone().replace(microsecond=0),
            "draft": True,
            "tags": list(tags or []),
            "categories": list(categories or []),
        }
        if author:
            data["author"] = author
        data["description"] = description
        data["more_link"] = "yes"
        data["url"] = f"/{slug}/"

        body = f"\n{description}\n\n{MORE_MARKER}\n" if description else f"\n{MORE_MARKER}\n"
        raw = dump_front_matter(data) + body

        # "x" mode fails if the file appeared in the meantime
        with path.open("x", encoding="utf-8") as f:
            f.write(raw)
        logger.info("Created post %s at %s", slug, path)

        return self._parse_post(slug, path, raw)

    async def list_posts(self) -> list[str]:
        """List all post slugs."""
        return sorted(self._filename_to_slug(path.name) for path in self._iter_paths())

    async def post_exists(self, slug: str) -> bool:
        """Check if a post exists."""
        return self.path_for(slug).is_file()

    async def get_raw_content(self, slug: str) -> str | None:
        """Get raw file content including front-matter."""
        path = self.path_for(slug)
        if not path.is_file():
            return None
        return self._read(path)

    async def list_posts_with_metadata(self, include_drafts: bool = True) -> list[Post]:
        """List all parseable posts, newest first."""
        posts = self._load_all()
        if not include_drafts:
            posts = [p for p in posts if not p.metadata.draft]
        posts.sort(key=lambda p: p.slug)
        return sorted(posts, key=lambda p: p.sort_date, reverse=True)

    async def search_by_tag(self, tag: str) -> list[Post]:
        """Filter posts by tag."""
        tag_lower = tag.lower()
        posts = await self.list_posts_with_metadata()
        return [p for p in posts if any(t.lower() == tag_lower for t in p.metadata.tags)]

    async def search_by_category(self, category: str) -> list[Post]:
        """Filter posts by category."""
        category_lower = category.lower()
        posts = await self.list_posts_with_metadata()
        return [
            p
            for p in posts
            if any(c.lower() == category_lower for c in p.metadata.categories)
        ]

    async def tag_counts(self) -> list[tuple[str, int]]:
        """Tag index with counts, sorted by tag name."""
        posts = await self.list_posts_with_metadata()
        return _count_terms(tag for post in posts for tag in post.metadata.tags)

    async def category_counts(self) -> list[tuple[str, int]]:
        """Category index with counts, sorted by category name."""
        posts = await self.list_posts_with_metadata()
        return _count_terms(c for post in posts for c in post.metadata.categories)


def _count_terms(terms) -> list[tuple[str, int]]:
    counts: dict[str, int] = {}
    for term in terms:
        counts[term] = counts.get(term, 0) + 1
    return sorted(counts.items(), key=lambda x: x[0].lower())
