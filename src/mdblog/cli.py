"""Command line interface.

Usage:
    mdblog check [--content-dir DIR] [--strict] [--format text|json] [--author NAME]
    mdblog drafts [--content-dir DIR]
    mdblog list [--tag TAG] [--category CATEGORY] [--no-drafts]
    mdblog tags
    mdblog categories
    mdblog new SLUG --title TITLE [--tag TAG ...] [--category CATEGORY ...]
    mdblog serve [--web-root DIR] [--port N] [--metrics-port N] [--memory]
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from mdblog import __version__
from mdblog.config import Settings, settings
from mdblog.core.checker import check_posts
from mdblog.core.storage import FileStorage, InvalidSlugError
from mdblog.log import setup_logging

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--content-dir",
        type=Path,
        help="directory holding the post files (default: MDBLOG_CONTENT_DIR setting)",
    )
    common.add_argument("--debug", action="store_true", help="enable debug logging")

    parser = argparse.ArgumentParser(
        prog="mdblog",
        description="Check, scaffold and serve a Markdown blog.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", required=True)

    check = subparsers.add_parser(
        "check", parents=[common], help="check post files for structural problems"
    )
    check.add_argument("--strict", action="store_true", help="fail on warnings too")
    check.add_argument("--format", choices=("text", "json"), default="text")
    check.add_argument("--author", help="expected author (default: site author setting)")
    check.set_defaults(handler=cmd_check)

    drafts = subparsers.add_parser(
        "drafts", parents=[common], help="list posts still marked as draft"
    )
    drafts.set_defaults(handler=cmd_drafts)

    list_cmd = subparsers.add_parser("list", parents=[common], help="list posts, newest first")
    list_cmd.add_argument("--tag")
    list_cmd.add_argument("--category")
    list_cmd.add_argument("--no-drafts", action="store_true", help="hide draft posts")
    list_cmd.set_defaults(handler=cmd_list)

    tags = subparsers.add_parser("tags", parents=[common], help="show tag counts")
    tags.set_defaults(handler=cmd_tags)

    categories = subparsers.add_parser(
        "categories", parents=[common], help="show category counts"
    )
    categories.set_defaults(handler=cmd_categories)

    new = subparsers.add_parser("new", parents=[common], help="create a new draft post")
    new.add_argument("slug")
    new.add_argument("--title", required=True)
    new.add_argument("--tag", action="append", dest="tags", default=[])
    new.add_argument("--category", action="append", dest="categories", default=[])
    new.add_argument("--description", default="")
    new.add_argument("--author", help="author (default: site author setting)")
    new.set_defaults(handler=cmd_new)

    serve = subparsers.add_parser("serve", parents=[common], help="serve the rendered site")
    serve.add_argument("--web-root", type=Path)
    serve.add_argument("--host")
    serve.add_argument("--port", type=int)
    serve.add_argument("--metrics-port", type=int)
    serve.add_argument("--memory", action="store_true", help="load the site into memory")
    serve.set_defaults(handler=cmd_serve)

    return parser


def cmd_check(args: argparse.Namespace, cfg: Settings) -> int:
    storage = FileStorage(cfg.content_dir)
    report = asyncio.run(
        check_posts(storage, site_author=args.author or cfg.site_author, strict=args.strict)
    )

    if args.format == "json":
        print(
            json.dumps(
                {
                    "ok": report.ok,
                    "files_checked": report.files_checked,
                    "issues": [issue.model_dump() for issue in report.issues],
                },
                indent=2,
            )
        )
    else:
        for issue in report.issues:
            print(issue)
        print(
            f"{report.files_checked} files checked, "
            f"{len(report.errors)} errors, {len(report.warnings)} warnings"
        )
    return 0 if report.ok else 1


def cmd_drafts(args: argparse.Namespace, cfg: Settings) -> int:
    storage = FileStorage(cfg.content_dir)
    posts = asyncio.run(storage.list_posts_with_metadata())
    drafts = [p for p in posts if p.metadata.draft]
    if not drafts:
        print("No draft content found")
        return 0
    print("Draft content found")
    for post in drafts:
        print(f"  {post.slug}: {post.title}")
    return 0


def _format_post(post) -> str:
    date = post.metadata.date.isoformat() if post.metadata.date else "undated"
    flag = " [draft]" if post.metadata.draft else ""
    return f"{date}  {post.slug}  {post.title}{flag}"


def cmd_list(args: argparse.Namespace, cfg: Settings) -> int:
    storage = FileStorage(cfg.content_dir)
    if args.tag:
        posts = asyncio.run(storage.search_by_tag(args.tag))
    elif args.category:
        posts = asyncio.run(storage.search_by_category(args.category))
    else:
        posts = asyncio.run(storage.list_posts_with_metadata())
    if args.tag and args.category:
        wanted = args.category.lower()
        posts = [p for p in posts if any(c.lower() == wanted for c in p.metadata.categories)]
    if args.no_drafts:
        posts = [p for p in posts if not p.metadata.draft]
    for post in posts:
        print(_format_post(post))
    return 0


def _print_counts(counts: list[tuple[str, int]]) -> None:
    for term, count in counts:
        print(f"{count:5d}  {term}")


def cmd_tags(args: argparse.Namespace, cfg: Settings) -> int:
    _print_counts(asyncio.run(FileStorage(cfg.content_dir).tag_counts()))
    return 0


def cmd_categories(args: argparse.Namespace, cfg: Settings) -> int:
    _print_counts(asyncio.run(FileStorage(cfg.content_dir).category_counts()))
    return 0


def cmd_new(args: argparse.Namespace, cfg: Settings) -> int:
    storage = FileStorage(cfg.content_dir)
    try:
        post = asyncio.run(
            storage.create_post(
                args.slug,
                args.title,
                tags=args.tags,
                categories=args.categories,
                author=args.author or cfg.site_author,
                description=args.description,
            )
        )
    except InvalidSlugError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2
    except FileExistsError:
        print(f"error: post {args.slug!r} already exists", file=sys.stderr)
        return 1
    print(post.path)
    return 0


def cmd_serve(args: argparse.Namespace, cfg: Settings) -> int:
    from mdblog.main import serve

    updates = {
        "web_root": args.web_root,
        "host": args.host,
        "port": args.port,
        "metrics_port": args.metrics_port,
    }
    cfg = cfg.model_copy(update={k: v for k, v in updates.items() if v is not None})
    if args.memory:
        cfg = cfg.model_copy(update={"use_memory": True})

    try:
        asyncio.run(serve(cfg))
    except KeyboardInterrupt:
        pass
    except OSError as e:
        logger.error("Server failed: %s", e)
        return 1
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    cfg = settings
    if args.content_dir is not None:
        cfg = cfg.model_copy(update={"content_dir": args.content_dir})
    if args.debug:
        cfg = cfg.model_copy(update={"debug": True})
    setup_logging(cfg)

    try:
        return args.handler(args, cfg)
    except OSError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
