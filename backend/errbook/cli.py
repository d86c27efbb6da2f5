from __future__ import annotations

import argparse
import asyncio
import json
import logging
import mimetypes
import sys
from pathlib import Path
from typing import Any

from errbook.application.dependencies import get_ai_provider, get_notebook_service
from errbook.application.services import TIME_RANGES
from errbook.core.config import get_settings
from errbook.core.logging import configure_logging
from errbook.domain.errors import AIServiceError
from errbook.domain.models import DIFFICULTY_LEVELS
from errbook.domain.subjects import Subject

logger = logging.getLogger(__name__)


def _guess_content_type(path: Path) -> str:
    guessed, _ = mimetypes.guess_type(str(path))
    return guessed or "application/octet-stream"


def _print_json(data: Any) -> None:
    print(json.dumps(data, ensure_ascii=False, indent=2))


async def _close_provider() -> None:
    await get_ai_provider().aclose()


async def _cmd_analyze(args: argparse.Namespace) -> int:
    path = Path(args.image)
    payload = path.read_bytes()
    mime_type = args.mime_type or _guess_content_type(path)
    service = get_notebook_service()
    try:
        if args.save:
            item = await service.analyze_and_save(payload=payload, mime_type=mime_type, language=args.language)
            _print_json(item.to_payload())
        else:
            question = await service.analyze_upload(payload=payload, mime_type=mime_type, language=args.language)
            _print_json(question.to_payload())
    finally:
        await _close_provider()
    return 0


async def _cmd_similar(args: argparse.Namespace) -> int:
    service = get_notebook_service()
    try:
        question = await service.generate_similar(
            item_id=args.item_id,
            language=args.language,
            difficulty=args.difficulty,
        )
    finally:
        await _close_provider()
    _print_json(question.to_payload())
    return 0


def _cmd_list(args: argparse.Namespace) -> int:
    items = get_notebook_service().list_items(
        subject=args.subject,
        knowledge_point=args.tag,
        query=args.query,
        mastered=args.mastered,
        time_range=args.time_range,
        limit=args.limit,
        offset=args.offset,
    )
    _print_json([item.to_payload() for item in items])
    return 0


def _cmd_tags(args: argparse.Namespace) -> int:
    stats = get_notebook_service().tag_stats(subject=args.subject)
    _print_json([{"tag": name, "count": count} for name, count in stats])
    return 0


def _cmd_mastery(args: argparse.Namespace) -> int:
    item = get_notebook_service().set_mastery_level(item_id=args.item_id, level=args.level)
    _print_json(item.to_payload())
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="errbook", description="Error notebook: analyze and review missed questions.")
    sub = parser.add_subparsers(dest="command", required=True)

    analyze = sub.add_parser("analyze", help="Extract a question from a photo")
    analyze.add_argument("image", help="Path to a PNG/JPG/WEBP photo")
    analyze.add_argument("--mime-type", default=None)
    analyze.add_argument("--language", choices=["zh", "en"], default=None)
    analyze.add_argument("--save", action="store_true", help="Persist the result as a notebook item")

    similar = sub.add_parser("similar", help="Generate a practice question from a saved item")
    similar.add_argument("item_id")
    similar.add_argument("--language", choices=["zh", "en"], default=None)
    similar.add_argument("--difficulty", choices=list(DIFFICULTY_LEVELS), default="medium")

    listing = sub.add_parser("list", help="List saved items")
    listing.add_argument("--subject", choices=[item.value for item in Subject], default=None)
    listing.add_argument("--tag", default=None, help="Filter by knowledge point")
    listing.add_argument("--query", default=None, help="Text search over question, analysis and knowledge points")
    mastery_filter = listing.add_mutually_exclusive_group()
    mastery_filter.add_argument("--mastered", dest="mastered", action="store_const", const=True, default=None)
    mastery_filter.add_argument("--unmastered", dest="mastered", action="store_const", const=False)
    listing.add_argument("--time-range", choices=list(TIME_RANGES), default="all")
    listing.add_argument("--limit", type=int, default=50)
    listing.add_argument("--offset", type=int, default=0)

    tags = sub.add_parser("tags", help="Show how often each knowledge point appears")
    tags.add_argument("--subject", choices=[item.value for item in Subject], default=None)

    mastery = sub.add_parser("mastery", help="Set the mastery level of a saved item")
    mastery.add_argument("item_id")
    mastery.add_argument("level", type=int)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(get_settings().log_level)

    try:
        if args.command == "analyze":
            return asyncio.run(_cmd_analyze(args))
        if args.command == "similar":
            return asyncio.run(_cmd_similar(args))
        if args.command == "list":
            return _cmd_list(args)
        if args.command == "tags":
            return _cmd_tags(args)
        return _cmd_mastery(args)
    except AIServiceError as exc:
        print(exc.kind.value, file=sys.stderr)
        logger.debug("AI failure detail: %s", exc)
        return 2
    except (LookupError, ValueError, OSError, RuntimeError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
