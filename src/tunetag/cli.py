"""
tunetag command line

Usage:
    tunetag <command> [options]

Commands:
    search [--title T] [--artist A] [--album B]   Ranked results from every enabled provider
    show <folder>                                  Print the tags of every audio file in a folder
    batch <folder> [--dry-run]                     Tag a folder from its name (e.g. "Artist - Album")
"""

from __future__ import annotations

import argparse
import sys
from typing import List, Optional

from tunetag import logger as logger_mod

from .batch import NO_MATCH
from .engine import AutoTagger
from .models import Query
from .tag.io.music_tag_io import MusicTagIO


def cmd_search(args) -> int:
    """Search all enabled providers and print ranked results."""
    try:
        query = Query(title=args.title, artist=args.artist, album=args.album)
    except ValueError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2

    tagger = AutoTagger.from_env(settings_path=args.settings)
    try:
        outcome = tagger.search(query, slot="cli")
    finally:
        tagger.close()

    if outcome is None:
        return 1
    for warning in outcome.warnings:
        print(f"! {warning.provider}: {warning.code} ({warning.message})", file=sys.stderr)
    if not outcome.results:
        print("No results.")
        return 1
    for i, result in enumerate(outcome.results[: args.limit], start=1):
        c = result.candidate
        title = c.title or "-"
        print(f"{i:>2}. [{result.score:+.2f}] {c.artist} / {c.album or '-'} / {title}  ({c.provider})")
    return 0


def cmd_show(args) -> int:
    """Print tags of every audio file in a folder."""
    io = MusicTagIO()
    for path in io.list_files(args.folder):
        fields = io.read(path)
        art = f"{fields.cover_art.mime_type}, {len(fields.cover_art.data)} bytes" if fields.cover_art else "none"
        print(path)
        print(f"    title:  {fields.title}")
        print(f"    artist: {fields.artist}")
        print(f"    album:  {fields.album}")
        print(f"    cover:  {art}")
    return 0


def cmd_batch(args) -> int:
    """Tag every file in a folder from the best album match for its name."""
    tagger = AutoTagger.from_env(settings_path=args.settings)
    try:
        if args.dry_run:
            best = tagger.preview_batch(args.folder)
            if best is None:
                print("No acceptable match.")
                return 1
            c = best.candidate
            print(f"Would apply: {c.artist} / {c.album} ({c.provider}, score {best.score:.2f})")
            return 0

        result = tagger.batch_tag_folder(args.folder)
    finally:
        tagger.close()

    if result.status == NO_MATCH:
        print("No acceptable match; nothing changed.")
        return 1
    c = result.best.candidate
    print(f"Applied: {c.artist} / {c.album} ({c.provider}, score {result.best.score:.2f})")
    if result.cover_art_error:
        print(f"! cover art not applied: {result.cover_art_error}", file=sys.stderr)
    for outcome in result.outcomes:
        mark = "✅" if outcome.ok else "❌"
        detail = outcome.error or (", ".join(outcome.changed) or "unchanged")
        print(f"  {mark} {outcome.path}: {detail}")
    return 0 if not result.failed else 3


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="tunetag",
        description="Resolve music metadata from online providers and write tags",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--settings", help="Path to the settings JSON file")
    parser.add_argument("--log-level", help="DEBUG, INFO, WARNING or ERROR")
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    search_parser = subparsers.add_parser("search", help="Search all enabled providers")
    search_parser.add_argument("--title", default="")
    search_parser.add_argument("--artist", default="")
    search_parser.add_argument("--album", default="")
    search_parser.add_argument("--limit", type=int, default=10, help="Results to print")
    search_parser.set_defaults(func=cmd_search)

    show_parser = subparsers.add_parser("show", help="Print the tags of a folder")
    show_parser.add_argument("folder")
    show_parser.set_defaults(func=cmd_show)

    batch_parser = subparsers.add_parser("batch", help="Tag a folder from its name")
    batch_parser.add_argument("folder")
    batch_parser.add_argument("--dry-run", action="store_true", help="Show the match only")
    batch_parser.set_defaults(func=cmd_batch)

    args = parser.parse_args(argv)
    if args.log_level:
        logger_mod.set_logging_level(args.log_level)
    if not args.command:
        parser.print_help()
        return 1
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
