"""
Command-Line Interface for speechcache.

Inspects segmentation and runs store maintenance without a synthesizer.

Usage Examples:
    # Show the segments, offsets and hashes of a text
    speechcache segment "First sentence. Second one."

    # Paragraphs of a file (blank-line separated) as separate fragments
    speechcache segment --file page.txt --json

    # Flush after a page edit
    speechcache flush page 42

    # Flush one voice of a language, or the whole language
    speechcache flush language en --voice dfki-spike
    speechcache flush language en

    # Flush utterances older than the configured TTL (or --days)
    speechcache flush expired --days 31

    # Remove everything
    speechcache flush all

    # Remove dangling rows and orphan blob files
    speechcache reconcile --orphan-days 1

Environment Variables:
    SPEECHCACHE_SETTINGS: Settings file (default config/settings.yaml)
    SPEECHCACHE_DATABASE: Metadata database override
    SPEECHCACHE_BLOB_DIR: Blob directory override
"""

from __future__ import annotations

import argparse
import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Union
from uuid import uuid4

from speechcache.core.config import ConfigValidationError, Settings, apply_env_overrides, load_settings
from speechcache.core.logging import configure_logging, get_logger, info, set_job_id, verbose
from speechcache.store import UtteranceStore, expiration_cutoff
from speechcache.text import Fragment, SegmentationError, SegmentBreak, segment

_DEFAULT_SETTINGS = "config/settings.yaml"


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="speechcache", description="speechcache maintenance CLI")
    parser.add_argument("--settings", help="Settings file (default: $SPEECHCACHE_SETTINGS or config/settings.yaml)")
    parser.add_argument("--json", action="store_true", help="Print JSON output")
    sub = parser.add_subparsers(dest="command", required=True)

    # segment
    p_seg = sub.add_parser("segment", help="Segment text and print segments with hashes")
    p_seg.add_argument("text", nargs="?", help="Text to segment")
    p_seg.add_argument("--file", help="Read text from file; blank lines separate fragments")
    p_seg.add_argument("--json", action="store_true", dest="json_sub", help="Print JSON output")

    # flush
    p_flush = sub.add_parser("flush", help="Flush stored utterances")
    flush_sub = p_flush.add_subparsers(dest="criterion", required=True)

    p_page = flush_sub.add_parser("page", help="Flush every utterance of a page")
    p_page.add_argument("page_id", type=int)

    p_lang = flush_sub.add_parser("language", help="Flush a language (optionally one voice)")
    p_lang.add_argument("language")
    p_lang.add_argument("--voice")

    p_exp = flush_sub.add_parser("expired", help="Flush utterances older than the TTL")
    p_exp.add_argument("--days", type=int, help="Override store.utterance_ttl_days")

    flush_sub.add_parser("all", help="Flush every utterance")

    # reconcile
    p_rec = sub.add_parser("reconcile", help="Remove dangling rows and orphan blobs")
    p_rec.add_argument("--orphan-days", type=int,
                       help="Override store.orphan_ttl_days for the orphan blob scan")
    p_rec.add_argument("--rows-only", action="store_true", help="Skip the orphan blob scan")

    return parser.parse_args(argv)


def _load_settings(path: Optional[str]) -> Settings:
    """Load settings; without an explicit path a missing file means defaults."""
    if path:
        return load_settings(path)
    path = os.getenv("SPEECHCACHE_SETTINGS") or _DEFAULT_SETTINGS
    if Path(path).exists():
        return load_settings(path)
    return Settings(raw=apply_env_overrides({}))


def _fragments_from_file(path: str) -> List[Union[Fragment, SegmentBreak]]:
    text = Path(path).read_text(encoding="utf-8")
    items: List[Union[Fragment, SegmentBreak]] = []
    for i, paragraph in enumerate(p for p in text.split("\n\n") if p.strip()):
        if items:
            items.append(SegmentBreak())
        items.append(Fragment(paragraph, origin_path=f"{path}#p{i}"))
    return items


def _emit(payload: Dict[str, Any], as_json: bool) -> None:
    if as_json:
        print(json.dumps(payload, ensure_ascii=False))
    else:
        for key, value in payload.items():
            if isinstance(value, list):
                print(f"{key}:")
                for item in value:
                    print(f"  {item}")
            else:
                print(f"{key}: {value}")


def _cmd_segment(args: argparse.Namespace, as_json: bool) -> int:
    if args.file and args.text:
        raise SystemExit("Use --file without positional text.")
    if args.file:
        items = _fragments_from_file(args.file)
    elif args.text:
        items = [Fragment(args.text)]
    else:
        raise SystemExit("Provide text or --file.")

    segments = segment(items)
    payload = {
        "ok": True,
        "segments": [s.to_dict() for s in segments],
    }
    _emit(payload, as_json)
    return 0


def _cmd_flush(args: argparse.Namespace, settings: Settings, as_json: bool) -> int:
    config = settings.get_service_config()
    flusher = UtteranceStore.from_config(config.store).flusher()

    if args.criterion == "page":
        flushed = flusher.flush_by_page(args.page_id)
    elif args.criterion == "language":
        flushed = flusher.flush_by_language_and_voice(args.language, args.voice)
    elif args.criterion == "expired":
        days = args.days if args.days is not None else config.store.utterance_ttl_days
        flushed = flusher.flush_by_expiration_date(expiration_cutoff(days))
    else:
        flushed = flusher.purge_all()

    _emit({"ok": True, "criterion": args.criterion, "flushed": flushed}, as_json)
    return 0


def _cmd_reconcile(args: argparse.Namespace, settings: Settings, as_json: bool) -> int:
    config = settings.get_service_config()
    flusher = UtteranceStore.from_config(config.store).flusher()

    cutoff = None
    if not args.rows_only:
        days = args.orphan_days if args.orphan_days is not None else config.store.orphan_ttl_days
        cutoff = expiration_cutoff(days)

    report = flusher.reconcile(orphan_cutoff=cutoff)
    payload = {"ok": not report.failures, **report.to_dict()}
    _emit(payload, as_json)
    return 0 if not report.failures else 1


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    args = _parse_args(argv)
    as_json = bool(args.json or getattr(args, "json_sub", False))

    configure_logging()
    log = get_logger("speechcache.cli")
    set_job_id(f"{args.command}-{str(uuid4())[:8]}")

    if args.command == "segment":
        try:
            return _cmd_segment(args, as_json)
        except SegmentationError as e:
            _emit({"ok": False, "error": "INVALID_INPUT", "message": str(e)}, as_json)
            return 2

    try:
        settings = _load_settings(args.settings)
        verbose(log, "settings", database=settings.database_path, blob_dir=settings.blob_base_dir)
        if args.command == "flush":
            return _cmd_flush(args, settings, as_json)
        info(log, "reconcile_start")
        return _cmd_reconcile(args, settings, as_json)
    except (ConfigValidationError, FileNotFoundError) as e:
        _emit({"ok": False, "error": "CONFIG_ERROR", "message": str(e)}, as_json)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
