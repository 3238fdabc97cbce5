"""StudyRAG operator CLI.

Usage::

    python -m src.cli ingest notes.pdf --account acct-1 --classroom <id>
    python -m src.cli ingest notes.txt --account acct-1 --new-classroom "Biology 101"
    python -m src.cli ask "What is osmosis?" --account acct-1 --classroom <id>
    python -m src.cli rebuild <document-id>
    python -m src.cli usage acct-1
    python -m src.cli set-tier acct-1 PREMIUM

All commands read the same ``.env`` / environment settings as the API.
"""

from __future__ import annotations

import argparse
import asyncio
import mimetypes
import sys
from pathlib import Path
from typing import Any

from src.config.settings import Settings
from src.utils.errors import StudyRAGError


def _build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the StudyRAG CLI."""
    parser = argparse.ArgumentParser(
        prog="python -m src.cli",
        description="Operate the StudyRAG ingestion and generation service.",
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # -- ingest --
    ingest_parser = subparsers.add_parser("ingest", help="Upload and ingest a local file")
    ingest_parser.add_argument("file", help="Path to a PDF, DOCX, TXT or Markdown file")
    ingest_parser.add_argument("--account", required=True, help="Owning account id")
    target = ingest_parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--classroom", help="Existing classroom id")
    target.add_argument("--new-classroom", dest="new_classroom", help="Create a classroom with this name")
    ingest_parser.add_argument("--mime", help="Override the detected MIME type")

    # -- ask --
    ask_parser = subparsers.add_parser("ask", help="Ask a question about a classroom's documents")
    ask_parser.add_argument("question", help="The question to ask")
    ask_parser.add_argument("--account", required=True, help="Account id")
    ask_parser.add_argument("--classroom", required=True, help="Classroom id")
    ask_parser.add_argument(
        "--document",
        action="append",
        default=[],
        dest="documents",
        help="Restrict to this document id (repeatable; default: whole classroom)",
    )

    # -- rebuild --
    rebuild_parser = subparsers.add_parser("rebuild", help="Re-chunk and re-index a READY document")
    rebuild_parser.add_argument("document_id", help="Document id")

    # -- usage --
    usage_parser = subparsers.add_parser("usage", help="Show today's usage for an account")
    usage_parser.add_argument("account", help="Account id")

    # -- set-tier --
    tier_parser = subparsers.add_parser("set-tier", help="Change an account's tier")
    tier_parser.add_argument("account", help="Account id")
    tier_parser.add_argument("tier", choices=["FREE", "PREMIUM"], help="New tier")

    return parser


async def _services(app_settings: Settings) -> dict[str, Any]:
    from src.main import build_services, initialize_services

    components = build_services(app_settings)
    await initialize_services(components)
    return components


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


async def _handle_ingest(args: argparse.Namespace, app_settings: Settings) -> int:
    path = Path(args.file)
    if not path.is_file():
        print(f"Error: file not found: {path}", file=sys.stderr)
        return 1

    components = await _services(app_settings)
    documents = components["document_service"]
    ingestion = components["ingestion_service"]

    classroom_id = args.classroom
    if classroom_id is None:
        classroom = await documents.create_classroom(args.account, args.new_classroom)
        classroom_id = classroom.id
        print(f"Created classroom {classroom.name!r}: {classroom_id}")

    mime_type = args.mime or mimetypes.guess_type(path.name)[0] or "application/octet-stream"
    print(f"Ingesting {path.name} ({mime_type}, {path.stat().st_size} bytes)")

    document = await documents.upload(
        args.account,
        classroom_id,
        filename=path.name,
        mime_type=mime_type,
        data=path.read_bytes(),
        schedule_ingestion=False,
    )
    report = await ingestion.ingest(document.id)

    print("\nIngestion finished:")
    print(f"  Document:   {report.document_id}")
    print(f"  Status:     {report.status}")
    print(f"  Extractor:  {report.extractor or '-'}")
    print(f"  Chunks:     {report.chunk_count}")
    print(f"  Time:       {report.elapsed_seconds:.2f}s")
    if report.failure_reason:
        print(f"  Reason:     {report.failure_reason}")
        return 1
    return 0


async def _handle_ask(args: argparse.Namespace, app_settings: Settings) -> int:
    from src.models.artifacts import ChatPayload, GenerationKind, GenerationRequest

    components = await _services(app_settings)
    generation = components["generation_service"]

    artifact = await generation.generate(
        GenerationKind.CHAT_ANSWER,
        GenerationRequest(
            account_id=args.account,
            classroom_id=args.classroom,
            question=args.question,
            document_ids=args.documents,
            classroom_wide=not args.documents,
        ),
    )
    payload = artifact.payload
    print(payload.answer if isinstance(payload, ChatPayload) else "")
    print()
    if artifact.has_relevant_context:
        print("Sources:")
        for source in artifact.sources:
            print(f"  - {source.filename} (score {source.score}, chunk {source.chunk_index})")
    else:
        print("Note: no relevant passages were found; this answer is from general knowledge.")
    return 0


async def _handle_rebuild(args: argparse.Namespace, app_settings: Settings) -> int:
    components = await _services(app_settings)
    report = await components["ingestion_service"].rebuild(args.document_id)
    print(f"Rebuilt {report.document_id}: {report.chunk_count} chunks in {report.elapsed_seconds:.2f}s")
    return 0


async def _handle_usage(args: argparse.Namespace, app_settings: Settings) -> int:
    components = await _services(app_settings)
    snapshot = await components["quota_guard"].snapshot(args.account)

    print(f"Usage for {snapshot.account_id} ({snapshot.tier.value}) on {snapshot.day.isoformat()}")
    print("=" * 40)
    print(f"  Weighted tokens:  {snapshot.weighted_tokens} / {snapshot.daily_token_cap}")
    print(f"  Remaining:        {snapshot.remaining_tokens}")
    print(f"  Storage bytes:    {snapshot.storage_bytes} / {snapshot.max_storage_bytes}")
    print(f"  Classrooms:       {snapshot.classroom_count} / {snapshot.max_classrooms}")
    return 0


async def _handle_set_tier(args: argparse.Namespace, app_settings: Settings) -> int:
    from src.models.usage import AccountTier

    components = await _services(app_settings)
    await components["tier_provider"].set_tier(args.account, AccountTier(args.tier))
    print(f"{args.account} is now {args.tier}")
    return 0


_HANDLERS = {
    "ingest": _handle_ingest,
    "ask": _handle_ask,
    "rebuild": _handle_rebuild,
    "usage": _handle_usage,
    "set-tier": _handle_set_tier,
}


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> int:
    """CLI entry point; returns the process exit code."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    app_settings = Settings()

    from src.utils.logging import configure_logging

    configure_logging(log_level=app_settings.log_level)

    try:
        return asyncio.run(_HANDLERS[args.command](args, app_settings))
    except StudyRAGError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
