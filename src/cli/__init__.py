# =============================================================================
# src/cli/__init__.py -- CLI Module Overview
# =============================================================================
#
# Operator command line for StudyRAG, run as `python -m src.cli`.
#
#   ingest    Upload a local file into a classroom and ingest it in-process
#   ask       Ask a chat question against a classroom's documents
#   rebuild   Re-chunk and re-index a READY document in place
#   usage     Show an account's usage against its tier limits
#   set-tier  Move an account between FREE and PREMIUM
#
# Architecture Notes:
#   - argparse for argument parsing (not Click/Typer).
#   - Heavy imports (providers, services) are deferred inside functions to
#     keep `--help` fast.
#   - The object graph comes from src.main.build_services, so the CLI and
#     the API share one configuration path.
# =============================================================================

"""Operator CLI for StudyRAG (``python -m src.cli``)."""
