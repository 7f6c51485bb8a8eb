#!/usr/bin/env python3
"""
CLI to export stored chat logs to local JSON files.

Usage:
  python scripts/export_logs.py <API_BASE> <LOGS_SECRET> [--out DIR] [--combined FILE]

Example:
  python scripts/export_logs.py https://chat.example.com your_secret --combined chat-logs.json

Sessions whose local copy is up to date are not rewritten.
"""
import argparse
import json
import sys
from pathlib import Path

# Add parent directory to Python path
sys.path.insert(0, str(Path(__file__).parent.parent))

from app.core.config import settings
from app.core.logging import get_logger
from app.services.export import ExportError, LogExporter

logger = get_logger(__name__)


def main() -> int:
    parser = argparse.ArgumentParser(description="Export chat logs to local files")
    parser.add_argument("api_base", help="Base URL the /logs endpoint is served under")
    parser.add_argument("secret", help="LOGS_SECRET of the server")
    parser.add_argument("--out", "-o", default=settings.EXPORT_DIR, help="Directory for per-session files")
    parser.add_argument("--combined", "-c", default=None, help="Also write all sessions to one file")
    args = parser.parse_args()

    exporter = LogExporter(args.api_base, args.secret, output_dir=args.out)

    try:
        summary = exporter.export(combined_path=args.combined)
        print(json.dumps(summary, indent=2))
        return 0

    except ExportError as e:
        logger.error("Export failed: %s", e)
        print(json.dumps({"status": "error", "message": str(e)}))
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
