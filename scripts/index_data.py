#!/usr/bin/env python3
"""
CLI for indexing curated chat data into the vector store.

Reads *_qa.txt and *_style.txt files from a directory, splits them into
chunks and upserts them in batches. Files unchanged since the previous run
are skipped unless --force is given.

Usage examples:
  UPSTASH_VECTOR_URL=... UPSTASH_VECTOR_TOKEN=... python scripts/index_data.py ./data
  python scripts/index_data.py ./data --force

The script prints a JSON result and exits with non-zero on error.
"""
import argparse
import json
import sys
from pathlib import Path

# Add parent directory to Python path
sys.path.insert(0, str(Path(__file__).parent.parent))

from app.core.logging import get_logger
from app.rag.vector_store import VectorStore, VectorStoreError
from app.services.ingestion import IngestionService

logger = get_logger(__name__)


def main() -> int:
    parser = argparse.ArgumentParser(description="Index QA and style files into the vector store")
    parser.add_argument("data_dir", help="Directory containing *_qa.txt and *_style.txt files")
    parser.add_argument("--force", action="store_true", help="Re-upload files even if unchanged")
    parser.add_argument("--batch-size", type=int, default=None, help="Optional batch size override")

    args = parser.parse_args()

    try:
        store = VectorStore()
    except VectorStoreError as e:
        logger.error("%s", e)
        print(json.dumps({"status": "error", "message": str(e)}))
        return 1

    service = IngestionService(vector_store=store)
    if args.batch_size:
        service.batch_size = args.batch_size

    try:
        result = service.index_directory(args.data_dir, force=args.force)
        print(json.dumps(result, indent=2, default=str))

        if result.get("status") == "error":
            logger.error("Indexing failed: %s", result.get("message"))
            return 1
        return 0

    except Exception as e:
        logger.exception("Unhandled error during indexing: %s", e)
        print(json.dumps({"status": "error", "message": str(e)}))
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
