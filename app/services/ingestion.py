"""
Ingestion Service Module

Indexes curated chat data into the vector store.
Handles:
- Discovering *_qa.txt and *_style.txt files
- Chunking them into vector store records
- Batched upserts with a pause between batches
- A per-directory manifest of file hashes so unchanged files are skipped
"""

import hashlib
import json
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from app.core.config import settings
from app.core.logging import get_logger
from app.rag.chunker import Chunk, TextChunker, is_indexable
from app.rag.vector_store import VectorStore, VectorStoreError

logger = get_logger(__name__)


def file_digest(content: str) -> str:
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


class IngestionService:
    """
    Service for indexing curated QA and style files.
    """

    def __init__(
        self,
        vector_store: VectorStore,
        chunker: Optional[TextChunker] = None,
        batch_size: int = settings.INDEX_BATCH_SIZE,
        batch_delay: float = settings.INDEX_BATCH_DELAY,
        manifest_name: str = settings.INDEX_MANIFEST_NAME,
        sleep: Callable[[float], None] = time.sleep
    ):
        """
        Initialize ingestion service.

        Args:
            vector_store: Target vector store
            chunker: Chunker (default TextChunker)
            batch_size: Records per upsert request
            batch_delay: Seconds to wait between two upserts
            manifest_name: Manifest file name inside the data directory
            sleep: Sleep function (tests pass a no-op)
        """
        self.vector_store = vector_store
        self.chunker = chunker or TextChunker()
        self.batch_size = batch_size
        self.batch_delay = batch_delay
        self.manifest_name = manifest_name
        self.sleep = sleep

        logger.info("Initialized IngestionService")

    def load_manifest(self, directory: Path) -> Dict[str, str]:
        path = directory / self.manifest_name
        if not path.exists():
            return {}
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable manifest {path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def save_manifest(self, directory: Path, manifest: Dict[str, str]):
        path = directory / self.manifest_name
        path.write_text(json.dumps(manifest, indent=2, sort_keys=True), encoding="utf-8")

    def upload_chunks(self, chunks: List[Chunk], label: str = "") -> Dict[str, int]:
        """
        Upsert chunks in batches. A failing batch is logged and skipped.

        Returns:
            {"uploaded": n, "failed_batches": m}
        """
        uploaded = 0
        failed_batches = 0
        for start in range(0, len(chunks), self.batch_size):
            batch = chunks[start:start + self.batch_size]
            try:
                self.vector_store.upsert(batch)
                uploaded += len(batch)
                logger.info(f"Uploaded {uploaded}/{len(chunks)} {label}".rstrip())
            except VectorStoreError as e:
                failed_batches += 1
                logger.error(f"Batch error at {start} {label}: {e}".rstrip())
            if start + self.batch_size < len(chunks):
                self.sleep(self.batch_delay)
        return {"uploaded": uploaded, "failed_batches": failed_batches}

    def index_directory(self, directory: str, force: bool = False) -> Dict[str, Any]:
        """
        Index every QA/style file in a directory.

        Args:
            directory: Data directory
            force: Re-upload files even if their hash is unchanged

        Returns:
            Result with per-run statistics
        """
        data_dir = Path(directory)
        if not data_dir.is_dir():
            error_msg = f"Directory not found: {directory}"
            logger.error(error_msg)
            return {"status": "error", "message": error_msg}

        files = sorted(p for p in data_dir.iterdir() if p.is_file() and is_indexable(p.name))
        logger.info(f"Found {len(files)} indexable files in {data_dir}")

        manifest = {} if force else self.load_manifest(data_dir)
        result = {
            "status": "success",
            "files": len(files),
            "skipped_files": 0,
            "chunks": 0,
            "uploaded": 0,
            "failed_batches": 0,
        }

        for file_path in files:
            content = file_path.read_text(encoding="utf-8")
            digest = file_digest(content)
            if manifest.get(file_path.name) == digest:
                logger.info(f"Skipping unchanged file: {file_path.name}")
                result["skipped_files"] += 1
                continue

            chunks = self.chunker.chunk_file(file_path.name, content)
            result["chunks"] += len(chunks)
            stats = self.upload_chunks(chunks, label=file_path.name)
            result["uploaded"] += stats["uploaded"]
            result["failed_batches"] += stats["failed_batches"]

            # Only fully uploaded files are recorded, so failures retry next run
            if stats["failed_batches"] == 0:
                manifest[file_path.name] = digest

        self.save_manifest(data_dir, manifest)

        if result["failed_batches"]:
            result["status"] = "partial"
        logger.info(
            f"Indexed {result['uploaded']}/{result['chunks']} chunks "
            f"({result['skipped_files']} unchanged files skipped)"
        )
        return result
