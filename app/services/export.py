"""
Log Export Service Module

Downloads stored chat sessions through the /logs API and materializes them as
local JSON files, one per session.

Re-running an export is idempotent: a session whose local copy has the same
last-activity time is not fetched again, and a file is only rewritten when
its message count (and therefore its content) changed.
"""

import hashlib
import json
import re
from pathlib import Path
from typing import Any, Dict, List, Optional

import requests

from app.core.config import settings
from app.core.logging import get_logger

logger = get_logger(__name__)

UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]")


class ExportError(Exception):
    """The logs API could not be read"""


def session_filename(session_id: str) -> str:
    """
    Map a session id onto a safe file name.

    Ids that had to be rewritten get "~" and a short hash of the raw id
    appended. "~" never survives sanitizing, so rewritten names cannot clash
    with ids used verbatim.
    """
    safe = UNSAFE_FILENAME_CHARS.sub("_", session_id).strip(".") or "session"
    if safe != session_id:
        digest = hashlib.sha256(session_id.encode("utf-8")).hexdigest()[:12]
        safe = f"{safe}~{digest}"
    return f"{safe}.json"


def serialize(data: Any) -> str:
    return json.dumps(data, ensure_ascii=False, indent=2) + "\n"


def write_if_changed(path: Path, content: str) -> bool:
    """Write a file only when its content differs; returns True if written"""
    if path.exists() and path.read_text(encoding="utf-8") == content:
        return False
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return True


class LogExporter:
    """
    Exports sessions from a running relay's /logs API.
    """

    def __init__(
        self,
        api_base: str,
        secret: str,
        output_dir: str = settings.EXPORT_DIR,
        timeout: int = 30,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize exporter.

        Args:
            api_base: Base URL the /logs route is mounted under
            secret: LOGS_SECRET of the server
            output_dir: Directory receiving one JSON file per session
            timeout: Request timeout in seconds
            session: Optional requests session (tests inject a fake)
        """
        self.api_base = api_base.rstrip("/")
        self.output_dir = Path(output_dir)
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"Authorization": f"Bearer {secret}"})

    def _get(self, params: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = self.session.get(f"{self.api_base}/logs", params=params, timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        except requests.exceptions.RequestException as e:
            raise ExportError(f"Logs API request failed: {e}") from e
        except ValueError as e:
            raise ExportError(f"Logs API returned invalid JSON: {e}") from e

    def list_sessions(self, limit: int = 9999) -> List[Dict[str, Any]]:
        return self._get({"limit": limit}).get("sessions") or []

    def fetch_messages(self, session_id: str) -> List[Dict[str, Any]]:
        return self._get({"sessionId": session_id}).get("messages") or []

    def read_local(self, session_id: str) -> Optional[Dict[str, Any]]:
        path = self.output_dir / session_filename(session_id)
        if not path.exists():
            return None
        try:
            local = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"Local export {path} unreadable, refetching: {e}")
            return None
        if not isinstance(local, dict) or local.get("sessionId") != session_id:
            logger.warning(f"Local export {path} belongs to another session, refetching")
            return None
        return local

    def export(self, combined_path: Optional[str] = None) -> Dict[str, Any]:
        """
        Export every session.

        Args:
            combined_path: Optional file receiving all sessions in one list

        Returns:
            Summary {total, written, skipped, failed, messages}

        Raises:
            ExportError: If the session list cannot be read
        """
        sessions = self.list_sessions()
        logger.info(f"Found {len(sessions)} sessions")

        summary = {"total": len(sessions), "written": 0, "skipped": 0, "failed": 0, "messages": 0}
        exported = []

        for index, entry in enumerate(sessions, 1):
            session_id = entry.get("sessionId")
            if not session_id:
                continue
            last_active = entry.get("lastActive")
            local = self.read_local(session_id)

            if local is not None and local.get("lastActive") == last_active:
                record = local
                summary["skipped"] += 1
            else:
                try:
                    messages = self.fetch_messages(session_id)
                except ExportError as e:
                    logger.error(f"Failed to export session {session_id}: {e}")
                    summary["failed"] += 1
                    continue

                if local is not None and len(local.get("messages") or []) == len(messages):
                    record = local
                    summary["skipped"] += 1
                else:
                    record = {"sessionId": session_id, "lastActive": last_active, "messages": messages}
                    write_if_changed(self.output_dir / session_filename(session_id), serialize(record))
                    summary["written"] += 1

            summary["messages"] += len(record.get("messages") or [])
            exported.append(record)
            logger.debug(f"{index}/{len(sessions)} {session_id}")

        if combined_path:
            write_if_changed(Path(combined_path), serialize(exported))

        logger.info(
            f"Exported {summary['written']} sessions, {summary['skipped']} unchanged, "
            f"{summary['failed']} failed"
        )
        return summary
