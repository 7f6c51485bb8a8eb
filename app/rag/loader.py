"""
Knowledge Loading Module

Loads the static persona documents (plain .txt files) that make up the base
of every system prompt.

Process:
1. Scan the knowledge directory for .txt files (sorted by name)
2. Read and clean each file
3. Drop empty files
4. Join the remaining sections with a horizontal-rule separator
"""

from pathlib import Path
from typing import List, Optional

from app.core.config import settings
from app.core.logging import get_logger

logger = get_logger(__name__)

SECTION_SEPARATOR = "\n\n---\n\n"


def clean_text(text: str) -> str:
    """
    Normalize line endings and strip surrounding whitespace.

    Handles:
    - Windows / old Mac line endings
    - Byte order marks left by some editors
    """
    if not text:
        return ""
    text = text.replace("\ufeff", "")
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    return text.strip()


def list_knowledge_files(directory: Path) -> List[Path]:
    """Return the .txt files of a directory in a stable order"""
    return sorted(p for p in directory.iterdir() if p.is_file() and p.suffix == ".txt")


def load_knowledge(directory: Optional[str] = None) -> str:
    """
    Load all knowledge files into a single persona text.

    Args:
        directory: Knowledge directory (defaults to settings.KNOWLEDGE_DIR)

    Returns:
        Persona text, or an empty string when nothing could be loaded
    """
    path = Path(directory or settings.KNOWLEDGE_DIR)
    if not path.is_dir():
        logger.warning(f"Knowledge directory not found: {path}")
        return ""

    sections = []
    for file_path in list_knowledge_files(path):
        try:
            content = clean_text(file_path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError) as e:
            logger.error(f"Error reading knowledge file {file_path.name}: {e}")
            continue
        if content:
            sections.append(content)

    logger.info(f"Loaded {len(sections)} knowledge sections from {path}")
    return SECTION_SEPARATOR.join(sections)
