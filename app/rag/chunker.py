"""
Text Chunking Module

Splits the curated source files into the chunks stored in the vector store:

- *_qa.txt:    blank-line separated "Q: ...\\nA: ..." blocks, one chunk per pair
- *_style.txt: one style sample per line ("- " bullets allowed, "#" lines are
               comments), grouped a few samples per chunk

Chunk ids are derived from the source name and the position inside that
source, so indexing the same file again overwrites its previous chunks.
"""

import re
from dataclasses import dataclass, field
from typing import List, Dict, Any

from app.core.config import settings
from app.core.logging import get_logger

logger = get_logger(__name__)

QA_SUFFIX = "_qa.txt"
STYLE_SUFFIX = "_style.txt"
STYLE_GROUP_SIZE = 5

QA_BLOCK_SPLIT = re.compile(r"\n\nQ:\s*")
QA_PAIR = re.compile(r"Q:\s*([\s\S]*?)\nA:\s*([\s\S]*)")
BULLET = re.compile(r"^-\s*")


@dataclass
class Chunk:
    """One vector store record"""
    id: str
    data: str
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_upsert(self) -> Dict[str, Any]:
        return {"id": self.id, "data": self.data, "metadata": self.metadata}


class TextChunker:
    """
    Turns QA and style files into chunks.
    """

    def __init__(
        self,
        persona_name: str = settings.PERSONA_NAME,
        style_group_size: int = STYLE_GROUP_SIZE
    ):
        """
        Initialize chunker.

        Args:
            persona_name: Name used in the answer and style labels
            style_group_size: Number of style samples per chunk
        """
        self.persona_name = persona_name
        self.style_group_size = style_group_size

    def parse_qa_file(self, content: str, source: str) -> List[Chunk]:
        """
        Parse a QA file into one chunk per question/answer pair.

        Args:
            content: File content
            source: Source name (file name without suffix)

        Returns:
            Chunks with metadata {"type": "qa", "source": source}
        """
        chunks = []
        content = content.replace("\r\n", "\n")
        for block in QA_BLOCK_SPLIT.split(content):
            block = block.strip()
            if not block:
                continue

            text = block if block.startswith("Q:") else "Q: " + block
            match = QA_PAIR.match(text)
            if not match:
                continue

            question = match.group(1).strip()
            answer = match.group(2).strip()
            if question and answer:
                chunks.append(Chunk(
                    id=f"qa_{source}_{len(chunks)}",
                    data=f"问: {question}\n{self.persona_name}的回答: {answer}",
                    metadata={"type": "qa", "source": source},
                ))

        logger.debug(f"Parsed {len(chunks)} QA pairs from {source}")
        return chunks

    def parse_style_file(self, content: str, source: str) -> List[Chunk]:
        """
        Parse a style file into groups of style samples.

        Args:
            content: File content
            source: Source name (file name without suffix)

        Returns:
            Chunks with metadata {"type": "style", "source": source}
        """
        lines = [
            line for line in content.replace("\r\n", "\n").split("\n")
            if line.strip() and not line.startswith("#")
        ]

        chunks = []
        for start in range(0, len(lines), self.style_group_size):
            group = [BULLET.sub("", line).strip() for line in lines[start:start + self.style_group_size]]
            group = [sample for sample in group if sample]
            if group:
                chunks.append(Chunk(
                    id=f"style_{source}_{len(chunks)}",
                    data=f"{self.persona_name}的说话风格示例:\n" + "\n".join(group),
                    metadata={"type": "style", "source": source},
                ))

        logger.debug(f"Parsed {len(chunks)} style chunks from {source}")
        return chunks

    def chunk_file(self, file_name: str, content: str) -> List[Chunk]:
        """Dispatch on the file suffix; unknown files yield no chunks"""
        if file_name.endswith(QA_SUFFIX):
            return self.parse_qa_file(content, file_name[:-len(QA_SUFFIX)])
        if file_name.endswith(STYLE_SUFFIX):
            return self.parse_style_file(content, file_name[:-len(STYLE_SUFFIX)])
        return []


def is_indexable(file_name: str) -> bool:
    return file_name.endswith(QA_SUFFIX) or file_name.endswith(STYLE_SUFFIX)
