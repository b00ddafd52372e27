"""
Deterministic text chunking for document indexing.

Text is cut into fixed-size character windows that overlap by a fixed
amount, so a sentence split at a window edge still appears whole in one of
the two neighbouring chunks. The same input always yields the same chunks.
"""
import logging
from dataclasses import dataclass
from typing import List

logger = logging.getLogger(__name__)

# Default chunking parameters
DEFAULT_CHUNK_SIZE = 2000  # characters per window
DEFAULT_CHUNK_OVERLAP = 200  # characters shared by consecutive windows

# Chunks are grouped into synthetic "pages" so citations have a page label.
# This does not reflect the real pagination of the source file.
PAGE_GROUP_SIZE = 5


class ConfigurationError(ValueError):
    """Raised when chunking parameters cannot produce advancing windows."""
    pass


@dataclass
class TextChunk:
    """A chunk of text with its position in the document."""
    page_number: int
    chunk_index: int
    text: str
    start_char: int
    end_char: int

    @property
    def char_count(self) -> int:
        return len(self.text)


def normalize_line_endings(text: str) -> str:
    """Convert CRLF and lone CR line endings to LF and trim the result."""
    return text.replace('\r\n', '\n').replace('\r', '\n').strip()


def page_for_index(chunk_index: int) -> int:
    """Synthetic 1-based page label for a chunk index."""
    return 1 + chunk_index // PAGE_GROUP_SIZE


def validate_chunk_params(chunk_size: int, chunk_overlap: int) -> None:
    """
    Reject window settings that would never advance through the text.

    Raises:
        ConfigurationError: If chunk_size <= 0, chunk_overlap < 0 or
            chunk_size <= chunk_overlap
    """
    if chunk_size <= 0:
        raise ConfigurationError(f"chunk_size must be positive, got {chunk_size}")
    if chunk_overlap < 0:
        raise ConfigurationError(f"chunk_overlap must not be negative, got {chunk_overlap}")
    if chunk_size <= chunk_overlap:
        raise ConfigurationError(
            f"chunk_size ({chunk_size}) must be greater than chunk_overlap ({chunk_overlap})"
        )


def chunk_text(
    text: str,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    chunk_overlap: int = DEFAULT_CHUNK_OVERLAP,
) -> List[TextChunk]:
    """
    Split text into overlapping chunks.

    Windows of ``chunk_size`` characters are taken from the normalized text;
    each window starts ``chunk_size - chunk_overlap`` characters after the
    previous one. A window that is blank after trimming is skipped and does
    not consume a chunk index. The loop ends with the first window that
    reaches the end of the text.

    Args:
        text: The extracted document text
        chunk_size: Window size in characters
        chunk_overlap: Characters shared by consecutive windows

    Returns:
        List of TextChunk objects with contiguous chunk indices

    Raises:
        ConfigurationError: If the window settings are invalid
    """
    validate_chunk_params(chunk_size, chunk_overlap)

    cleaned = normalize_line_endings(text or '')
    if not cleaned:
        logger.warning("Empty text provided for chunking")
        return []

    chunks = []
    length = len(cleaned)
    start = 0
    chunk_index = 0

    while start < length:
        end = min(length, start + chunk_size)
        window = cleaned[start:end].strip()

        if window:
            chunks.append(TextChunk(
                page_number=page_for_index(chunk_index),
                chunk_index=chunk_index,
                text=window,
                start_char=start,
                end_char=end,
            ))
            chunk_index += 1

        if end == length:
            break
        start = end - chunk_overlap

    logger.info(f"Created {len(chunks)} chunks from {length} characters")

    return chunks
