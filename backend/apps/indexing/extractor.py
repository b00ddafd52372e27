"""
Text extraction from uploaded files.

Supports:
- .pdf: Best-effort text extraction using PyMuPDF
- anything else: UTF-8 decode of the raw bytes (undecodable bytes dropped)

A PDF that cannot be parsed, or that has no text layer, falls back to the
raw decode instead of failing the indexing run.
"""
import logging
from pathlib import Path
from typing import Optional

import fitz  # PyMuPDF

logger = logging.getLogger(__name__)

PDF_CONTENT_TYPES = ('application/pdf',)
PDF_EXTENSIONS = ('.pdf',)


class ExtractionError(Exception):
    """Raised when the stored file cannot be read at all."""
    pass


def decode_bytes(data: bytes) -> str:
    """Decode raw bytes as UTF-8, dropping anything undecodable."""
    try:
        return data.decode('utf-8')
    except UnicodeDecodeError:
        logger.warning("UTF-8 decode failed, using errors='ignore'")
        return data.decode('utf-8', errors='ignore')


def extract_text_from_pdf(data: bytes) -> str:
    """
    Extract text from PDF bytes using PyMuPDF.

    Scanned or image-only PDFs yield an empty string; there is no OCR.

    Raises:
        Exception: Whatever PyMuPDF raises for a corrupt file; the caller
            decides how to degrade
    """
    text_parts = []

    with fitz.open(stream=data, filetype="pdf") as doc:
        for page in doc:
            page_text = page.get_text()
            if page_text.strip():
                text_parts.append(page_text)

    return "\n\n".join(text_parts)


def is_pdf(file_path: Path, content_type: Optional[str] = None) -> bool:
    return file_path.suffix.lower() in PDF_EXTENSIONS or content_type in PDF_CONTENT_TYPES


def extract_text_from_bytes(
    data: bytes,
    declared_format: Optional[str] = None,
    filename: str = '',
) -> str:
    """
    Extract plain text from file bytes.

    Args:
        data: Raw file content
        declared_format: MIME type recorded at upload
        filename: Original or stored filename, used for its extension

    Returns:
        Extracted text (may be empty)
    """
    if is_pdf(Path(filename), declared_format):
        try:
            text = extract_text_from_pdf(data)
            if text.strip():
                return text
            logger.warning(f"No text layer in PDF {filename}, falling back to raw decode")
        except Exception as e:
            logger.warning(f"PDF extraction failed for {filename}, falling back to raw decode: {e}")

    return decode_bytes(data)


def extract_text(file_path: Path, content_type: Optional[str] = None) -> str:
    """
    Extract text from a stored document file.

    Args:
        file_path: Path to the document file
        content_type: Optional MIME type hint

    Returns:
        Extracted text content

    Raises:
        ExtractionError: If the file is missing or unreadable
    """
    logger.info(f"Extracting text from {file_path} (content_type={content_type})")

    try:
        data = file_path.read_bytes()
    except OSError as e:
        raise ExtractionError(f"Failed to read {file_path}: {e}")

    return extract_text_from_bytes(data, content_type, file_path.name)
