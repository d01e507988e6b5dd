"""
Document processor for uploaded study material.
Validates PDF/TXT uploads and extracts their text.
"""
import io
import logging
from pathlib import Path
from typing import Optional

from PyPDF2 import PdfReader, errors

from .errors import (
    DocumentReadError,
    EmptyDocumentError,
    FileTooLargeError,
    UnsupportedFileError,
)


SUPPORTED_TYPES = {
    'application/pdf': 'pdf',
    'text/plain': 'txt',
}

SUPPORTED_EXTENSIONS = {
    '.pdf': 'pdf',
    '.txt': 'txt',
}


class DocumentProcessor:
    """Validates uploads and turns them into prompt-ready text."""

    def __init__(self, max_file_size_bytes: int = 50 * 1024 * 1024, max_text_chars: int = 15000):
        """
        Initialize DocumentProcessor.

        Args:
            max_file_size_bytes: Largest accepted upload
            max_text_chars: Extracted text is cut to this many characters
        """
        self.max_file_size_bytes = max_file_size_bytes
        self.max_text_chars = max_text_chars
        self.logger = logging.getLogger(__name__)

    def detect_kind(self, filename: str, content_type: Optional[str] = None) -> str:
        """
        Decide whether an upload is a PDF or a text file.

        The content type wins when it is known; otherwise the extension decides.

        Raises:
            UnsupportedFileError: For anything other than PDF and TXT
        """
        if content_type:
            base_type = content_type.split(';')[0].strip().lower()
            if base_type in SUPPORTED_TYPES:
                return SUPPORTED_TYPES[base_type]

        extension = Path(filename or "").suffix.lower()
        if extension in SUPPORTED_EXTENSIONS:
            return SUPPORTED_EXTENSIONS[extension]

        raise UnsupportedFileError(
            f"Unsupported upload {filename!r} ({content_type or 'unknown type'})"
        )

    def validate_upload(self, filename: str, size: int, content_type: Optional[str] = None) -> str:
        """
        Check an upload before downloading it.

        Returns:
            'pdf' or 'txt'

        Raises:
            FileTooLargeError: If size exceeds the limit
            UnsupportedFileError: If the type is not supported
        """
        if size > self.max_file_size_bytes:
            limit_mb = self.max_file_size_bytes // (1024 * 1024)
            raise FileTooLargeError(
                f"{filename} is {size} bytes, limit is {self.max_file_size_bytes}",
                user_message=f"File too large! Please choose a file smaller than {limit_mb}MB."
            )
        return self.detect_kind(filename, content_type)

    def extract_text(self, data: bytes, kind: str) -> str:
        """
        Extract text from raw file bytes.

        Args:
            data: File contents
            kind: 'pdf' or 'txt'

        Raises:
            DocumentReadError: If the PDF cannot be parsed
            EmptyDocumentError: If no text could be extracted
        """
        if kind == 'pdf':
            text = self._extract_pdf_text(data)
        elif kind == 'txt':
            text = data.decode('utf-8', errors='replace')
        else:
            raise UnsupportedFileError(f"Unknown document kind: {kind}")

        if not text or not text.strip():
            raise EmptyDocumentError("No text extracted from document")
        return text

    def _extract_pdf_text(self, data: bytes) -> str:
        try:
            reader = PdfReader(io.BytesIO(data))
            pages = []
            for page in reader.pages:
                page_text = page.extract_text()
                if page_text:
                    pages.append(page_text)
        except errors.PdfReadError as e:
            self.logger.error(f"Could not read PDF file. It may be encrypted or corrupted: {e}")
            raise DocumentReadError(f"Invalid or corrupted PDF file: {e}") from e
        except Exception as e:
            # Broken xref tables and page trees surface as AttributeError/TypeError
            self.logger.error(f"An unexpected error occurred during PDF text extraction: {e}", exc_info=True)
            raise DocumentReadError(f"Unreadable PDF structure: {e}") from e

        if not pages:
            self.logger.warning("PyPDF2 extracted no text. The PDF might be image-based or scanned.")
        return "\n".join(pages)

    def truncate(self, text: str) -> str:
        """Cut text to the configured prompt budget."""
        if len(text) > self.max_text_chars:
            self.logger.info(f"Truncating document text from {len(text)} to {self.max_text_chars} characters")
            return text[:self.max_text_chars]
        return text

    def process(self, filename: str, data: bytes, content_type: Optional[str] = None) -> str:
        """
        Validate, extract and truncate an upload in one step.

        Returns:
            Prompt-ready document text
        """
        kind = self.validate_upload(filename, len(data), content_type)
        text = self.extract_text(data, kind)
        self.logger.info(f"Extracted {len(text)} characters from {filename} ({kind})")
        return self.truncate(text)
