"""
File Upload Utility - validate resume uploads.

Supported formats:
- PDF (.pdf) checked with PyPDF2
- Word (.docx) checked with python-docx

Max file size: settings.max_resume_size_kb (900KB by default)

The file is stored as-is (base64 on the student's profile); opening it
here only proves it is a readable document before we keep it.
"""

import base64
import io
from typing import Tuple

from docx import Document
from fastapi import HTTPException, UploadFile
from PyPDF2 import PdfReader
from PyPDF2.errors import PdfReadError

ALLOWED_EXTENSIONS = {
    '.pdf': 'application/pdf',
    '.docx': 'application/vnd.openxmlformats-officedocument.wordprocessingml.document',
}


def get_file_extension(filename: str) -> str:
    """Get lowercase file extension."""
    if '.' not in filename:
        return ''
    return '.' + filename.rsplit('.', 1)[1].lower()


async def read_resume_file(file: UploadFile, max_size_kb: int) -> Tuple[bytes, str, str]:
    """
    Read and validate an uploaded resume.

    Args:
        file: FastAPI UploadFile
        max_size_kb: Upper bound on the file size

    Returns:
        Tuple of (content, filename, content_type)

    Raises:
        HTTPException on validation errors
    """
    # Validate filename
    if not file.filename:
        raise HTTPException(status_code=400, detail="No filename provided")

    ext = get_file_extension(file.filename)
    if ext not in ALLOWED_EXTENSIONS:
        raise HTTPException(
            status_code=400,
            detail=f"Unsupported file type '{ext}'. Allowed: PDF, DOCX"
        )

    content = await file.read()

    if not content:
        raise HTTPException(status_code=400, detail="File is empty")

    if len(content) > max_size_kb * 1024:
        raise HTTPException(
            status_code=413,
            detail=f"File too large. Maximum size: {max_size_kb}KB"
        )

    if ext == '.pdf':
        check_pdf(content)
    else:
        check_docx(content)

    return content, file.filename, ALLOWED_EXTENSIONS[ext]


def check_pdf(content: bytes) -> int:
    """Open PDF bytes, return page count."""
    try:
        reader = PdfReader(io.BytesIO(content))
        pages = len(reader.pages)
    except (PdfReadError, ValueError, OSError) as e:
        raise HTTPException(status_code=400, detail=f"Error reading PDF: {str(e)}")
    if pages == 0:
        raise HTTPException(status_code=400, detail="PDF has no pages")
    return pages


def check_docx(content: bytes) -> int:
    """Open DOCX bytes, return paragraph count."""
    try:
        doc = Document(io.BytesIO(content))
    except Exception as e:
        # python-docx surfaces zip, xml and package errors with no common base
        raise HTTPException(status_code=400, detail=f"Error reading DOCX: {str(e)}")
    return len(doc.paragraphs)


def encode_content(content: bytes) -> str:
    return base64.b64encode(content).decode("ascii")


def decode_content(encoded: str) -> bytes:
    return base64.b64decode(encoded)
