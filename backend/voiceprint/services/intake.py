"""Turn uploaded documents into plain sample text."""

import os
import tempfile

from fastapi import UploadFile
from docx import Document
from docx.opc.exceptions import PackageNotFoundError

from ..errors import InputValidationError

MAX_UPLOAD_BYTES = 10 * 1024 * 1024


async def parse_docx(file: UploadFile) -> dict:
    """Extract title and text from a .docx upload."""
    if not (file.filename or "").lower().endswith(".docx"):
        raise InputValidationError("Only .docx files are supported")

    # Check file size (max 10MB)
    file.file.seek(0, os.SEEK_END)
    size = file.file.tell()
    file.file.seek(0)
    if size > MAX_UPLOAD_BYTES:
        raise InputValidationError("File size exceeds 10MB limit", details={"size": size})

    # Save to temp file for parsing
    with tempfile.NamedTemporaryFile(suffix=".docx", delete=False) as tmp:
        tmp.write(await file.read())
        tmp_path = tmp.name

    try:
        doc = Document(tmp_path)
    except PackageNotFoundError:
        raise InputValidationError("Invalid or corrupted .docx file")
    except Exception as e:
        raise InputValidationError(f"Failed to parse .docx: {str(e)}")
    finally:
        os.unlink(tmp_path)

    # Blank paragraphs separate blocks in the extracted text
    paragraphs = [para.text.strip() for para in doc.paragraphs]
    content = "\n\n".join(p for p in paragraphs if p)

    return {
        "title": os.path.splitext(file.filename)[0],
        "content": content,
    }

