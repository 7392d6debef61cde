"""
Utility functions for the Gemini PDF Chat Gateway.
"""

import time
import uuid
import functools
from typing import Dict, Any, Optional
from datetime import datetime, timezone
import logging

from fastapi import Request

from .config import settings

logger = logging.getLogger(__name__)

PDF_MIME_TYPE = "application/pdf"


def generate_session_id() -> str:
    """Generate a unique session ID."""
    return str(uuid.uuid4())


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def format_timestamp() -> str:
    """Get current timestamp in ISO format."""
    return utc_now().isoformat()


def get_client_ip(request: Request) -> str:
    """Resolve the client's network identity, honouring X-Forwarded-For."""
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    if request.client and request.client.host:
        return request.client.host
    return "127.0.0.1"


def validate_pdf_upload(filename: Optional[str], content_type: Optional[str]) -> bool:
    """Accept a file if it is declared as a PDF or carries a .pdf name."""
    if content_type == PDF_MIME_TYPE:
        return True
    return bool(filename) and filename.lower().endswith(".pdf")


def validate_file_size(file_size: int, max_file_size_mb: Optional[int] = None) -> bool:
    """Validate if the file size is within limits."""
    if max_file_size_mb is None:
        max_file_size_mb = settings.max_file_size_mb
    max_size_bytes = max_file_size_mb * 1024 * 1024
    return file_size <= max_size_bytes


def sanitize_filename(filename: str) -> str:
    """Sanitize filename for safe storage."""
    # Remove or replace dangerous characters
    dangerous_chars = ['/', '\\', ':', '*', '?', '"', '<', '>', '|']
    sanitized = filename

    for char in dangerous_chars:
        sanitized = sanitized.replace(char, '_')

    # Limit length
    if len(sanitized) > 255:
        name, ext = sanitized.rsplit('.', 1) if '.' in sanitized else (sanitized, '')
        sanitized = name[:255-len(ext)-1] + ('.' + ext if ext else '')

    return sanitized


def staged_filename(filename: Optional[str]) -> str:
    """Unique, timestamped name for an uploaded file staged on disk."""
    return f"{int(time.time() * 1000)}-{uuid.uuid4().hex}-{sanitize_filename(filename or 'upload.pdf')}"


def measure_time(func):
    """Decorator to measure coroutine execution time."""
    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        start_time = time.time()
        try:
            return await func(*args, **kwargs)
        finally:
            execution_time = time.time() - start_time
            logger.info(f"{func.__name__} executed in {execution_time:.2f} seconds")
    return wrapper


def log_processing_info(operation: str, details: Dict[str, Any]) -> None:
    """Log processing information."""
    logger.info(f"{operation}: {details}")


def handle_processing_error(operation: str, error: Exception, context: Dict[str, Any] = None) -> Dict[str, Any]:
    """Handle and log processing errors."""
    error_info = {
        'operation': operation,
        'error_type': type(error).__name__,
        'error_message': str(error),
        'timestamp': format_timestamp()
    }

    if context:
        error_info.update(context)

    logger.error(f"Processing error: {error_info}")
    return error_info
