import logging
import os
from typing import List, Optional

from .base import CaptureBuffer, CaptureKind, UploadService

logger = logging.getLogger(__name__)


def capture_filename(buffer: CaptureBuffer) -> str:
    ts = int(round(buffer.timestamp * 1000))
    if buffer.kind == CaptureKind.DOCUMENT:
        doc = buffer.document_type.value if buffer.document_type is not None else "unknown"
        return f"document_{doc}_{ts}.jpg"
    return f"face_{ts}.jpg"


class DirectoryUploadService(UploadService):
    """Stores capture buffers as JPEG files under one directory."""

    def __init__(self, output_dir: str):
        self.output_dir = output_dir
        os.makedirs(output_dir, exist_ok=True)
        self.saved: List[str] = []

    def submit(self, buffer: CaptureBuffer) -> None:
        path = os.path.join(self.output_dir, capture_filename(buffer))
        with open(path, "wb") as f:
            f.write(buffer.data)
        self.saved.append(path)
        logger.info(f"Saved {buffer.kind.value} capture to {path}")


def submit_capture(service: UploadService, buffer: CaptureBuffer) -> Optional[str]:
    """Hand a buffer to the upload service; returns an error message instead of raising OSError."""
    try:
        service.submit(buffer)
    except OSError as e:
        logger.error(f"Could not store {buffer.kind.value} capture: {e}")
        return f"Could not save {buffer.kind.value} capture: {e}"
    return None
