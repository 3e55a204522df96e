"""
MapStudio — Error Taxonomy
===========================
Every failure the core can surface to a user.  Each error carries the
user-facing message and the HTTP status the API layer answers with.

  ValidationError         malformed flat record (local, never retried)
  TransientServiceError   network-class provider failure (retried first)
  GenerationTimeoutError  generation ran past AI_TIMEOUT_SECONDS
  PermanentServiceError   auth / quota / schema / parse failure (never retried)
  UnsupportedFormatError  file type the extractor cannot read
  ReadFailureError        file could not be read or holds no text
  SupersededError         a newer request on the same session replaced this one
"""

from typing import Optional


class MindMapError(Exception):
    """Base class for every error with a user-facing message."""

    status_code: int = 500

    def __init__(self, message: str, detail: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail


class ValidationError(MindMapError):
    status_code = 422

    def __init__(self, message: str, index: Optional[int] = None, record_id: Optional[str] = None):
        super().__init__(message)
        self.index = index
        self.record_id = record_id


class TransientServiceError(MindMapError):
    status_code = 503


class GenerationTimeoutError(TransientServiceError):
    status_code = 504


class PermanentServiceError(MindMapError):
    status_code = 502


class UnsupportedFormatError(MindMapError):
    status_code = 415


class ReadFailureError(MindMapError):
    status_code = 422


class SupersededError(MindMapError):
    status_code = 409


SERVICE_UNREACHABLE_MESSAGE = (
    "The model service is currently unreachable. "
    "Please check your internet/VPN/firewall and try again."
)
GENERATION_FAILED_MESSAGE = "Failed to generate mind map. Please try again."
