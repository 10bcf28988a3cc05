# leadpipe/exceptions.py
"""
Shared exception classes used across the pipeline.

The taxonomy mirrors how failures are handled by the batch runner:

  - ConfigError:     fatal for the whole invocation, raised before any queue I/O.
  - TransientError:  network/5xx/auth problems from an adapter. Never retried
                     in-process; the queue's visibility timeout redelivers.
  - DataError:       malformed OCR/LLM output, schema validation failures,
                     missing entities. Terminal for that one item.
"""

from __future__ import annotations


class PipelineError(Exception):
    """Base class for all pipeline errors."""


class ConfigError(PipelineError):
    """
    Raised when required credentials or URLs are missing.

    Examples:
        - DIRECTORY_USERNAME not set for the contact-enrichment stage
        - VISION_API_KEY not set for the image-extraction stage
    """


class TransientError(PipelineError):
    """
    Raised when an external call fails in a way that may succeed later.

    Examples:
        - Connection errors and timeouts
        - 5xx responses
        - Expired or missing auth token that could not be refreshed
    """


class DirectoryError(TransientError):
    """B2B directory request failed."""


class OcrError(TransientError):
    """OCR request failed."""


class LLMError(TransientError):
    """LLM completion request failed."""


class DataError(PipelineError):
    """
    Raised when an item's data cannot be processed.

    Examples:
        - OCR returned no text
        - LLM output was not valid JSON or failed validation
        - Referenced company/contact does not exist
    """


class QueueError(PipelineError):
    """Raised when the queue backend cannot be read."""


class InvalidStatusTransition(PipelineError):
    """Raised when an entity is asked to move to a status its state machine forbids."""

    def __init__(self, entity: str, current: str, target: str) -> None:
        super().__init__(f"{entity}: illegal status transition {current!r} -> {target!r}")
        self.entity = entity
        self.current = current
        self.target = target


__all__ = [
    "PipelineError",
    "ConfigError",
    "TransientError",
    "DirectoryError",
    "OcrError",
    "LLMError",
    "DataError",
    "QueueError",
    "InvalidStatusTransition",
]
