"""
Shared helpers for the model layer: structured logging and payload
sanitizing used when operations are logged.
"""

from . import logging_utils  # re-export to make the logging helpers discoverable.
from .payload import sanitize_payload, serialize_value

__all__ = ["logging_utils", "sanitize_payload", "serialize_value"]
