# =============================================
# File: kitchen_dss/errors.py
# Purpose: Typed failures raised by the DSS core
# =============================================
from __future__ import annotations
from typing import List, Tuple


class DSSError(Exception):
    """Base class for decision-support errors."""


class EmptyOrderStoreError(DSSError):
    """Raised before any analysis when there are no orders to work with."""

    def __init__(self, message: str = "No orders loaded. Upload order data before running an analysis.") -> None:
        super().__init__(message)


class AllEndpointsFailedError(DSSError):
    """
    Every model endpoint candidate was unreachable or unusable.

    `attempts` keeps (endpoint, reason) pairs in the order they were tried.
    """

    def __init__(self, base_url: str, attempts: List[Tuple[str, str]]) -> None:
        self.base_url = base_url
        self.attempts = list(attempts)
        super().__init__(
            f"All model endpoints failed ({len(self.attempts)} tried). "
            f"Ensure Ollama is running at {base_url}"
        )
