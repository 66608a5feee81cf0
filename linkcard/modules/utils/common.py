"""Common helpers shared across utility modules."""

from __future__ import annotations

import logging

logger = logging.getLogger("linkcard.utils")


__all__ = ["logger"]
