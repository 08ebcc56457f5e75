"""Provider status normalization.

Providers report order state in their own vocabulary ("Completed",
"In progress", "Canceled", "error", ...). This module collapses those
strings into the canonical OrderStatus values.

Unknown strings map to ``pending``: an unrecognized value never moves an
order into a final state without explicit provider confirmation.
"""

import logging
import re

from ..domain.entities import OrderStatus

logger = logging.getLogger(__name__)

STATUS_SYNONYMS: dict[str, OrderStatus] = {
    "pending": OrderStatus.PENDING,
    "awaiting": OrderStatus.PENDING,
    "queued": OrderStatus.PENDING,
    "processing": OrderStatus.PROCESSING,
    # in_progress is canonical, so it is kept apart from processing
    "in_progress": OrderStatus.IN_PROGRESS,
    "inprogress": OrderStatus.IN_PROGRESS,
    "in-progress": OrderStatus.IN_PROGRESS,
    "completed": OrderStatus.COMPLETED,
    "complete": OrderStatus.COMPLETED,
    "partial": OrderStatus.PARTIAL,
    "partially_completed": OrderStatus.PARTIAL,
    "cancelled": OrderStatus.CANCELLED,
    "canceled": OrderStatus.CANCELLED,
    "cancel": OrderStatus.CANCELLED,
    "refunded": OrderStatus.REFUNDED,
    "refund": OrderStatus.REFUNDED,
    "failed": OrderStatus.FAILED,
    "fail": OrderStatus.FAILED,
    "error": OrderStatus.FAILED,
}

_WHITESPACE = re.compile(r"\s+")


def normalize_status_key(raw_status: str | None) -> str:
    """Lower-case, trim and collapse inner whitespace to underscores."""
    if not raw_status:
        return ""
    return _WHITESPACE.sub("_", str(raw_status).strip().lower())


def is_known_status(raw_status: str | None) -> bool:
    """Check whether a provider string is in the synonym table."""
    return normalize_status_key(raw_status) in STATUS_SYNONYMS


def map_provider_status(raw_status: str | None) -> OrderStatus:
    """Map a provider-reported status string to the canonical vocabulary.

    Args:
        raw_status: Status string exactly as the provider returned it

    Returns:
        Canonical OrderStatus; PENDING for empty or unknown input
    """
    key = normalize_status_key(raw_status)
    if not key:
        return OrderStatus.PENDING

    mapped = STATUS_SYNONYMS.get(key)
    if mapped is None:
        logger.warning(f'Unknown provider status: "{raw_status}", defaulting to pending')
        return OrderStatus.PENDING
    return mapped
