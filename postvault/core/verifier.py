"""Completeness verification for extracted comment sets."""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class CompletenessStatus(Enum):
    COMPLETE = "Complete"
    PARTIAL = "Partial"


@dataclass(frozen=True)
class Verification:
    status: CompletenessStatus
    percentage: int

    @property
    def is_complete(self) -> bool:
        return self.status is CompletenessStatus.COMPLETE


def verify(parent_count: int, reply_count: int, expected_total: int) -> Verification:
    """
    Compare what was fetched against the post's advertised comment count.

    Args:
        parent_count: Top-level comments fetched
        reply_count: Replies fetched
        expected_total: Comment count reported by the post (includes replies)

    Returns:
        Verification with status and rounded percentage
    """
    fetched = parent_count + reply_count
    if expected_total <= 0:
        return Verification(CompletenessStatus.COMPLETE, 100)
    # Half-up rounding, so 12.5% reads as 13%
    percentage = math.floor(100 * fetched / expected_total + 0.5)
    if fetched >= expected_total:
        return Verification(CompletenessStatus.COMPLETE, percentage)
    return Verification(CompletenessStatus.PARTIAL, percentage)


def completeness_note(verification: Verification, fetched: int, expected_total: int) -> Optional[str]:
    """Human-readable note for partial results, None when complete."""
    if verification.is_complete:
        return None
    return (
        f"Fetched {fetched} of {expected_total} comments ({verification.percentage}%). "
        f"Instagram may hide some comments or limit how many can be loaded."
    )
