"""Compliance scoring — implementation rate of a framework's controls.

The rate counts implemented controls fully and partially implemented
controls at half weight, over the *applicable* controls (everything not
marked ``not_applicable``)::

    rate = (implemented + 0.5 * partially_implemented) / applicable * 100

A framework with no applicable controls scores ``0.0``.

Two granularities are exposed:

* :func:`compute_implementation_rate` — unrounded, for detail views.
* :func:`compute_implementation_rate_rounded` / :func:`score_frameworks` —
  one decimal place (half-up), for list summaries.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from grc.core.models import ImplementationStatus

_PARTIAL_WEIGHT = 0.5


@dataclass(frozen=True)
class ControlCountSnapshot:
    """Per-status control counts for one framework.

    Counts are expected to be non-negative and to satisfy
    ``total == implemented + partially_implemented + not_implemented + not_applicable``
    when drawn from a consistent source.
    """

    total: int = 0
    implemented: int = 0
    partially_implemented: int = 0
    not_implemented: int = 0
    not_applicable: int = 0

    @property
    def applicable(self) -> int:
        return self.total - self.not_applicable

    @classmethod
    def from_statuses(cls, statuses: Iterable[ImplementationStatus | str]) -> ControlCountSnapshot:
        """Build a snapshot by tallying individual control statuses."""
        counts = {status: 0 for status in ImplementationStatus}
        total = 0
        for status in statuses:
            counts[ImplementationStatus(status)] += 1
            total += 1
        return cls(
            total=total,
            implemented=counts[ImplementationStatus.IMPLEMENTED],
            partially_implemented=counts[ImplementationStatus.PARTIALLY_IMPLEMENTED],
            not_implemented=counts[ImplementationStatus.NOT_IMPLEMENTED],
            not_applicable=counts[ImplementationStatus.NOT_APPLICABLE],
        )


def compute_implementation_rate(snapshot: ControlCountSnapshot) -> float:
    """Return the implementation rate in ``[0, 100]`` (unrounded)."""
    applicable = snapshot.applicable
    if applicable <= 0:
        return 0.0
    return (snapshot.implemented + _PARTIAL_WEIGHT * snapshot.partially_implemented) / applicable * 100


def compute_implementation_rate_rounded(snapshot: ControlCountSnapshot) -> float:
    """Return the implementation rate rounded half-up to one decimal place."""
    return round_half_up(compute_implementation_rate(snapshot))


def score_frameworks(snapshots: Mapping[str, ControlCountSnapshot]) -> dict[str, float]:
    """Score several frameworks at once (rounded, list-summary granularity).

    Parameters
    ----------
    snapshots:
        Mapping of framework id → its control counts.

    Returns
    -------
    dict[str, float]
        Framework id → rounded implementation rate, in input order.
    """
    return {fid: compute_implementation_rate_rounded(s) for fid, s in snapshots.items()}


def round_half_up(value: float, *, digits: int = 1) -> float:
    # Built-in round() is banker's rounding; list summaries round .x5 upwards.
    factor = 10**digits
    return math.floor(value * factor + 0.5) / factor
