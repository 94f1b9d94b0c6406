"""Adaptive batch sizing.

Sources silently cap how many records one query returns. The controller
starts large to discover that cap quickly and, once a short (non-empty)
page comes back, remembers it as the detected limit::

    request 1000 → 500 returned  →  detected = max(500, MIN) = 500
    next request  min(500, MAX)  = 500
    automatic continuation after batch 0: min(size, detected or MIN)

Every size handed out lies in ``[MIN, MAX]``.
"""

from __future__ import annotations

from dataclasses import dataclass

from zapspine.core.settings import ZapSpineSettings


@dataclass(frozen=True)
class BatchLimits:
    """Batch size bounds."""

    initial: int = 1000
    minimum: int = 250
    maximum: int = 2000

    def __post_init__(self) -> None:
        if not 0 < self.minimum <= self.initial <= self.maximum:
            raise ValueError(
                f"Invalid batch limits: minimum={self.minimum} initial={self.initial} maximum={self.maximum}"
            )

    @classmethod
    def from_settings(cls, settings: ZapSpineSettings) -> BatchLimits:
        return cls(
            initial=settings.initial_batch_size,
            minimum=settings.min_batch_size,
            maximum=settings.max_batch_size,
        )

    def clamp(self, size: int) -> int:
        return max(self.minimum, min(size, self.maximum))


class BatchController:
    """Stateless batch-size policy; the detected limit lives on the loading state."""

    def __init__(self, limits: BatchLimits | None = None) -> None:
        self.limits = limits or BatchLimits()

    @classmethod
    def from_settings(cls, settings: ZapSpineSettings) -> BatchController:
        return cls(BatchLimits.from_settings(settings))

    def next_batch_size(
        self,
        detected_limit: int | None,
        *,
        automatic: bool = False,
        batch_index: int = 0,
    ) -> int:
        """Size to request for the next fetch."""
        size = detected_limit or self.limits.initial
        size = min(size, self.limits.maximum)
        if automatic and batch_index > 0:
            # gentler on repeat sources
            size = min(size, detected_limit or self.limits.minimum)
        return self.limits.clamp(size)

    def detect_limit(self, returned: int, requested: int, previous: int | None) -> int | None:
        """Update the detected limit from one fetch.

        A non-empty page shorter than requested reveals the source cap.
        Empty and full pages leave ``previous`` unchanged.
        """
        if 0 < returned < requested:
            return max(returned, self.limits.minimum)
        return previous

    @staticmethod
    def expected_batch_size(detected_limit: int | None, requested: int) -> int:
        """Size against which source exhaustion is judged."""
        return detected_limit or requested


__all__ = ["BatchLimits", "BatchController"]
