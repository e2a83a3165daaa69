"""Outcome counts of merging one feed's candidates into the store."""

from dataclasses import dataclass


@dataclass(frozen=True)
class MergeSummary:
    """Counts from a single merge.

    Attributes:
        added: Candidates inserted as new AVAILABLE videos.
        unchanged: Candidates matching a known video whose state was kept
            (including removed videos left removed). Some may have had their
            title refreshed.
        reactivated: Removed videos restored to AVAILABLE on rediscovery.
        retitled: Known videos whose title changed upstream.
    """

    added: int = 0
    unchanged: int = 0
    reactivated: int = 0
    retitled: int = 0

    @property
    def total(self) -> int:
        """Number of distinct candidates processed."""
        return self.added + self.unchanged + self.reactivated
