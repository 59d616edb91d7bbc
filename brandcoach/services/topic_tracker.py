"""
Checklist coverage tracking.

Maintains the covered-topic set of a session and derives completion
percentage from it. Coverage only grows: a topic once covered is never
un-covered, even if a later turn omits it.
"""

from typing import Iterable, List, Optional


class TopicTracker:
    """Coverage arithmetic over one category's checklist.

    An empty checklist means coverage cannot drive the percentage; the
    percentage reported by the protocol is used instead.
    """

    # Reserved for the complete phase
    MAX_IN_PROGRESS = 99

    def __init__(self, checklist: Iterable[str]):
        self.checklist: List[str] = list(checklist)

    def merge(self, covered: List[str], topic: Optional[str]) -> List[str]:
        """Return covered with topic appended, preserving insertion order.

        Topics outside the checklist are still recorded; they are ignored
        for percentage purposes only.
        """
        merged = list(covered)
        if topic and topic not in merged:
            merged.append(topic)
        return merged

    def covered_in_checklist(self, covered: List[str]) -> int:
        return sum(1 for topic in self.checklist if topic in covered)

    def percentage(
        self, covered: List[str], reported: float = 0, is_complete: bool = False
    ) -> int:
        """Completion percentage for display.

        Coverage-derived when the checklist is non-empty and at least one of
        its topics is covered; otherwise the reported value. Always 100 when
        complete and never 100 otherwise.
        """
        if is_complete:
            return 100

        hits = self.covered_in_checklist(covered)
        if self.checklist and hits:
            value = round(hits / len(self.checklist) * 100)
        else:
            value = round(reported or 0)
        return max(0, min(value, self.MAX_IN_PROGRESS))

    def complete(self, covered: List[str]) -> List[str]:
        """Full credit: covered plus every checklist topic not yet in it."""
        return list(covered) + [t for t in self.checklist if t not in covered]
