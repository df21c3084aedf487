"""Coarse relevance check for pushed paths.

A push is relevant when it may have touched bot code. The check is a fast
substring match against a marker set; a false positive only costs
an unnecessary redeploy, so the default markers lean broad.
"""

from __future__ import annotations

from typing import FrozenSet, Iterable, Optional

DEFAULT_BOT_ENTRY_FILENAME = "bot.js"
DEFAULT_BOT_DIRECTORY = "discord-bot"
DEFAULT_RELEVANCE_MARKERS: FrozenSet[str] = frozenset(
    {DEFAULT_BOT_ENTRY_FILENAME, DEFAULT_BOT_DIRECTORY}
)


class RelevanceFilter:
    """Decides whether a set of changed paths touches bot code.

    A path matches a marker when it contains the marker as a substring, which
    also covers a ``/``-separated segment equal to the marker. Adding a
    marker can only widen the set of relevant pushes.

    Example:
        >>> RelevanceFilter().is_relevant({"src/bot.js"})
        True
        >>> RelevanceFilter().is_relevant({"readme.md"})
        False
    """

    def __init__(self, markers: Optional[Iterable[str]] = None):
        if markers is None:
            markers = DEFAULT_RELEVANCE_MARKERS
        self.markers: FrozenSet[str] = frozenset(m.strip() for m in markers if m and m.strip())

    def matches(self, path: str) -> bool:
        """Check a single path against the marker set."""
        return any(marker in path for marker in self.markers)

    def is_relevant(self, paths: Iterable[str]) -> bool:
        """True iff any path matches a marker."""
        return any(self.matches(path) for path in paths)

    def with_markers(self, *extra: str) -> "RelevanceFilter":
        """Return a filter with additional markers."""
        return RelevanceFilter(self.markers | frozenset(extra))

    def __repr__(self) -> str:
        return f"RelevanceFilter(markers={sorted(self.markers)!r})"


__all__ = [
    "DEFAULT_BOT_DIRECTORY",
    "DEFAULT_BOT_ENTRY_FILENAME",
    "DEFAULT_RELEVANCE_MARKERS",
    "RelevanceFilter",
]
