"""Source registry: the ordered list of feeds to query."""

from __future__ import annotations

import urllib.parse
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence

from constants import Constants
from .feed import PackageFeed


@dataclass(frozen=True)
class FeedConfig:
    """One configured feed; ``max_concurrency=None`` means unthrottled."""

    url: str
    name: Optional[str] = None
    max_concurrency: Optional[int] = None

    @property
    def display_name(self) -> str:
        return self.name or urllib.parse.urlsplit(self.url).hostname or self.url

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FeedConfig":
        """Build from a YAML mapping (``url`` required)."""
        url = data.get("url")
        if not isinstance(url, str) or not url.strip():
            raise ValueError("Feed configuration requires a 'url'")
        limit = data.get("max_concurrency")
        return cls(
            url=url.strip(),
            name=data.get("name"),
            max_concurrency=int(limit) if limit is not None else None,
        )


def default_feed_configs() -> List[FeedConfig]:
    """The public nuget.org feed."""
    return [FeedConfig(Constants.DEFAULT_FEED_URL, Constants.DEFAULT_FEED_NAME)]


class SourceRegistry:
    """Feeds in priority order; the first entry is consulted first."""

    def __init__(self, feeds: Sequence[PackageFeed]):
        if not feeds:
            raise ValueError("A source registry needs at least one feed")
        self._feeds = tuple(feeds)

    @classmethod
    def from_configs(
        cls, configs: Iterable[FeedConfig], transport, settings=None
    ) -> "SourceRegistry":
        """Create NuGet V3 feeds sharing one transport."""
        from .nuget.client import NuGetV3Feed  # pylint: disable=import-outside-toplevel

        return cls([NuGetV3Feed(config, transport, settings) for config in configs])

    @property
    def feeds(self) -> Sequence[PackageFeed]:
        return self._feeds

    def __iter__(self) -> Iterator[PackageFeed]:
        return iter(self._feeds)

    def __len__(self) -> int:
        return len(self._feeds)

    def __repr__(self) -> str:
        return f"SourceRegistry({[feed.name for feed in self._feeds]!r})"
