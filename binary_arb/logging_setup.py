from __future__ import annotations

import logging
from typing import Iterable

_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


class TagFilter(logging.Filter):
    """Drops records by logger-name prefix.

    A tag matches a logger when the name equals the tag or starts with
    ``tag + "."``; a bare component name such as ``pricing`` also matches
    the last segment of ``binary_arb.smile.pricing``. Disabled tags win
    over enabled tags. With no enabled tags every record passes.
    """

    def __init__(self, enabled: Iterable[str] = (), disabled: Iterable[str] = ()) -> None:
        super().__init__()
        self.enabled = tuple(tag for tag in enabled if tag)
        self.disabled = tuple(tag for tag in disabled if tag)

    @staticmethod
    def _matches(name: str, tag: str) -> bool:
        if name == tag or name.startswith(tag + "."):
            return True
        return tag in name.split(".")

    def filter(self, record: logging.LogRecord) -> bool:
        if any(self._matches(record.name, tag) for tag in self.disabled):
            return False
        if not self.enabled:
            return True
        return any(self._matches(record.name, tag) for tag in self.enabled)


def configure_logging(
    level: str,
    enabled: Iterable[str] = (),
    disabled: Iterable[str] = (),
) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=_FORMAT,
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    tag_filter = TagFilter(enabled, disabled)
    for handler in logging.getLogger().handlers:
        for existing in [f for f in handler.filters if isinstance(f, TagFilter)]:
            handler.removeFilter(existing)
        handler.addFilter(tag_filter)
