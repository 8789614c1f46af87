"""
OPS throttling advisory decoder.

Every OPS response carries an ``X-Throttling-Control`` header describing the
overall system state and the traffic light and per-minute quota of each
service category, e.g.::

    busy (images=green:200, inpadoc=yellow:60, other=green:1000, retrieval=green:200, search=red:30)

See the OPS "Fair use" documentation for the meaning of the values.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from functools import total_ordering
from typing import Dict

THROTTLE_HEADER = "X-Throttling-Control"


@total_ordering
class OrderedEnum(Enum):
    """Enum whose members compare by value."""

    def __lt__(self, other):
        if self.__class__ is other.__class__:
            return self.value < other.value
        return NotImplemented


class ServiceStatus(OrderedEnum):
    """Overall OPS load, ordered by severity."""
    IDLE = 0
    BUSY = 1
    OVERLOADED = 2


class TrafficLevel(OrderedEnum):
    """Per-category traffic light. BLACK means blocked or unknown."""
    GREEN = 0
    YELLOW = 1
    RED = 2
    BLACK = 3


class ServiceCategory(Enum):
    """Independently rate-limited OPS service groups."""
    RETRIEVAL = "retrieval"
    SEARCH = "search"
    INPADOC = "inpadoc"
    IMAGES = "images"
    OTHER = "other"


@dataclass(frozen=True)
class CategoryQuota:
    traffic: TrafficLevel
    limit_per_minute: int


UNKNOWN_QUOTA = CategoryQuota(TrafficLevel.BLACK, 0)


@dataclass
class QuotaSnapshot:
    """Current OPS status plus the quota of every advertised category."""

    status: ServiceStatus
    categories: Dict[ServiceCategory, CategoryQuota] = field(default_factory=dict)

    def lookup(self, category: ServiceCategory) -> CategoryQuota:
        """Quota for `category`, or the worst case if it was not advertised."""
        return self.categories.get(category, UNKNOWN_QUOTA)


def default_quota_snapshot() -> QuotaSnapshot:
    """Quotas assumed at session start, before OPS has reported anything."""
    return QuotaSnapshot(
        ServiceStatus.IDLE,
        {
            ServiceCategory.RETRIEVAL: CategoryQuota(TrafficLevel.GREEN, 200),
            ServiceCategory.SEARCH: CategoryQuota(TrafficLevel.GREEN, 30),
            ServiceCategory.INPADOC: CategoryQuota(TrafficLevel.GREEN, 60),
            ServiceCategory.IMAGES: CategoryQuota(TrafficLevel.GREEN, 200),
            ServiceCategory.OTHER: CategoryQuota(TrafficLevel.GREEN, 1000),
        },
    )


def failsafe_quota_snapshot() -> QuotaSnapshot:
    """Snapshot used when the advisory cannot be read: assume the worst."""
    return QuotaSnapshot(ServiceStatus.OVERLOADED, {})


class ThrottleParseError(ValueError):
    """Raised when a throttling advisory does not follow the OPS grammar."""


_STATUSES = {
    "idle": ServiceStatus.IDLE,
    "busy": ServiceStatus.BUSY,
}

_TRAFFIC_LEVELS = {
    "green": TrafficLevel.GREEN,
    "yellow": TrafficLevel.YELLOW,
    "red": TrafficLevel.RED,
}

_CATEGORIES = {
    "retrieval": ServiceCategory.RETRIEVAL,
    "search": ServiceCategory.SEARCH,
    "inpadoc": ServiceCategory.INPADOC,
    "images": ServiceCategory.IMAGES,
}

_ADVISORY_RE = re.compile(r"\s*(?P<status>[A-Za-z]+)\s*\((?P<entries>[^()]*)\)\s*")
_ENTRY_RE = re.compile(r"(?P<category>[A-Za-z]+)=(?P<traffic>[A-Za-z]+):(?P<limit>[^,\s]*)")


def _parse_limit(raw: str) -> int:
    try:
        return int(raw)
    except ValueError:
        return 0


def parse_throttle_header(text: str) -> QuotaSnapshot:
    """
    Decode an ``X-Throttling-Control`` value into a `QuotaSnapshot`.

    Unknown status words map to OVERLOADED, unknown traffic words to BLACK and
    unknown category names to OTHER. Only advertised categories are present
    in the result.

    Raises:
        ThrottleParseError: If the text is not ``<status> (<entries>)`` with at
            least one ``category=traffic:limit`` entry.
    """
    match = _ADVISORY_RE.fullmatch(text or "")
    if not match:
        raise ThrottleParseError(f"Not a throttling advisory: {text!r}")

    status = _STATUSES.get(match.group("status"), ServiceStatus.OVERLOADED)

    raw_entries = [part.strip() for part in match.group("entries").split(",")]
    if raw_entries and raw_entries[-1] == "":
        raw_entries.pop()  # trailing comma
    if not raw_entries:
        raise ThrottleParseError(f"Throttling advisory lists no services: {text!r}")

    categories: Dict[ServiceCategory, CategoryQuota] = {}
    for entry in raw_entries:
        entry_match = _ENTRY_RE.fullmatch(entry)
        if not entry_match:
            raise ThrottleParseError(f"Malformed service entry {entry!r} in {text!r}")
        category = _CATEGORIES.get(entry_match.group("category"), ServiceCategory.OTHER)
        categories[category] = CategoryQuota(
            _TRAFFIC_LEVELS.get(entry_match.group("traffic"), TrafficLevel.BLACK),
            _parse_limit(entry_match.group("limit")),
        )

    return QuotaSnapshot(status, categories)
