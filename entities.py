"""
Value types produced by the extractors.

Every scraped object becomes an ``EntityRecord``: an immutable mapping of
field name to value that always carries an ``id`` and a ``kind``. Records
are created fresh on every fetch and never mutated; ``with_fields`` returns
a new record.
"""

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Mapping, Optional

EMPLOYEE = "employee"
TRUCK = "truck"
TRAILER = "trailer"
FREIGHT = "freight"
TRIP = "trip"

KINDS = (EMPLOYEE, TRUCK, TRAILER, FREIGHT, TRIP)


def _freeze(fields: Optional[Mapping[str, Any]]) -> Mapping[str, Any]:
    return MappingProxyType(dict(fields or {}))


@dataclass(frozen=True)
class EntityRecord:
    kind: str
    id: str
    fields: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.kind not in KINDS:
            raise ValueError(f"Unknown entity kind: {self.kind!r}")
        if not self.id or not str(self.id).isdigit():
            raise ValueError(f"Entity id must be a non-empty numeric string, got {self.id!r}")
        object.__setattr__(self, "fields", _freeze(self.fields))

    def get(self, name: str, default: Any = None) -> Any:
        return self.fields.get(name, default)

    def __getitem__(self, name: str) -> Any:
        return self.fields[name]

    def with_fields(self, **updates) -> "EntityRecord":
        """Return a copy with extra or replaced fields"""
        merged = dict(self.fields)
        merged.update(updates)
        return replace(self, fields=merged)

    def __eq__(self, other):
        if not isinstance(other, EntityRecord):
            return NotImplemented
        return (self.kind, self.id, dict(self.fields)) == (other.kind, other.id, dict(other.fields))

    def __hash__(self):
        return hash((self.kind, self.id))


@dataclass(frozen=True)
class FreightButton:
    """An actionable element on a freight detail page"""
    tag: str
    label: str
    onclick: Optional[str] = None
    href: Optional[str] = None

    @property
    def action(self) -> str:
        """Normalized label used to match the action vocabulary"""
        return " ".join(self.label.lower().split())


@dataclass(frozen=True)
class FinancialLine:
    label: str
    status: str
    gross_price: str
    quantity: str
    net_total: str


@dataclass(frozen=True)
class ProgressBar:
    """Arguments of an inline ``new ProgressBar(id, min, max, current)`` call"""
    bar_id: str
    minimum: float
    maximum: float
    current: float

    @property
    def percentage(self) -> Optional[float]:
        span = self.maximum - self.minimum
        if span <= 0:
            return None
        pct = (self.current - self.minimum) / span * 100
        return max(0.0, min(100.0, pct))


