"""
Dimension and metric definitions, their registries, and report types.

A report type owns one DimensionRegistry and one MetricRegistry. Registries
are built once by the catalog factories and never mutated afterwards; the
engine only reads them.
"""

from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from qaboard.core.exceptions import ValidationError
from qaboard.reporting.types import DateBucket, DateFilter, ReportScope, none_value, unknown_value
from qaboard.utils.errors import E


class DimensionConfig(ABC):
    """A grouping axis of a report.

    Subclasses enumerate the axis values present in a scope and project an
    enumerated entity into its display object. Date dimensions set
    ``date_key`` (e.g. ``"executedAt"``).
    """

    date_key: str | None = None

    def __init__(self, id: str, label: str, group_by_field: str):
        self.id = id
        self.label = label
        self.group_by_field = group_by_field

    @property
    def is_date(self) -> bool:
        return self.date_key is not None

    @abstractmethod
    def enumerate(self, scope: ReportScope) -> list[dict]:
        """Return every distinct value of this axis within ``scope``."""

    @abstractmethod
    def display(self, entity: dict):
        """Project an enumerated entity into a display object."""

    def lookup_key(self, entity: dict) -> str | None:
        entity_id = entity.get("id")
        return None if entity_id is None else str(entity_id)

    def none_display(self):
        return none_value()

    def orphan_display(self, raw, key: str):
        """Display for a grouped value with no enumerated entity behind it."""
        return unknown_value(raw)

    def drill_value(self, cell):
        """Raw group value behind a cell sent back by a client.

        Accepts the serialized display object or the bare value.
        """
        if isinstance(cell, Mapping):
            return cell.get("id")
        return cell

    def __repr__(self):
        return f"<{type(self).__name__} {self.id}>"


class DateDimensionMixin:
    """Lookup and display behaviour shared by every date dimension."""

    def lookup_key(self, entity: dict) -> str | None:
        return entity.get(self.date_key)

    def display(self, entity: dict):
        return DateBucket(self.date_key, entity.get(self.date_key))

    def none_display(self):
        return DateBucket(self.date_key, None)

    def orphan_display(self, raw, key: str):
        return DateBucket(self.date_key, key)

    def drill_value(self, cell):
        if isinstance(cell, Mapping):
            return cell.get(self.date_key)
        return cell


class MetricConfig(ABC):
    """An aggregate measure computed per group of records.

    ``aggregate`` returns partial rows: the grouping values keyed by field
    name plus one number keyed by the metric id.
    """

    def __init__(self, id: str, label: str, *, hidden: bool = False):
        self.id = id
        self.label = label
        self.hidden = hidden

    @abstractmethod
    def aggregate(self, scope: ReportScope, group_by: list[str],
                  date_filter: DateFilter) -> list[dict]:
        """Compute this metric for every group present in ``scope``."""

    def drill_down(self, scope: ReportScope, match: dict, date_filter: DateFilter, *,
                   offset: int = 0, limit: int = 50):
        """List the records behind one cell; see ``SqlMetric.drill_down``."""
        raise NotImplementedError(f"{type(self).__name__} does not support drill-down")

    def __repr__(self):
        return f"<{type(self).__name__} {self.id}>"


# ═════════════════════════════════════════════════════════════════════════════
# REGISTRIES
# ═════════════════════════════════════════════════════════════════════════════

class CatalogRegistry(Mapping):
    """Read-only id → definition mapping that resolves request ids."""

    kind = "entry"

    def __init__(self, entries: Iterable):
        table = {}
        for entry in entries:
            if entry.id in table:
                raise ValueError(f"Duplicate {self.kind} id: {entry.id}")
            table[entry.id] = entry
        self._entries = MappingProxyType(table)

    def __getitem__(self, key):
        return self._entries[key]

    def __iter__(self):
        return iter(self._entries)

    def __len__(self):
        return len(self._entries)

    def resolve(self, ids: Iterable[str]) -> list:
        """Return the definitions for ``ids`` in request order.

        Raises:
            ValidationError: naming the first id this registry does not know.
        """
        resolved = []
        for entry_id in ids:
            entry = self._entries.get(entry_id)
            if entry is None:
                raise ValidationError(
                    f"Unsupported {self.kind}: {entry_id}",
                    details={f"{self.kind}s": entry_id},
                    code=E.VALIDATION_INVALID,
                )
            resolved.append(entry)
        return resolved

    def metadata(self) -> list[dict]:
        return [
            {"id": entry.id, "label": entry.label}
            for entry in self._entries.values()
            if not getattr(entry, "hidden", False)
        ]


class DimensionRegistry(CatalogRegistry):
    kind = "dimension"


class MetricRegistry(CatalogRegistry):
    kind = "metric"


@dataclass(frozen=True)
class ReportType:
    """A named report: which dimensions and metrics it offers, and its scope rule."""

    key: str
    label: str
    dimensions: DimensionRegistry
    metrics: MetricRegistry
    requires_project: bool = True
    sort_aliases: Mapping[str, str] = field(default_factory=dict)

    def metadata(self) -> dict:
        return {
            "dimensions": self.dimensions.metadata(),
            "metrics": self.metrics.metadata(),
        }

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "label": self.label,
            "requiresProject": self.requires_project,
        }
