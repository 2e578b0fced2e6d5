"""
Request and work-unit models exchanged with the federation host.

All models are immutable: the host creates them per request and the
connector never mutates them afterwards.
"""

from __future__ import annotations

import secrets
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .predicates import FunctionCallExpression, ValueSet

# Partition sentinel meaning "no partitioning, scan the whole table"
WILDCARD_PARTITION = "*"

# Split property carrying the partition identifier
PARTITION_NAME_KEY = "partition_name"

# Split properties used for bookkeeping only, never turned into predicates
BOOKKEEPING_KEYS = frozenset({"partition_id", "split_part", "split_count"})

# Split property flagging a pass-through split
PASS_THROUGH_KEY = "query_pass_through"


@dataclass(frozen=True)
class TableReference:
    """Fully qualified remote table (catalog.schema.table)."""

    catalog: Optional[str]
    schema: Optional[str]
    table: str

    def qualified_name(self) -> str:
        return ".".join(part for part in (self.catalog, self.schema, self.table) if part)


class SortDirection(str, Enum):
    """Ordering direction with optional explicit null placement."""

    ASC = "ASC"
    DESC = "DESC"
    ASC_NULLS_FIRST = "ASC_NULLS_FIRST"
    ASC_NULLS_LAST = "ASC_NULLS_LAST"
    DESC_NULLS_FIRST = "DESC_NULLS_FIRST"
    DESC_NULLS_LAST = "DESC_NULLS_LAST"

    @property
    def is_ascending(self) -> bool:
        return self.value.startswith("ASC")

    @property
    def nulls(self) -> Optional[str]:
        """``FIRST``/``LAST`` when null placement was requested, else None."""
        if self.value.endswith("NULLS_FIRST"):
            return "FIRST"
        if self.value.endswith("NULLS_LAST"):
            return "LAST"
        return None


@dataclass(frozen=True)
class OrderByField:
    column: str
    direction: SortDirection = SortDirection.ASC


@dataclass(frozen=True)
class Constraints:
    """
    Pushed-down query constraints for one request.

    Attributes:
        summary: Column name to value set; all entries are ANDed together
        expressions: Complex function-call expressions, ANDed together
        order_by: Requested ordering
        limit: Row limit; values <= 0 mean no limit
        pass_through: When set, ``pass_through_query`` is executed verbatim
        pass_through_query: Raw query text for pass-through requests
    """

    summary: Mapping[str, ValueSet] = field(default_factory=dict)
    expressions: Tuple[FunctionCallExpression, ...] = ()
    order_by: Tuple[OrderByField, ...] = ()
    limit: int = 0
    pass_through: bool = False
    pass_through_query: Optional[str] = None


@dataclass(frozen=True)
class SpillLocation:
    bucket: str
    key: str
    directory: bool = True

    @classmethod
    def for_query(cls, bucket: str, prefix: str, query_id: str) -> "SpillLocation":
        """Build a unique spill location for one split of ``query_id``."""
        key = f"{prefix.rstrip('/')}/{query_id}/{uuid.uuid4().hex}"
        return cls(bucket=bucket, key=key)


@dataclass(frozen=True)
class EncryptionKey:
    """AES-GCM key material used by the host to encrypt spilled blocks."""

    key: bytes
    nonce: bytes

    @classmethod
    def generate(cls) -> "EncryptionKey":
        return cls(key=secrets.token_bytes(32), nonce=secrets.token_bytes(12))


@dataclass(frozen=True)
class Split:
    """
    One unit of parallel work.

    A split targets at most one partition; its ``properties`` carry the
    partition identifier (or Hive-style ``column=value`` assignments).
    """

    spill_location: SpillLocation
    encryption_key: EncryptionKey
    properties: Mapping[str, str] = field(default_factory=dict)

    @property
    def partition_name(self) -> Optional[str]:
        return self.properties.get(PARTITION_NAME_KEY)

    @property
    def is_pass_through(self) -> bool:
        return self.properties.get(PASS_THROUGH_KEY) == "true"


@dataclass(frozen=True)
class PartitionDescriptor:
    name: str

    @property
    def is_wildcard(self) -> bool:
        return self.name == WILDCARD_PARTITION

    @classmethod
    def wildcard(cls) -> "PartitionDescriptor":
        return cls(WILDCARD_PARTITION)


@dataclass(frozen=True)
class ListTablesResult:
    tables: List[TableReference]
    next_token: Optional[str] = None


@dataclass(frozen=True)
class SplitsResult:
    splits: List[Split]
    continuation_token: Optional[str] = None


def parse_hive_partition(partition_name: str) -> Dict[str, str]:
    """
    Parse a Hive-style partition path into column assignments.

    >>> parse_hive_partition("year=2023/month=01")
    {'year': '2023', 'month': '01'}

    Segments without ``=`` are ignored; an opaque identifier yields {}.
    """
    assignments: Dict[str, str] = {}
    if not partition_name or partition_name == WILDCARD_PARTITION:
        return assignments
    for segment in partition_name.split("/"):
        if "=" not in segment:
            continue
        column, value = segment.split("=", 1)
        if column:
            assignments[column] = value
    return assignments


def partition_values_for_split(split: Split) -> Dict[str, Any]:
    """Column values fixed by the split's partition (used by extractors)."""
    return dict(parse_hive_partition(split.partition_name or ""))
