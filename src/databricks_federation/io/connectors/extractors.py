"""Type mapping and per-column value extraction.

Databricks column types are mapped to pyarrow types once, when the table
schema is discovered. Each projected column is bound to one extractor
variant when the read starts; rows are then extracted without inspecting
types again.
"""

import datetime as dt
import re
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, localcontext
from enum import Enum
from typing import Any, Callable, Mapping, Optional, Sequence

import pyarrow as pa

from databricks_federation.utils.logging import get_logger

logger = get_logger(__name__)

_DECIMAL_TYPE = re.compile(r"^DECIMAL\s*\(\s*(\d+)\s*(?:,\s*(\d+)\s*)?\)$", re.IGNORECASE)

_SIMPLE_TYPES = {
    "BOOLEAN": pa.bool_(),
    "TINYINT": pa.int8(),
    "BYTE": pa.int8(),
    "SMALLINT": pa.int16(),
    "SHORT": pa.int16(),
    "INT": pa.int32(),
    "INTEGER": pa.int32(),
    "BIGINT": pa.int64(),
    "LONG": pa.int64(),
    "FLOAT": pa.float32(),
    "REAL": pa.float32(),
    "DOUBLE": pa.float64(),
    "DATE": pa.date32(),
    "TIMESTAMP": pa.timestamp("ms", tz="UTC"),
    "TIMESTAMP_LTZ": pa.timestamp("ms", tz="UTC"),
    "TIMESTAMP_NTZ": pa.timestamp("ms"),
    "BINARY": pa.binary(),
    "STRING": pa.string(),
}


def arrow_type_for(databricks_type: Optional[str]) -> pa.DataType:
    """
    Map a Databricks type name to a pyarrow type.

    Complex types (ARRAY, MAP, STRUCT) and anything unknown map to string.

    >>> arrow_type_for("decimal(10,2)")
    Decimal128Type(decimal128(10, 2))
    """
    name = (databricks_type or "").strip().upper()
    match = _DECIMAL_TYPE.match(name)
    if match:
        precision = int(match.group(1))
        scale = int(match.group(2) or 0)
        return pa.decimal128(precision, scale)
    if name == "DECIMAL":
        return pa.decimal128(10, 0)
    base = name.split("(", 1)[0].split("<", 1)[0].strip()
    return _SIMPLE_TYPES.get(base, pa.string())


class ExtractorKind(str, Enum):
    PARTITION = "partition"
    DECIMAL = "decimal"
    DATE = "date"
    TIMESTAMP_TZ = "timestamp_tz"
    GENERIC = "generic"


@dataclass
class ValueHolder:
    """Output slot for one cell: ``is_set`` is False for SQL NULL."""

    is_set: bool = False
    value: Any = None

    def clear(self) -> None:
        self.is_set = False
        self.value = None


Extractor = Callable[[Sequence[Any], ValueHolder], None]


def extractor_kind(field: pa.Field, partition_values: Mapping[str, Any]) -> ExtractorKind:
    if field.name in partition_values:
        return ExtractorKind.PARTITION
    if pa.types.is_decimal(field.type):
        return ExtractorKind.DECIMAL
    if pa.types.is_date(field.type):
        return ExtractorKind.DATE
    if pa.types.is_timestamp(field.type) and field.type.tz is not None:
        return ExtractorKind.TIMESTAMP_TZ
    return ExtractorKind.GENERIC


def _to_decimal(value: Any, data_type: pa.Decimal128Type) -> Decimal:
    """Round half-up to the column scale; precision overflow raises."""
    number = value if isinstance(value, Decimal) else Decimal(str(value))
    with localcontext() as ctx:
        ctx.prec = data_type.precision
        return number.quantize(Decimal(1).scaleb(-data_type.scale), rounding=ROUND_HALF_UP)


def _to_date(value: Any, data_type: pa.DataType) -> dt.date:
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, dt.date):
        return value
    return dt.date.fromisoformat(str(value))


def _to_utc_datetime(value: Any, data_type: pa.DataType) -> dt.datetime:
    if not isinstance(value, dt.datetime):
        value = dt.datetime.fromisoformat(str(value))
    if value.tzinfo is None:
        return value.replace(tzinfo=dt.timezone.utc)
    return value.astimezone(dt.timezone.utc)


def _to_text(value: Any, data_type: pa.DataType) -> str:
    return value if isinstance(value, str) else str(value)


_CONVERTERS = {
    ExtractorKind.DECIMAL: _to_decimal,
    ExtractorKind.DATE: _to_date,
    ExtractorKind.TIMESTAMP_TZ: _to_utc_datetime,
}


def _partition_value(field: pa.Field, raw: Any) -> Any:
    """Partition values are strings; cast once to the column type."""
    if raw is None:
        return None
    text = str(raw)
    if pa.types.is_string(field.type):
        return text
    try:
        return pa.scalar(text, pa.string()).cast(field.type).as_py()
    except (pa.ArrowInvalid, pa.ArrowNotImplementedError) as exc:
        logger.warning("extractor.partition_cast_failed", column=field.name, error=str(exc))
        return None


def make_extractor(
    field: pa.Field,
    index: int,
    partition_values: Optional[Mapping[str, Any]] = None,
) -> Extractor:
    """
    Bind an extractor for one column.

    Args:
        field: Target column
        index: Position of the column in fetched rows
        partition_values: Values fixed by the split's partition; a column
            listed here is filled from the partition, not from the row

    Returns:
        ``extractor(row, holder)``. A cell that cannot be converted to the
        column type is logged and leaves the holder unset.
    """
    partition_values = partition_values or {}
    kind = extractor_kind(field, partition_values)

    if kind is ExtractorKind.PARTITION:
        partition_value = _partition_value(field, partition_values[field.name])

        def extract_partition(row: Sequence[Any], holder: ValueHolder) -> None:
            holder.is_set = partition_value is not None
            holder.value = partition_value

        return extract_partition

    convert = _CONVERTERS.get(kind)
    if convert is None and pa.types.is_string(field.type):
        convert = _to_text
    data_type = field.type

    def extract(row: Sequence[Any], holder: ValueHolder) -> None:
        holder.clear()
        try:
            value = row[index]
            if value is None:
                return
            if convert is not None:
                value = convert(value, data_type)
            # Values that will not fit the column fail here, not at batch build
            pa.scalar(value, data_type)
            holder.value = value
            holder.is_set = True
        except Exception as exc:
            holder.clear()
            logger.warning(
                "extractor.cell_failed",
                column=field.name,
                kind=kind.value,
                error=str(exc),
            )

    return extract
