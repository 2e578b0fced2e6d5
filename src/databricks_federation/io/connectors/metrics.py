"""Per-request context and metrics sink.

A ``RequestContext`` is created for each host request and passed explicitly
through the handlers. It carries the identifiers bound to every log line and
an injected ``ConnectorMetrics`` sink.
"""

import time
from collections import Counter
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional

from databricks_federation.utils.logging import bind_context


class ConnectorMetrics:
    """
    In-memory metrics sink.

    Counters and timings are scoped to the instance; pass a shared instance
    to aggregate across requests or a fresh one per test.
    """

    def __init__(self) -> None:
        self.counters: Counter = Counter()
        self.timings: Dict[str, List[float]] = {}

    def increment(self, name: str, value: int = 1) -> None:
        self.counters[name] += value

    def record_timing(self, name: str, seconds: float) -> None:
        self.timings.setdefault(name, []).append(seconds)

    def count(self, name: str) -> int:
        return self.counters[name]

    def snapshot(self) -> Dict[str, Any]:
        return {
            "counters": dict(self.counters),
            "timings": {k: list(v) for k, v in self.timings.items()},
        }


@dataclass
class RequestContext:
    query_id: str = ""
    catalog: Optional[str] = None
    schema: Optional[str] = None
    table: Optional[str] = None
    operation: Optional[str] = None
    metrics: ConnectorMetrics = field(default_factory=ConnectorMetrics)

    def logger(self) -> Any:
        """Logger bound to this request's identifiers."""
        fields = {
            "query_id": self.query_id,
            "catalog": self.catalog,
            "schema": self.schema,
            "table": self.table,
            "operation": self.operation,
        }
        return bind_context(**{k: v for k, v in fields.items() if v})

    @contextmanager
    def timed(self, name: str) -> Iterator[None]:
        """Record the duration of the block under ``<name>.duration``."""
        start = time.perf_counter()
        try:
            yield
        finally:
            self.metrics.record_timing(f"{name}.duration", time.perf_counter() - start)
