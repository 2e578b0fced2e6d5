"""SQL statement builders."""

from .select import Dialect, SplitQueryBuilder

__all__ = ["Dialect", "SplitQueryBuilder"]
