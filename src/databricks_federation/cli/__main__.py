"""
Command-line entry point for the Databricks federation connector.

Usage:
    python -m databricks_federation.cli <command> [options]

Available commands:
    check-connection  - Open and validate a connection
    list-tables       - List tables of a schema, one page at a time
    build-query       - Print the SELECT statement for a table/split

Examples:
    python -m databricks_federation.cli check-connection --catalog main
    python -m databricks_federation.cli list-tables --schema sales --page-size 50
    python -m databricks_federation.cli build-query --catalog main --schema sales \\
        --table orders --columns id,amount --partition "region=EU" --limit 10
"""

import argparse
import json
import sys
from typing import List, Optional

import pyarrow as pa

from databricks_federation.domain.models import (
    PARTITION_NAME_KEY,
    Constraints,
    EncryptionKey,
    OrderByField,
    SortDirection,
    SpillLocation,
    Split,
    TableReference,
)
from databricks_federation.io.connectors.exceptions import ConnectorError


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="databricks_federation.cli",
        description="Databricks federation connector CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    subparsers = parser.add_subparsers(
        title="commands",
        description="Available commands",
        dest="command",
        required=True,
        help="Command to execute",
    )

    check = subparsers.add_parser(
        "check-connection", help="Open and validate a Databricks connection"
    )
    check.add_argument("--catalog", help="Catalog to open the session in")

    tables = subparsers.add_parser("list-tables", help="List tables of a schema")
    tables.add_argument("--schema", required=True, help="Schema to list")
    tables.add_argument("--catalog", help="Catalog containing the schema")
    tables.add_argument("--page-size", type=int, default=0, help="Tables per page (0 = all)")
    tables.add_argument("--token", help="Continuation token from a previous page")

    query = subparsers.add_parser(
        "build-query", help="Print the SELECT statement for a table and split"
    )
    query.add_argument("--catalog")
    query.add_argument("--schema")
    query.add_argument("--table", required=True)
    query.add_argument("--columns", help="Comma-separated projection (default *)")
    query.add_argument("--partition", help="Partition name, e.g. year=2024/month=01")
    query.add_argument(
        "--order-by",
        action="append",
        default=[],
        help="column[:DIRECTION], DIRECTION one of the SortDirection names",
    )
    query.add_argument("--limit", type=int, default=0)
    return parser


def _parse_order_by(values: List[str]) -> List[OrderByField]:
    fields = []
    for value in values:
        column, _, direction = value.partition(":")
        fields.append(OrderByField(column, SortDirection(direction.upper() or "ASC")))
    return fields


def _check_connection(args: argparse.Namespace) -> int:
    from databricks_federation.io.connectors.connection_manager import ConnectionManager

    with ConnectionManager().connection(args.catalog) as conn:
        config = conn.config
        print(
            json.dumps(
                {
                    "status": "ok",
                    "server_hostname": config.server_hostname if config else None,
                    "catalog": config.catalog if config else None,
                }
            )
        )
    return 0


def _list_tables(args: argparse.Namespace) -> int:
    from databricks_federation.io.connectors.composite_handler import DatabricksConnector

    result = DatabricksConnector().list_tables(
        args.schema, page_token=args.token, page_size=args.page_size, catalog=args.catalog
    )
    for table in result.tables:
        print(table.qualified_name())
    if result.next_token is not None:
        print(f"next_token={result.next_token}", file=sys.stderr)
    return 0


def _build_query(args: argparse.Namespace) -> int:
    from databricks_federation.infrastructure.sql import DatabricksDialect, SplitQueryBuilder

    schema = None
    if args.columns:
        schema = pa.schema(
            [pa.field(name.strip(), pa.string()) for name in args.columns.split(",") if name.strip()]
        )
    properties = {PARTITION_NAME_KEY: args.partition} if args.partition else {}
    split = Split(SpillLocation("local", "cli"), EncryptionKey.generate(), properties)
    constraints = Constraints(order_by=tuple(_parse_order_by(args.order_by)), limit=args.limit)
    table_ref = TableReference(args.catalog, args.schema, args.table)
    print(SplitQueryBuilder(DatabricksDialect()).build_statement(table_ref, schema, constraints, split))
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point with subcommand routing.

    Args:
        argv: Command line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    handlers = {
        "check-connection": _check_connection,
        "list-tables": _list_tables,
        "build-query": _build_query,
    }
    handler = handlers.get(args.command)
    if handler is None:
        parser.print_help()
        return 1

    try:
        return handler(args)
    except ConnectorError as exc:
        print(json.dumps(exc.to_dict()), file=sys.stderr)
        return 2
    except ValueError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
