#!/usr/bin/env python3
"""
Copy every base table of a SQLite database into a DuckDB file.

The service attaches either format; a native DuckDB file avoids loading
the sqlite extension at startup. Foreign-key constraints are not carried
over (CREATE TABLE AS copies data and column types only).

Usage:
    python scripts/convert_db.py data/chinook.db data/chinook.duckdb
"""

import argparse
import sys
from pathlib import Path

import duckdb

SOURCE_ALIAS = "source_db"


def convert(sqlite_path: Path, duckdb_path: Path, overwrite: bool = False) -> int:
    """
    Copy all tables and return how many were copied.

    Raises:
        FileNotFoundError: If the SQLite file does not exist
        FileExistsError: If the target exists and overwrite is False
    """
    if not sqlite_path.exists():
        raise FileNotFoundError(f"SQLite database not found: {sqlite_path}")
    if duckdb_path.exists():
        if not overwrite:
            raise FileExistsError(f"Target already exists: {duckdb_path} (use --overwrite)")
        duckdb_path.unlink()

    duckdb_path.parent.mkdir(parents=True, exist_ok=True)
    source = sqlite_path.as_posix().replace("'", "''")

    conn = duckdb.connect(str(duckdb_path))
    try:
        conn.execute("INSTALL sqlite")
        conn.execute("LOAD sqlite")
        conn.execute(f"ATTACH '{source}' AS {SOURCE_ALIAS} (TYPE SQLITE, READ_ONLY)")
        print("✅ SQLite database attached")

        tables = [
            row[0]
            for row in conn.execute(
                """
                SELECT table_name
                FROM information_schema.tables
                WHERE table_catalog = ? AND table_type = 'BASE TABLE'
                ORDER BY table_name
                """,
                [SOURCE_ALIAS],
            ).fetchall()
        ]
        print(f"📊 Found {len(tables)} tables to copy")

        for table in tables:
            quoted = '"' + table.replace('"', '""') + '"'
            conn.execute(f"CREATE TABLE {quoted} AS SELECT * FROM {SOURCE_ALIAS}.main.{quoted}")
            print(f"  ✓ {table} copied")

        conn.execute(f"DETACH {SOURCE_ALIAS}")
    finally:
        conn.close()

    print(f"📁 DuckDB file created at: {duckdb_path}")
    return len(tables)


def main() -> int:
    parser = argparse.ArgumentParser(description="Convert a SQLite database into a DuckDB file.")
    parser.add_argument("sqlite_path", type=Path, help="Source SQLite file")
    parser.add_argument("duckdb_path", type=Path, help="Target DuckDB file")
    parser.add_argument("--overwrite", action="store_true", help="Replace an existing target file")
    args = parser.parse_args()

    try:
        convert(args.sqlite_path, args.duckdb_path, overwrite=args.overwrite)
    except (FileNotFoundError, FileExistsError, duckdb.Error) as e:
        print(f"✗ Conversion failed: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
