"""DuckDB-based storage of computed call tables with checkpoint-restart."""

from pathlib import Path
from typing import Optional

import duckdb
import polars as pl


class ResultStore:
    """
    DuckDB-based storage for computed call tables.

    Aggregating and resolving calls over a full release is expensive, so
    each exported table is saved once with a description of the settings
    that produced it. Later runs with the same settings reuse it unless a
    re-run is forced.
    """

    def __init__(self, db_path: Path):
        """
        Initialize ResultStore with a DuckDB database.

        Args:
            db_path: Path to DuckDB database file. Parent directories
                     are created automatically.
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self.conn = duckdb.connect(str(self.db_path))

        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS _checkpoints (
                table_name VARCHAR PRIMARY KEY,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                row_count INTEGER,
                description VARCHAR
            )
        """)

    def save_dataframe(
        self,
        df: pl.DataFrame,
        table_name: str,
        description: str = "",
        replace: bool = True,
    ) -> None:
        """
        Save a polars DataFrame to DuckDB as a table.

        Args:
            df: DataFrame to save
            table_name: Name for the DuckDB table
            description: Optional description for checkpoint metadata
            replace: If True, replace existing table; if False, append
        """
        if not isinstance(df, pl.DataFrame):
            raise ValueError("df must be a polars.DataFrame")

        if replace:
            self.conn.execute(f'CREATE OR REPLACE TABLE "{table_name}" AS SELECT * FROM df')
        else:
            self.conn.execute(f'INSERT INTO "{table_name}" SELECT * FROM df')

        row_count = self.conn.execute(f'SELECT COUNT(*) FROM "{table_name}"').fetchone()[0]
        self.conn.execute("""
            INSERT OR REPLACE INTO _checkpoints (table_name, row_count, description, created_at)
            VALUES (?, ?, ?, CURRENT_TIMESTAMP)
        """, [table_name, row_count, description])

    def load_dataframe(self, table_name: str) -> Optional[pl.DataFrame]:
        """
        Load a table as a polars DataFrame.

        Returns:
            DataFrame or None if table doesn't exist
        """
        try:
            return self.conn.execute(f'SELECT * FROM "{table_name}"').pl()
        except duckdb.CatalogException:
            return None

    def has_checkpoint(self, table_name: str, description: Optional[str] = None) -> bool:
        """
        Check if a checkpoint exists.

        Args:
            table_name: Checkpoint table
            description: If given, the checkpoint only counts when it was
                saved with this exact description
        """
        row = self.conn.execute(
            "SELECT description FROM _checkpoints WHERE table_name = ?",
            [table_name]
        ).fetchone()
        if row is None:
            return False
        return description is None or row[0] == description

    def list_checkpoints(self) -> list[dict]:
        """
        List all checkpoints with metadata.

        Returns:
            List of checkpoint metadata dicts with keys:
            table_name, created_at, row_count, description
        """
        result = self.conn.execute("""
            SELECT table_name, created_at, row_count, description
            FROM _checkpoints
            ORDER BY created_at DESC, table_name
        """).fetchall()

        return [
            {
                "table_name": row[0],
                "created_at": row[1],
                "row_count": row[2],
                "description": row[3],
            }
            for row in result
        ]

    def close(self) -> None:
        """Close the DuckDB connection."""
        if self.conn:
            self.conn.close()
            self.conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    @classmethod
    def from_config(cls, config: "EngineConfig") -> "ResultStore":
        """Create ResultStore from an EngineConfig."""
        return cls(config.duckdb_path)
