"""Release snapshot loading (TSV files produced by the upstream batch pipeline)."""

from exprcall_pipeline.snapshot.loader import (
    REQUIRED_FILES,
    SNAPSHOT_FILES,
    Snapshot,
    load_snapshot,
    parse_enum,
    read_snapshot_table,
)

__all__ = [
    "REQUIRED_FILES",
    "SNAPSHOT_FILES",
    "Snapshot",
    "load_snapshot",
    "parse_enum",
    "read_snapshot_table",
]
