"""Bundled product dataset behind the internal-database data source."""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

TABLES = ("users", "subscriptions", "mrr_snapshots", "feature_usage")


@dataclass(frozen=True)
class InternalDatabase:
    """
    The bundled product dataset answered by the internal-database data source.

    The agent does the querying: the whole dataset is embedded in its prompt
    together with the plan's query intent.
    """

    tables: dict[str, list[dict[str, Any]]] = field(default_factory=dict)

    @classmethod
    def from_json(cls, path: str | None = None) -> "InternalDatabase":
        db_path = (
            Path(path)
            if path
            else Path(__file__).resolve().parent.parent / "config" / "sample_database.json"
        )
        if not db_path.exists():
            raise ValueError(f"Internal database not found at {db_path}")

        try:
            data = json.loads(db_path.read_text(encoding="utf-8"))
        except OSError as e:
            raise ValueError(f"Internal database at {db_path} could not be read: {e}") from e
        if not isinstance(data, dict):
            raise ValueError("Invalid internal database: top level must be an object")

        tables: dict[str, list[dict[str, Any]]] = {}
        for name in TABLES:
            rows = data.get(name, [])
            if not isinstance(rows, list):
                raise ValueError(f"Invalid internal database: table {name} must be a list")
            tables[name] = rows
        return cls(tables=tables)

    def stats(self) -> dict[str, int]:
        return {name: len(rows) for name, rows in self.tables.items()}

    def snapshot(self) -> dict[str, Any]:
        """Prompt-ready view: row count plus all rows per table."""
        return {name: {"count": len(rows), "rows": rows} for name, rows in self.tables.items()}
