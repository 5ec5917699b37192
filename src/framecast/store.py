from __future__ import annotations

import json
import sqlite3
from pathlib import Path
from typing import Iterable

from framecast.models import ConversionRecord, Finding


SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS conversions (
    conversion_id TEXT PRIMARY KEY,
    identifier TEXT NOT NULL,
    created_at TEXT NOT NULL,
    source_sha256 TEXT NOT NULL,
    source_text TEXT NOT NULL,
    output_text TEXT,
    is_valid INTEGER NOT NULL,
    confidence REAL,
    bindings_total INTEGER NOT NULL,
    bindings_rewritten INTEGER NOT NULL,
    used_placeholder INTEGER NOT NULL,
    input_fix_count INTEGER NOT NULL,
    output_fix_count INTEGER NOT NULL,
    notes TEXT NOT NULL,
    project_dir TEXT,
    integrity_state TEXT
);

CREATE TABLE IF NOT EXISTS findings (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    conversion_id TEXT NOT NULL,
    position INTEGER NOT NULL,
    layer TEXT NOT NULL,
    severity TEXT NOT NULL,
    rule TEXT NOT NULL,
    message TEXT NOT NULL,
    line INTEGER,
    column_no INTEGER,
    UNIQUE(conversion_id, position),
    FOREIGN KEY (conversion_id) REFERENCES conversions(conversion_id)
);
"""


class Store:
    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def init_db(self) -> None:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._connect() as conn:
            conn.executescript(SCHEMA_SQL)

    def save_conversion(self, record: ConversionRecord, findings: Iterable[Finding]) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO conversions(
                    conversion_id, identifier, created_at, source_sha256, source_text,
                    output_text, is_valid, confidence, bindings_total, bindings_rewritten,
                    used_placeholder, input_fix_count, output_fix_count, notes,
                    project_dir, integrity_state
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.conversion_id,
                    record.identifier,
                    record.created_at.isoformat(),
                    record.source_sha256,
                    record.source_text,
                    record.output_text,
                    int(record.is_valid),
                    record.confidence,
                    record.bindings_total,
                    record.bindings_rewritten,
                    int(record.used_placeholder),
                    record.input_fix_count,
                    record.output_fix_count,
                    json.dumps(record.notes),
                    record.project_dir,
                    record.integrity_state,
                ),
            )
            conn.executemany(
                """
                INSERT INTO findings(conversion_id, position, layer, severity, rule, message, line, column_no)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        record.conversion_id,
                        position,
                        f.layer,
                        f.severity,
                        f.rule,
                        f.message,
                        f.span.line if f.span else None,
                        f.span.column if f.span else None,
                    )
                    for position, f in enumerate(findings)
                ],
            )

    def get_conversion(self, conversion_id: str) -> dict | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM conversions WHERE conversion_id = ?", (conversion_id,)).fetchone()
            return _conversion_row(row) if row else None

    def list_conversions(self, identifier: str | None = None, limit: int = 20) -> list[dict]:
        query = """
            SELECT conversion_id, identifier, created_at, is_valid, confidence,
                   bindings_total, bindings_rewritten, used_placeholder, integrity_state
            FROM conversions
        """
        params: tuple = ()
        if identifier:
            query += " WHERE identifier = ?"
            params = (identifier,)
        query += " ORDER BY created_at DESC, rowid DESC LIMIT ?"
        params = (*params, limit)

        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
            return [_conversion_row(r) for r in rows]

    def get_findings(self, conversion_id: str) -> list[dict]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT layer, severity, rule, message, line, column_no AS column
                FROM findings
                WHERE conversion_id = ?
                ORDER BY position
                """,
                (conversion_id,),
            ).fetchall()
            return [dict(r) for r in rows]


def _conversion_row(row: sqlite3.Row) -> dict:
    data = dict(row)
    for flag in ("is_valid", "used_placeholder"):
        if flag in data:
            data[flag] = bool(data[flag])
    if "notes" in data:
        data["notes"] = json.loads(data["notes"])
    return data
