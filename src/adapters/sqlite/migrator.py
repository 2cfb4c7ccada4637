import logging
import sqlite3
from pathlib import Path

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parents[3] / "migrations"

DOWN_MARKER = "-- Down"


class SQLiteMigrator:
    """
    Applies numbered `.sql` files in name order, each at most once.

    A file holds its Up script first; everything after `-- Down` is ignored.
    Each file runs in one transaction together with its `_migrations` row.
    """

    def __init__(self, db_path: str, migrations_dir: str | Path = MIGRATIONS_DIR):
        self.db_path = db_path
        self.migrations_dir = Path(migrations_dir)

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.execute("PRAGMA foreign_keys = ON;")
        conn.execute("""
            CREATE TABLE IF NOT EXISTS _migrations (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                filename TEXT UNIQUE NOT NULL,
                applied_at DATETIME DEFAULT CURRENT_TIMESTAMP
            );
        """)
        return conn

    def available(self) -> list[str]:
        return sorted(p.name for p in self.migrations_dir.glob("*.sql"))

    def applied(self) -> set[str]:
        conn = self._connect()
        try:
            return {row[0] for row in conn.execute("SELECT filename FROM _migrations")}
        finally:
            conn.close()

    def pending(self) -> list[str]:
        done = self.applied()
        return [name for name in self.available() if name not in done]

    def run_migrations(self) -> list[str]:
        """Apply all pending migrations. Returns the filenames applied."""
        pending = self.pending()
        if not pending:
            logger.info("Database schema is up to date.")
            return []

        conn = self._connect()
        try:
            for filename in pending:
                logger.info("Applying migration: %s", filename)
                self._apply(conn, filename)
        finally:
            conn.close()

        logger.info("Applied %d migrations.", len(pending))
        return pending

    def up_script(self, filename: str) -> str:
        content = (self.migrations_dir / filename).read_text()
        return content.split(DOWN_MARKER, 1)[0]

    def _apply(self, conn: sqlite3.Connection, filename: str) -> None:
        quoted = filename.replace("'", "''")
        script = (
            "BEGIN;\n"
            f"{self.up_script(filename)}\n"
            f"INSERT INTO _migrations (filename) VALUES ('{quoted}');\n"
            "COMMIT;"
        )
        try:
            conn.executescript(script)
        except sqlite3.Error as e:
            if conn.in_transaction:
                conn.rollback()
            raise RuntimeError(f"Migration {filename} failed: {e}") from e
