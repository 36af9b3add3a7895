import glob
import logging
import os
import sqlite3
import sys

MIGRATIONS_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "migrations")

logger = logging.getLogger("migrate")


def sqlite_path_from_url(url: str) -> str:
    if not url.startswith("sqlite:///"):
        raise SystemExit(f"Migrations only support sqlite URLs, got {url!r}")
    return url[len("sqlite:///"):]


def apply_migrations(db_path: str, migrations_dir: str = MIGRATIONS_DIR) -> list[str]:
    """Apply pending NNN_*.sql files in order. Returns applied filenames."""
    logger.info(f"Using DB: {db_path}")
    directory = os.path.dirname(db_path)
    if directory:
        os.makedirs(directory, exist_ok=True)

    conn = sqlite3.connect(db_path)
    applied = []
    try:
        cur = conn.cursor()

        # Version table
        cur.execute("""
            CREATE TABLE IF NOT EXISTS schema_migrations (
                version INTEGER PRIMARY KEY,
                applied_at TEXT DEFAULT CURRENT_TIMESTAMP
            );
        """)

        cur.execute("SELECT COALESCE(MAX(version), 0) FROM schema_migrations;")
        current_version = cur.fetchone()[0]
        logger.info(f"Current schema version: {current_version}")

        for path in sorted(glob.glob(os.path.join(migrations_dir, "*.sql"))):
            filename = os.path.basename(path)
            version = int(filename.split("_")[0])
            if version <= current_version:
                continue

            logger.info(f"Applying migration {filename}...")
            with open(path, "r", encoding="utf-8") as f:
                sql = f.read()

            cur.executescript(sql)
            cur.execute("INSERT INTO schema_migrations(version) VALUES (?)", (version,))
            conn.commit()
            applied.append(filename)
            logger.info(f"✔ Applied {filename}")
    finally:
        conn.close()

    logger.info("All migrations applied.")
    return applied


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(message)s")
    if len(sys.argv) > 1:
        target = sys.argv[1]
    else:
        from virtual_line.config import settings

        target = sqlite_path_from_url(settings.resolved_database_url)
    apply_migrations(target)
