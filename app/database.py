from sqlalchemy import event
from sqlalchemy import text
from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from app.config.settings import get_settings

DATABASE_URL = get_settings().database_url

engine_kwargs = {"echo": False}
if DATABASE_URL.startswith("sqlite"):
    engine_kwargs["connect_args"] = {"check_same_thread": False}

engine = create_engine(DATABASE_URL, **engine_kwargs)

if DATABASE_URL.startswith("sqlite"):
    @event.listens_for(engine, "connect")
    def _set_sqlite_pragmas(dbapi_connection, connection_record):  # noqa: ARG001
        # SQLite ignores ON DELETE CASCADE unless foreign keys are switched on
        # per connection.
        cursor = dbapi_connection.cursor()
        try:
            cursor.execute("PRAGMA foreign_keys=ON")
        finally:
            cursor.close()

SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
)


class Base(DeclarativeBase):
    pass


# Columns added after the first local schema; create_all() won't add them.
_SQLITE_COLUMN_BACKFILL: dict[str, dict[str, str]] = {
    "users": {
        "display_name": "TEXT",
        "home_city": "TEXT",
        "home_latitude": "REAL",
        "home_longitude": "REAL",
    },
    "wardrobe_items": {
        "subcategory": "TEXT",
        "rating_count": "INTEGER DEFAULT 0",
        "compliments_received": "INTEGER DEFAULT 0",
        "purchase_price": "REAL",
    },
    "user_preferences": {
        "enable_weekends": "BOOLEAN DEFAULT 1",
        "enable_quick_options": "BOOLEAN DEFAULT 1",
    },
}


def ensure_sqlite_schema(bind=None):
    """
    Lightweight SQLite migrations for local development.

    SQLAlchemy's `create_all()` won't add new columns to existing tables.
    This keeps an older local `ayna_mirror.db` in sync with model additions.
    """
    bind = bind or engine
    if not str(bind.url).startswith("sqlite"):
        return

    with bind.begin() as conn:
        for table, columns in _SQLITE_COLUMN_BACKFILL.items():
            rows = conn.execute(text(f"PRAGMA table_info({table})")).fetchall()
            if not rows:
                continue
            existing_cols = {row[1] for row in rows}  # row[1] = column name
            for name, ddl in columns.items():
                if name not in existing_cols:
                    conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {name} {ddl}"))


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
