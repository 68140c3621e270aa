"""SQLite database setup and operations for storymap."""

import logging
import sqlite3

from storymap.config import Config
from storymap.models import (
    ClientInsert,
    ClientRow,
    Journey,
    LocationInsert,
    LocationRow,
    MediaInsert,
    MediaRow,
    PageViewRow,
)

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS clients (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    slug TEXT NOT NULL UNIQUE,
    title TEXT NOT NULL,
    subtitle TEXT,
    bio TEXT,
    theme TEXT,
    background_music_url TEXT,
    journey_music_url TEXT,
    is_published INTEGER NOT NULL DEFAULT 0,
    deleted_at TEXT,
    created_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS locations (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    client_id INTEGER NOT NULL REFERENCES clients(id),
    title TEXT NOT NULL,
    location_name TEXT NOT NULL,
    latitude REAL NOT NULL,
    longitude REAL NOT NULL,
    description TEXT,
    date_from TEXT,
    date_to TEXT,
    sort_order INTEGER NOT NULL DEFAULT 0,
    icon_type TEXT,
    created_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS media (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    client_id INTEGER NOT NULL REFERENCES clients(id),
    location_id INTEGER NOT NULL REFERENCES locations(id),
    url TEXT NOT NULL,
    type TEXT NOT NULL DEFAULT 'image',
    created_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS page_views (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    client_id INTEGER NOT NULL REFERENCES clients(id),
    slug TEXT NOT NULL,
    session_key TEXT,
    created_at TEXT NOT NULL DEFAULT (datetime('now')),
    UNIQUE(client_id, session_key)
);

CREATE INDEX IF NOT EXISTS idx_locations_client_order ON locations(client_id, sort_order);
CREATE INDEX IF NOT EXISTS idx_media_location ON media(location_id);
CREATE INDEX IF NOT EXISTS idx_page_views_client ON page_views(client_id);
"""

_LOCATION_FIELDS = (
    "title", "location_name", "latitude", "longitude", "description",
    "date_from", "date_to", "sort_order", "icon_type",
)


class StoryMapDB:
    """SQLite database wrapper for storymap."""

    def __init__(self, config: Config) -> None:
        self.db_path = config.resolved_db_path
        self._conn: sqlite3.Connection | None = None

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise RuntimeError("Database not initialized. Call init_db() first.")
        return self._conn

    def init_db(self) -> None:
        """Create database and tables."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self.db_path))
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")
        self._conn.executescript(SCHEMA_SQL)
        logger.info("Database initialized at %s", self.db_path)

    def close(self) -> None:
        if self._conn:
            self._conn.close()
            self._conn = None

    # --- Client operations ---

    def upsert_client(self, client: ClientInsert) -> int:
        """Insert or update a client by slug. Returns client ID."""
        row = self.conn.execute(
            "SELECT id FROM clients WHERE slug = ?", (client.slug,)
        ).fetchone()
        values = (
            client.name, client.title, client.subtitle, client.bio, client.theme,
            client.background_music_url, client.journey_music_url,
            int(client.is_published),
        )
        if row:
            self.conn.execute(
                """UPDATE clients SET name = ?, title = ?, subtitle = ?, bio = ?, theme = ?,
                   background_music_url = ?, journey_music_url = ?, is_published = ?,
                   deleted_at = NULL
                   WHERE id = ?""",
                (*values, row["id"]),
            )
            self.conn.commit()
            return row["id"]

        cursor = self.conn.execute(
            """INSERT INTO clients
               (name, title, subtitle, bio, theme, background_music_url, journey_music_url,
                is_published, slug)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (*values, client.slug),
        )
        self.conn.commit()
        return cursor.lastrowid  # type: ignore[return-value]

    def get_client(self, client_id: int) -> ClientRow | None:
        row = self.conn.execute(
            "SELECT * FROM clients WHERE id = ?", (client_id,)
        ).fetchone()
        if row:
            return ClientRow(**dict(row))
        return None

    def get_client_by_slug(self, slug: str) -> ClientRow | None:
        row = self.conn.execute(
            "SELECT * FROM clients WHERE slug = ?", (slug,)
        ).fetchone()
        if row:
            return ClientRow(**dict(row))
        return None

    def list_clients(self, include_deleted: bool = False) -> list[ClientRow]:
        where = "" if include_deleted else "WHERE deleted_at IS NULL"
        rows = self.conn.execute(
            f"SELECT * FROM clients {where} ORDER BY created_at DESC, id DESC"
        ).fetchall()
        return [ClientRow(**dict(r)) for r in rows]

    def set_published(self, client_id: int, published: bool) -> None:
        self.conn.execute(
            "UPDATE clients SET is_published = ? WHERE id = ?",
            (int(published), client_id),
        )
        self.conn.commit()

    def soft_delete_client(self, client_id: int) -> None:
        """Hide a client from every public lookup without dropping its content."""
        self.conn.execute(
            "UPDATE clients SET deleted_at = datetime('now'), is_published = 0 WHERE id = ?",
            (client_id,),
        )
        self.conn.commit()

    # --- Location operations ---

    def add_location(self, location: LocationInsert) -> int:
        cursor = self.conn.execute(
            """INSERT INTO locations
               (client_id, title, location_name, latitude, longitude, description,
                date_from, date_to, sort_order, icon_type)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                location.client_id,
                location.title,
                location.location_name,
                location.latitude,
                location.longitude,
                location.description,
                location.date_from,
                location.date_to,
                location.sort_order,
                location.icon_type,
            ),
        )
        self.conn.commit()
        return cursor.lastrowid  # type: ignore[return-value]

    def update_location(self, location_id: int, **fields: object) -> None:
        unknown = set(fields) - set(_LOCATION_FIELDS)
        if unknown:
            raise ValueError(f"Unknown location fields: {', '.join(sorted(unknown))}")
        if not fields:
            return
        updates = [f"{name} = ?" for name in fields]
        self.conn.execute(
            f"UPDATE locations SET {', '.join(updates)} WHERE id = ?",
            [*fields.values(), location_id],
        )
        self.conn.commit()

    def delete_location(self, location_id: int) -> None:
        self.conn.execute("DELETE FROM media WHERE location_id = ?", (location_id,))
        self.conn.execute("DELETE FROM locations WHERE id = ?", (location_id,))
        self.conn.commit()

    def get_location(self, location_id: int) -> LocationRow | None:
        row = self.conn.execute(
            "SELECT * FROM locations WHERE id = ?", (location_id,)
        ).fetchone()
        if row:
            return LocationRow(**dict(row))
        return None

    def list_locations(self, client_id: int) -> list[LocationRow]:
        """Locations in playback order."""
        rows = self.conn.execute(
            "SELECT * FROM locations WHERE client_id = ? ORDER BY sort_order ASC, id ASC",
            (client_id,),
        ).fetchall()
        return [LocationRow(**dict(r)) for r in rows]

    def next_sort_order(self, client_id: int) -> int:
        row = self.conn.execute(
            "SELECT MAX(sort_order) as mx FROM locations WHERE client_id = ?",
            (client_id,),
        ).fetchone()
        return (row["mx"] or 0) + 1

    def clear_locations(self, client_id: int) -> int:
        """Delete every location and media item of a client. Returns locations removed."""
        self.conn.execute("DELETE FROM media WHERE client_id = ?", (client_id,))
        cursor = self.conn.execute(
            "DELETE FROM locations WHERE client_id = ?", (client_id,)
        )
        self.conn.commit()
        return cursor.rowcount

    # --- Media operations ---

    def add_media(self, media: MediaInsert) -> int:
        cursor = self.conn.execute(
            "INSERT INTO media (client_id, location_id, url, type) VALUES (?, ?, ?, ?)",
            (media.client_id, media.location_id, media.url, media.type.value),
        )
        self.conn.commit()
        return cursor.lastrowid  # type: ignore[return-value]

    def list_media(
        self,
        client_id: int | None = None,
        location_id: int | None = None,
    ) -> list[MediaRow]:
        clauses: list[str] = []
        params: list[int] = []
        if client_id is not None:
            clauses.append("client_id = ?")
            params.append(client_id)
        if location_id is not None:
            clauses.append("location_id = ?")
            params.append(location_id)

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = self.conn.execute(
            f"SELECT * FROM media {where} ORDER BY created_at, id", params
        ).fetchall()
        return [MediaRow(**dict(r)) for r in rows]

    def delete_media(self, media_id: int) -> None:
        self.conn.execute("DELETE FROM media WHERE id = ?", (media_id,))
        self.conn.commit()

    # --- Page views ---

    def record_page_view(
        self,
        client_id: int,
        slug: str,
        session_key: str | None = None,
    ) -> bool:
        """Count a view once per session key. Returns True if a new view was stored."""
        try:
            self.conn.execute(
                "INSERT INTO page_views (client_id, slug, session_key) VALUES (?, ?, ?)",
                (client_id, slug, session_key),
            )
        except sqlite3.IntegrityError:
            # Already counted for this session
            return False
        self.conn.commit()
        return True

    def count_page_views(self, client_id: int | None = None) -> int:
        if client_id is not None:
            row = self.conn.execute(
                "SELECT COUNT(*) as cnt FROM page_views WHERE client_id = ?",
                (client_id,),
            ).fetchone()
        else:
            row = self.conn.execute("SELECT COUNT(*) as cnt FROM page_views").fetchone()
        return row["cnt"] if row else 0

    def list_page_views(self, client_id: int, limit: int = 100) -> list[PageViewRow]:
        rows = self.conn.execute(
            "SELECT * FROM page_views WHERE client_id = ? ORDER BY created_at DESC LIMIT ?",
            (client_id, limit),
        ).fetchall()
        return [PageViewRow(**dict(r)) for r in rows]

    # --- Journey loading ---

    def load_journey(self, slug: str) -> Journey | None:
        """Load a published, non-deleted client with its ordered stops and media."""
        client = self.get_client_by_slug(slug)
        if client is None or not client.is_published or client.deleted_at:
            logger.debug("No published journey for slug %s", slug)
            return None
        locations = self.list_locations(client.id)
        media = self.list_media(client_id=client.id)
        logger.info(
            "Loaded journey %s: %d locations, %d media", slug, len(locations), len(media),
        )
        return Journey(client=client, locations=locations, media=media)
