"""Load journey definition files into the store and export them back."""

import logging
from pathlib import Path
from typing import Any

import yaml

from storymap.db import StoryMapDB
from storymap.models import JourneyFile, LocationInsert, MediaInsert

logger = logging.getLogger(__name__)


class ImportResult:
    """Summary of a journey import."""

    def __init__(self, slug: str) -> None:
        self.slug = slug
        self.client_id: int | None = None
        self.created = False
        self.locations_removed = 0
        self.locations_added = 0
        self.media_added = 0

    def __repr__(self) -> str:
        action = "created" if self.created else "updated"
        parts = [
            f"ImportResult({self.slug} {action}: ",
            f"{self.locations_added} locations, {self.media_added} media",
        ]
        if self.locations_removed:
            parts.append(f", replaced {self.locations_removed}")
        parts.append(")")
        return "".join(parts)


def parse_journey_file(path: Path) -> JourneyFile:
    """Read and validate a journey YAML file."""
    if not path.exists():
        raise FileNotFoundError(f"Journey file not found: {path}")
    raw: dict[str, Any] = yaml.safe_load(path.read_text()) or {}
    return JourneyFile(**raw)


def import_journey(path: Path, db: StoryMapDB) -> ImportResult:
    """Upsert a journey file. Existing locations and media are replaced."""
    data = parse_journey_file(path)
    return import_journey_data(data, db)


def import_journey_data(data: JourneyFile, db: StoryMapDB) -> ImportResult:
    result = ImportResult(data.client.slug)
    result.created = db.get_client_by_slug(data.client.slug) is None

    client_id = db.upsert_client(data.client)
    result.client_id = client_id
    if not result.created:
        result.locations_removed = db.clear_locations(client_id)

    for position, loc in enumerate(data.locations):
        location_id = db.add_location(LocationInsert(
            client_id=client_id,
            title=loc.title,
            location_name=loc.location_name,
            latitude=loc.latitude,
            longitude=loc.longitude,
            description=loc.description,
            date_from=loc.date_from,
            date_to=loc.date_to,
            sort_order=loc.sort_order if loc.sort_order is not None else position + 1,
            icon_type=loc.icon_type,
        ))
        result.locations_added += 1
        for item in loc.media:
            db.add_media(MediaInsert(
                client_id=client_id,
                location_id=location_id,
                url=item.url,
                type=item.type,
            ))
            result.media_added += 1

    logger.info("Import complete: %s", result)
    return result


def export_journey(slug: str, db: StoryMapDB) -> dict[str, Any]:
    """Export a client (published or not) in journey-file form."""
    client = db.get_client_by_slug(slug)
    if client is None or client.deleted_at:
        raise ValueError(f"Journey not found: {slug}")

    locations: list[dict[str, Any]] = []
    for loc in db.list_locations(client.id):
        media = db.list_media(location_id=loc.id)
        locations.append({
            "title": loc.title,
            "location_name": loc.location_name,
            "latitude": loc.latitude,
            "longitude": loc.longitude,
            "description": loc.description,
            "date_from": loc.date_from,
            "date_to": loc.date_to,
            "sort_order": loc.sort_order,
            "icon_type": loc.icon_type,
            "media": [{"url": m.url, "type": m.type.value} for m in media],
        })

    return {
        "client": {
            "name": client.name,
            "slug": client.slug,
            "title": client.title,
            "subtitle": client.subtitle,
            "bio": client.bio,
            "theme": client.theme,
            "background_music_url": client.background_music_url,
            "journey_music_url": client.journey_music_url,
            "is_published": client.is_published,
        },
        "locations": locations,
    }


def dump_journey(data: dict[str, Any]) -> str:
    return yaml.safe_dump(data, sort_keys=False, allow_unicode=True)
