"""Shared test fixtures for storymap tests."""

import pytest

from storymap.cinema.clock import VirtualClock
from storymap.cinema.engine import CueLog, RecordingAudio, RecordingCamera
from storymap.config import Config
from storymap.db import StoryMapDB
from storymap.journeys import import_journey_data
from storymap.models import ClientRow, Journey, JourneyFile, LocationRow, MediaRow

STOPS = [
    ("Born in Lisbon", "Lisbon Portugal", 38.72, -9.14),
    ("University years", "Coimbra", 40.21, -8.43),
    ("First studio", "Barcelona", 41.39, 2.17),
    ("Residency", "Marseille", 43.30, 5.37),
    ("The long winter", "Geneva", 46.20, 6.14),
    ("Home again", "Porto", 41.15, -8.61),
]


def make_journey(
    stops: int = 6,
    ambient: str | None = "https://cdn.example.com/ambient.mp3",
    journey_track: str | None = "https://cdn.example.com/journey.mp3",
) -> Journey:
    """An in-memory journey with the first ``stops`` sample locations."""
    client = ClientRow(
        id=1,
        name="Ana Ferreira",
        slug="ana",
        title="Ana's Journey",
        subtitle="A life in six places",
        background_music_url=ambient,
        journey_music_url=journey_track,
        is_published=True,
        created_at="2026-01-01 10:00:00",
    )
    locations = [
        LocationRow(
            id=10 + i,
            client_id=1,
            title=title,
            location_name=name,
            latitude=lat,
            longitude=lng,
            date_from=f"{1990 + i * 5}",
            sort_order=i + 1,
            created_at="2026-01-01 10:00:00",
        )
        for i, (title, name, lat, lng) in enumerate(STOPS[:stops])
    ]
    media = [
        MediaRow(
            id=100 + i,
            client_id=1,
            location_id=loc.id,
            url=f"https://cdn.example.com/{loc.id}.jpg",
            type="image",
            created_at="2026-01-01 10:00:00",
        )
        for i, loc in enumerate(locations[:2])
    ]
    return Journey(client=client, locations=locations, media=media)


def journey_file(slug: str = "ana", published: bool = True, stops: int = 3) -> JourneyFile:
    return JourneyFile(**{
        "client": {
            "name": "Ana Ferreira",
            "slug": slug,
            "title": "Ana's Journey",
            "background_music_url": "https://cdn.example.com/ambient.mp3",
            "is_published": published,
        },
        "locations": [
            {
                "title": title,
                "location_name": name,
                "latitude": lat,
                "longitude": lng,
                "media": [{"url": f"https://cdn.example.com/{i}.jpg"}] if i == 0 else [],
            }
            for i, (title, name, lat, lng) in enumerate(STOPS[:stops])
        ],
    })


@pytest.fixture()
def config(tmp_path):
    return Config(db_path=str(tmp_path / "test.db"), preview_dir=str(tmp_path / "previews"))


@pytest.fixture()
def tmp_db(config):
    """Create a StoryMapDB backed by a temp file."""
    db = StoryMapDB(config)
    db.init_db()
    yield db
    db.close()


@pytest.fixture()
def populated_db(tmp_db):
    """DB with a published 3-stop journey (ana) and an unpublished draft (bo)."""
    import_journey_data(journey_file("ana", published=True), tmp_db)
    import_journey_data(journey_file("bo", published=False, stops=2), tmp_db)
    return tmp_db


@pytest.fixture()
def clock():
    return VirtualClock()


@pytest.fixture()
def cues(clock):
    return CueLog(clock)


@pytest.fixture()
def camera(clock, cues):
    return RecordingCamera(clock, cues)


@pytest.fixture()
def ambient(cues):
    return RecordingAudio("ambient", "https://cdn.example.com/ambient.mp3", cues)


@pytest.fixture()
def journey_audio(cues):
    return RecordingAudio("journey", "https://cdn.example.com/journey.mp3", cues)


@pytest.fixture()
def journey():
    return make_journey()
