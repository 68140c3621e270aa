"""Pydantic models for storymap."""

from enum import Enum

from pydantic import BaseModel, Field


class MediaType(str, Enum):
    IMAGE = "image"
    VIDEO = "video"


# --- Row models (what comes out of the DB) ---


class ClientRow(BaseModel):
    """A journey owner: one client, one published map."""
    id: int
    name: str
    slug: str
    title: str
    subtitle: str | None = None
    bio: str | None = None
    theme: str | None = None
    background_music_url: str | None = None
    journey_music_url: str | None = None
    is_published: bool = False
    deleted_at: str | None = None
    created_at: str

    @property
    def display_subtitle(self) -> str:
        return self.subtitle or self.name


class LocationRow(BaseModel):
    id: int
    client_id: int
    title: str
    location_name: str
    latitude: float
    longitude: float
    description: str | None = None
    date_from: str | None = None
    date_to: str | None = None
    sort_order: int = 0
    icon_type: str | None = None
    created_at: str

    @property
    def lng_lat(self) -> tuple[float, float]:
        return (self.longitude, self.latitude)


class MediaRow(BaseModel):
    id: int
    client_id: int
    location_id: int
    url: str
    type: MediaType
    created_at: str


class PageViewRow(BaseModel):
    id: int
    client_id: int
    slug: str
    session_key: str | None = None
    created_at: str


# --- Insert models (what goes into the DB) ---


class ClientInsert(BaseModel):
    """Client data ready to insert or update by slug."""
    name: str
    slug: str
    title: str
    subtitle: str | None = None
    bio: str | None = None
    theme: str | None = None
    background_music_url: str | None = None
    journey_music_url: str | None = None
    is_published: bool = False


class LocationInsert(BaseModel):
    client_id: int
    title: str
    location_name: str
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    description: str | None = None
    date_from: str | None = None
    date_to: str | None = None
    sort_order: int = 0
    icon_type: str | None = None


class MediaInsert(BaseModel):
    client_id: int
    location_id: int
    url: str
    type: MediaType = MediaType.IMAGE


# --- Aggregates ---


class Journey(BaseModel):
    """Everything a map page needs: the client, its ordered stops and their media."""
    client: ClientRow
    locations: list[LocationRow] = Field(default_factory=list)
    media: list[MediaRow] = Field(default_factory=list)

    def media_for(self, location_id: int) -> list[MediaRow]:
        return [m for m in self.media if m.location_id == location_id]

    def index_of(self, location_id: int) -> int:
        """Position of a location in playback order, or -1."""
        for i, loc in enumerate(self.locations):
            if loc.id == location_id:
                return i
        return -1


# --- Journey definition files ---


class MediaSpec(BaseModel):
    url: str
    type: MediaType = MediaType.IMAGE


class LocationSpec(BaseModel):
    title: str
    location_name: str
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    description: str | None = None
    date_from: str | None = None
    date_to: str | None = None
    sort_order: int | None = None
    icon_type: str | None = None
    media: list[MediaSpec] = Field(default_factory=list)


class JourneyFile(BaseModel):
    """A journey definition as written in a YAML file."""
    client: ClientInsert
    locations: list[LocationSpec] = Field(default_factory=list)
