#!/usr/bin/env python3
"""StoryMap MCP Server — open journey maps and drive their playback."""

import json
import logging
import sys
import uuid
from typing import Any

from mcp.server.fastmcp import FastMCP

from storymap.cinema.clock import VirtualClock
from storymap.cinema.engine import CueLog
from storymap.cinema.rehearsal import apply_action, new_session
from storymap.cinema.session import PlaybackSession
from storymap.config import Config, load_config
from storymap.db import StoryMapDB

mcp = FastMCP("storymap")
logger = logging.getLogger(__name__)

# Redirect all logging to stderr so stdout stays clean for MCP stdio transport
logging.basicConfig(
    stream=sys.stderr,
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

_db: StoryMapDB | None = None
_config: Config | None = None
_sessions: dict[str, "LiveSession"] = {}


class LiveSession:
    """A playback session on its own virtual clock."""

    def __init__(self, session: PlaybackSession, clock: VirtualClock, cues: CueLog) -> None:
        self.session = session
        self.clock = clock
        self.cues = cues


def _get_config() -> Config:
    global _config
    if _config is None:
        _config = load_config()
    return _config


def _get_db() -> StoryMapDB:
    global _db
    if _db is None:
        _db = StoryMapDB(_get_config())
        _db.init_db()
    return _db


def _get_session(session_id: str) -> LiveSession:
    live = _sessions.get(session_id)
    if live is None:
        raise ValueError(f"Session not found: {session_id}")
    # most recently used last
    _sessions[session_id] = _sessions.pop(session_id)
    return live


def _evict_sessions(limit: int) -> None:
    while len(_sessions) > max(limit, 0):
        session_id = next(iter(_sessions))
        _sessions.pop(session_id).session.close()
        logger.info("Evicted idle session %s", session_id)


def _payload(session_id: str, live: LiveSession, mark: int, **extra: Any) -> str:
    return json.dumps({
        "session_id": session_id,
        "now_ms": live.clock.now_ms,
        **extra,
        "view": live.session.view().model_dump(mode="json"),
        "cues": [c.to_dict() for c in live.cues.since(mark)],
    }, default=str)


def _act(session_id: str, action: str, arg: Any = None) -> str:
    try:
        live = _get_session(session_id)
        mark = len(live.cues)
        applied = apply_action(live.session, action, arg)
        return _payload(session_id, live, mark, applied=applied)
    except (ValueError, FileNotFoundError) as e:
        return json.dumps({"error": str(e)})


@mcp.tool()
def list_journeys() -> str:
    """List published journeys with stop and view counts."""
    db = _get_db()
    result = []
    for c in db.list_clients():
        if not c.is_published:
            continue
        result.append({
            "slug": c.slug,
            "title": c.title,
            "subtitle": c.display_subtitle,
            "stops": len(db.list_locations(c.id)),
            "views": db.count_page_views(c.id),
        })
    return json.dumps(result, default=str)


@mcp.tool()
def open_session(slug: str) -> str:
    """Open a journey map. The map loads immediately; the intro's enter button appears after 3.5s of session time."""
    try:
        db = _get_db()
        journey = db.load_journey(slug)
        if journey is None:
            raise ValueError(f"Journey not found: {slug}")
        session, clock, cues, _camera = new_session(journey, _get_config())
        session_id = uuid.uuid4().hex[:12]
        _evict_sessions(_get_config().max_sessions - 1)
        _sessions[session_id] = LiveSession(session, clock, cues)
        db.record_page_view(journey.client.id, slug, session_key=session_id)
        for event in ("styledataloading", "styledata", "load"):
            session.map_event(event)
        logger.info("Opened session %s for %s", session_id, slug)
        return _payload(session_id, _sessions[session_id], 0)
    except (ValueError, FileNotFoundError) as e:
        return json.dumps({"error": str(e)})


@mcp.tool()
def enter(session_id: str) -> str:
    """Dismiss the intro and start the establishing reveal."""
    return _act(session_id, "enter")


@mcp.tool()
def start_journey(session_id: str) -> str:
    """Start the journey from the first stop (overview mode only)."""
    return _act(session_id, "start_journey")


@mcp.tool()
def next_stop(session_id: str) -> str:
    return _act(session_id, "next")


@mcp.tool()
def prev_stop(session_id: str) -> str:
    return _act(session_id, "prev")


@mcp.tool()
def select_stop(session_id: str, index: int) -> str:
    """Jump to a journey stop by its 0-based position."""
    return _act(session_id, "select_stop", index)


@mcp.tool()
def select_location(session_id: str, location_id: int) -> str:
    """Tap a marker: fly close in overview, or jump to that stop during a journey."""
    return _act(session_id, "select_location", location_id)


@mcp.tool()
def stop_journey(session_id: str) -> str:
    """End the journey and fly back to the overview framing."""
    return _act(session_id, "stop_journey")


@mcp.tool()
def toggle_panel(session_id: str) -> str:
    return _act(session_id, "toggle_panel")


@mcp.tool()
def toggle_mute(session_id: str) -> str:
    return _act(session_id, "toggle_mute")


@mcp.tool()
def reset_orientation(session_id: str) -> str:
    """Ease the camera back to north-up."""
    return _act(session_id, "reset_orientation")


@mcp.tool()
def advance(session_id: str, ms: float) -> str:
    """Let session time pass, running every timer that falls due."""
    try:
        live = _get_session(session_id)
        mark = len(live.cues)
        ran = live.clock.advance(ms)
        return _payload(session_id, live, mark, timers_run=ran)
    except (ValueError, FileNotFoundError) as e:
        return json.dumps({"error": str(e)})


@mcp.tool()
def get_state(session_id: str) -> str:
    """Current view of a session, with pending timer names."""
    try:
        live = _get_session(session_id)
        return _payload(
            session_id, live, len(live.cues),
            pending_timers=live.session.pending_timers,
        )
    except (ValueError, FileNotFoundError) as e:
        return json.dumps({"error": str(e)})


@mcp.tool()
def close_session(session_id: str) -> str:
    """Leave the map: cancel all timers, silence audio and forget the session."""
    try:
        live = _get_session(session_id)
        mark = len(live.cues)
        live.session.close()
        del _sessions[session_id]
        return _payload(session_id, live, mark, closed=True)
    except (ValueError, FileNotFoundError) as e:
        return json.dumps({"error": str(e)})


if __name__ == "__main__":
    mcp.run()
