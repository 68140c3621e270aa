"""Generate a self-contained HTML preview of a journey rehearsal."""

import html
import json
from datetime import datetime
from pathlib import Path

from storymap.cinema.rehearsal import RehearsalResult
from storymap.cinema.route import route_coordinates
from storymap.models import Journey


def render_preview(result: RehearsalResult, journey: Journey, output_path: str | Path) -> str:
    """Write the preview page and return its path."""
    client = journey.client

    stops = []
    for i, loc in enumerate(journey.locations):
        dates = " — ".join(d for d in (loc.date_from, loc.date_to) if d)
        stops.append({
            "index": i + 1,
            "title": loc.title,
            "name": loc.location_name,
            "dates": dates,
            "lat": loc.latitude,
            "lng": loc.longitude,
            "media": len(journey.media_for(loc.id)),
        })

    cues = [c.to_dict() for c in result.cues]
    route = route_coordinates(journey.locations)

    html_text = _render_html(
        title=client.title,
        subtitle=client.display_subtitle,
        stops=stops,
        cues=cues,
        route_points=len(route),
        duration_s=result.duration_ms / 1000,
        flights=len(result.flights),
        has_ambient=bool(client.background_music_url),
        has_journey_track=bool(client.journey_music_url),
        generated_at=datetime.now().strftime("%Y-%m-%d %H:%M"),
    )

    path = Path(output_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(html_text)
    return str(path)


def _render_html(
    *,
    title: str,
    subtitle: str,
    stops: list,
    cues: list,
    route_points: int,
    duration_s: float,
    flights: int,
    has_ambient: bool,
    has_journey_track: bool,
    generated_at: str,
) -> str:
    esc = html.escape
    channel_colors = {
        "camera": "#58a6ff",
        "ui": "#bc8cff",
        "fade": "#3fb950",
        "audio": "#f0883e",
    }

    if stops:
        timeline_html = "".join(f'''<div class="stop">
      <div class="stop-dot"></div>
      <div class="stop-index">{s["index"]:02d}</div>
      <div class="stop-name">{esc(s["name"])}</div>
      <div class="stop-title">{esc(s["title"])}</div>
      <div class="stop-dates">{esc(s["dates"])}</div>
    </div>''' for s in stops)
    else:
        timeline_html = '<div class="empty">No locations yet.</div>'

    cue_rows = "".join(f'''<tr class="cue-{esc(c["channel"].split(":")[0])}">
      <td class="cue-ts">{c["at_ms"] / 1000:.2f}s</td>
      <td class="cue-channel">{esc(c["channel"])}</td>
      <td class="cue-action">{esc(c["action"])}</td>
      <td class="cue-detail">{esc(_detail(c))}</td>
    </tr>''' for c in cues)

    audio_label = ", ".join(
        name for name, present in (("ambient", has_ambient), ("journey", has_journey_track)) if present
    ) or "none"

    return f"""<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="UTF-8">
<meta name="viewport" content="width=device-width, initial-scale=1.0">
<title>{esc(title)} | Journey Preview</title>
<style>
  * {{ margin: 0; padding: 0; box-sizing: border-box; }}
  body {{ font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, monospace;
         background: #0a0a0f; color: #c9d1d9; padding: 20px; }}
  h1 {{ color: #f5c542; margin-bottom: 4px; font-family: Georgia, serif; font-style: italic; }}
  .subtitle {{ color: #8b949e; margin-bottom: 24px; font-size: 14px; }}
  .stats {{ display: flex; gap: 24px; margin-bottom: 24px; flex-wrap: wrap; }}
  .stat {{ background: #161b22; border: 1px solid #30363d; border-radius: 6px; padding: 16px 20px; }}
  .stat-value {{ font-size: 28px; font-weight: 700; color: #f5c542; }}
  .stat-label {{ font-size: 12px; color: #8b949e; margin-top: 4px; }}
  .section {{ margin-bottom: 32px; }}
  .section-title {{ font-size: 16px; font-weight: 600; margin-bottom: 12px;
                    border-bottom: 1px solid #21262d; padding-bottom: 8px; }}
  .timeline {{ display: flex; overflow-x: auto; gap: 0; padding: 8px 0; }}
  .stop {{ flex: 1; min-width: 120px; text-align: center; position: relative; padding: 0 8px; }}
  .stop-dot {{ width: 10px; height: 10px; border-radius: 50%; background: #f5c542; margin: 0 auto 8px; }}
  .stop-index {{ font-size: 11px; color: #8b949e; }}
  .stop-name {{ font-weight: 600; font-size: 14px; }}
  .stop-title {{ font-size: 12px; color: #c9d1d9; }}
  .stop-dates {{ font-size: 11px; color: #8b949e; }}
  .empty {{ color: #8b949e; font-style: italic; }}
  table {{ width: 100%; border-collapse: collapse; font-size: 13px; }}
  td {{ padding: 4px 8px; border-bottom: 1px solid #21262d; vertical-align: top; }}
  .cue-ts {{ color: #8b949e; white-space: nowrap; }}
  .cue-action {{ font-weight: 600; white-space: nowrap; }}
  .cue-detail {{ color: #8b949e; }}
  {"".join(f".cue-{name} .cue-channel {{ color: {color}; }} " for name, color in channel_colors.items())}
</style>
</head>
<body>

<h1>{esc(title)}</h1>
<p class="subtitle">{esc(subtitle)} &middot; Generated {generated_at}</p>

<div class="stats">
  <div class="stat"><div class="stat-value">{len(stops)}</div><div class="stat-label">Stops</div></div>
  <div class="stat"><div class="stat-value">{flights}</div><div class="stat-label">Camera Flights</div></div>
  <div class="stat"><div class="stat-value">{duration_s:.0f}s</div><div class="stat-label">Rehearsal Length</div></div>
  <div class="stat"><div class="stat-value">{route_points}</div><div class="stat-label">Route Points</div></div>
  <div class="stat"><div class="stat-value">{esc(audio_label)}</div><div class="stat-label">Audio Channels</div></div>
</div>

<div class="section">
  <div class="section-title">Timeline</div>
  <div class="timeline">
    {timeline_html}
  </div>
</div>

<div class="section">
  <div class="section-title">Cue Sheet</div>
  <table>
    {cue_rows}
  </table>
</div>

<script>
const stops = {_script_json(stops)};
const cues = {_script_json(cues)};
</script>

</body>
</html>"""


def _detail(cue: dict) -> str:
    skip = {"at_ms", "channel", "action"}
    parts = []
    for key, value in cue.items():
        if key in skip:
            continue
        if isinstance(value, float):
            value = f"{value:.2f}"
        elif isinstance(value, (list, tuple)):
            value = "(" + ", ".join(f"{v:.4f}" if isinstance(v, float) else str(v) for v in value) + ")"
        parts.append(f"{key}={value}")
    return " ".join(parts)


def _script_json(data: object) -> str:
    return json.dumps(data).replace("</", "<\\/")
