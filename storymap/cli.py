"""CLI entry point for storymap."""

import argparse
import logging
from pathlib import Path

from storymap.cinema.rehearsal import rehearse
from storymap.config import load_config
from storymap.db import StoryMapDB
from storymap.journeys import dump_journey, export_journey, import_journey


def main() -> None:
    parser = argparse.ArgumentParser(description="StoryMap journeys")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("init-db", help="Create the database and tables")

    # import command
    import_parser = sub.add_parser("import", help="Import a journey YAML file")
    import_parser.add_argument("file", help="Path to the journey file")

    # export command
    export_parser = sub.add_parser("export", help="Print a journey as YAML")
    export_parser.add_argument("slug")
    export_parser.add_argument("-o", "--output", default=None, help="Write to a file instead of stdout")

    sub.add_parser("list", help="List journeys")

    # publish command
    publish_parser = sub.add_parser("publish", help="Publish (or unpublish) a journey")
    publish_parser.add_argument("slug")
    publish_parser.add_argument("--unpublish", action="store_true", help="Take the journey offline")

    # delete command
    delete_parser = sub.add_parser("delete", help="Soft-delete a journey")
    delete_parser.add_argument("slug")

    # rehearse command
    rehearse_parser = sub.add_parser("rehearse", help="Play a journey on a virtual clock")
    rehearse_parser.add_argument("slug")
    rehearse_parser.add_argument(
        "--preview", type=str, nargs="?", const="", default=None,
        help="Write an HTML preview of the rehearsal (default: <preview_dir>/<slug>.html)",
    )
    rehearse_parser.add_argument(
        "--settle", action="store_true",
        help="Start each orbit when the camera settles instead of on a timer",
    )

    sub.add_parser("stats", help="Show journey and page view counts")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = load_config()
    db = StoryMapDB(config)
    db.init_db()

    try:
        if args.command == "init-db":
            print(f"Database ready at {db.db_path}")

        elif args.command == "import":
            result = import_journey(Path(args.file), db)
            print(result)

        elif args.command == "export":
            try:
                text = dump_journey(export_journey(args.slug, db))
            except ValueError as e:
                print(e)
                return
            if args.output:
                Path(args.output).write_text(text)
                print(f"Output: {args.output}")
            else:
                print(text, end="")

        elif args.command == "list":
            clients = db.list_clients()
            if not clients:
                print("No journeys yet.")
                return
            for c in clients:
                status = "published" if c.is_published else "draft"
                stops = len(db.list_locations(c.id))
                print(f"  {c.slug}: {c.title} ({stops} stops, {status})")

        elif args.command == "publish":
            client = db.get_client_by_slug(args.slug)
            if not client or client.deleted_at:
                print(f"Journey not found: {args.slug}")
                return
            db.set_published(client.id, not args.unpublish)
            print(f"{args.slug}: {'unpublished' if args.unpublish else 'published'}")

        elif args.command == "delete":
            client = db.get_client_by_slug(args.slug)
            if not client or client.deleted_at:
                print(f"Journey not found: {args.slug}")
                return
            db.soft_delete_client(client.id)
            print(f"{args.slug}: deleted")

        elif args.command == "rehearse":
            journey = db.load_journey(args.slug)
            if journey is None:
                print(f"No published journey for {args.slug}. Run 'publish' first.")
                return
            if args.settle:
                config.cinema.orbit_trigger = "settle"
            result = rehearse(journey, config)
            print(result)
            for cue in result.flights:
                print(f"  {cue}")
            if result.camera_overlaps:
                print(f"\nWarning: {result.camera_overlaps} overlapping camera flights")
            if args.preview is not None:
                from storymap.output.preview import render_preview
                output = args.preview or config.resolved_preview_dir / f"{args.slug}.html"
                path = render_preview(result, journey, output)
                print(f"Output: {path}")

        elif args.command == "stats":
            clients = db.list_clients()
            if not clients:
                print("No journeys yet.")
                return
            for c in clients:
                locations = db.list_locations(c.id)
                media = db.list_media(client_id=c.id)
                print(
                    f"  {c.slug}: {len(locations)} locations, {len(media)} media, "
                    f"{db.count_page_views(c.id)} views"
                )
            print(f"\nTotal: {len(clients)} journeys, {db.count_page_views()} views")

        else:
            parser.print_help()
    finally:
        db.close()


if __name__ == "__main__":
    main()
