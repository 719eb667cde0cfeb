import argparse
import json
import logging
import sys
from datetime import datetime
from pathlib import Path


from server import CONFIG
from storage import StorageError, make_storage
from versions import UnsupportedVersionError, make_envelope, unpack_envelope
from tree_store import collect_file_paths, nested_to_tree


def export_backup(storage, output: Path | None = None) -> Path:
    if output is None:
        stamp = datetime.now().strftime("%Y-%m-%d")
        output = Path(f"notepad-md-backup-{stamp}.json")
    envelope = make_envelope(storage.export_data(), storage.get_version())
    output.write_text(json.dumps(envelope, indent=2), encoding="utf-8")
    return output


def count_notes(content: dict) -> int:
    return len(collect_file_paths(nested_to_tree(content, lambda path, body: None)))


def import_backup(storage, source: Path, assume_yes: bool = False) -> int:
    payload = json.loads(source.read_text(encoding="utf-8"))
    if not isinstance(payload, dict):
        raise ValueError("Backup must be a JSON object")
    content, version = unpack_envelope(payload)

    existing = storage.note_count()
    incoming = count_notes(content)
    print(f"  backup version: {version or 'untagged'}")
    print(f"  {incoming} notes in backup, {existing} notes currently stored")
    if existing and not assume_yes:
        answer = input(f"Overwrite {existing} existing notes? [y/N] ")
        if answer.strip().lower() not in ("y", "yes"):
            print("Aborted.")
            return 0
    storage.import_data(content, version)
    return incoming


def clear_notes(storage, assume_yes: bool = False) -> int:
    existing = storage.note_count()
    if existing and not assume_yes:
        answer = input(f"Delete all {existing} stored notes? [y/N] ")
        if answer.strip().lower() not in ("y", "yes"):
            print("Aborted.")
            return 0
    storage.clear()
    return existing


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Export, import or clear notepad.md notes")
    sub = parser.add_subparsers(dest="command", required=True)

    p_export = sub.add_parser("export", help="write all notes to a JSON backup")
    p_export.add_argument("-o", "--output", type=Path, default=None)

    p_import = sub.add_parser("import", help="replace stored notes with a JSON backup")
    p_import.add_argument("file", type=Path)
    p_import.add_argument("-y", "--yes", action="store_true", help="do not ask before overwriting")

    p_clear = sub.add_parser("clear", help="delete every stored note")
    p_clear.add_argument("-y", "--yes", action="store_true", help="do not ask before deleting")

    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    storage = make_storage(CONFIG)

    try:
        if args.command == "export":
            print("Exporting notes...")
            out = export_backup(storage, args.output)
            print(f"\nDone! Backup written to: {out}")
        elif args.command == "clear":
            removed = clear_notes(storage, args.yes)
            print(f"\nDone! {removed} notes deleted")
        else:
            print(f"Importing {args.file}...")
            imported = import_backup(storage, args.file, args.yes)
            print(f"\nDone! {imported} notes imported")
    except (StorageError, UnsupportedVersionError, ValueError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
