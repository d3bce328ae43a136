"""
Storage for scraped release data.
A flat JSON array file is the single source of truth; every write rewrites the
whole file atomically. Single writer only - no locking.
"""

import json
from pathlib import Path
from typing import Iterable, List, Optional, Set

from models import ItemRecord, MalformedRecord
from utils import is_today, write_json_atomic


def max_id(entries: list) -> int:
    """Highest integer id among raw entries, 0 when there is none."""
    highest = 0
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        try:
            highest = max(highest, int(entry.get('id') or 0))
        except (TypeError, ValueError):
            continue
    return highest


class JsonArrayFile:
    """Pretty-printed JSON array on disk."""

    def __init__(self, path: str):
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.exists()

    def load_raw(self, create_if_missing: bool = True) -> list:
        """
        Load the raw array.

        Returns:
            List of entries, [] if the file is missing or unreadable
        """
        if not self.path.exists():
            if create_if_missing:
                print(f"⚠️  {self.path} does not exist, creating empty file...")
                try:
                    write_json_atomic(self.path, [])
                except OSError as e:
                    print(f"Error creating {self.path}: {e}")
            return []

        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            print(f"⚠️  Failed to load {self.path}: {e}")
            return []

        if not isinstance(data, list):
            print(f"⚠️  {self.path} does not hold a JSON array, ignoring contents")
            return []
        return data

    def write(self, entries: list) -> bool:
        """Rewrite the whole array. Returns True on success."""
        try:
            write_json_atomic(self.path, entries)
            return True
        except OSError as e:
            print(f"⚠️  Save {self.path} failed: {e}")
            return False

    def extend_unique(self, new_entries: List[dict], key: str = 'link') -> int:
        """
        Append entries whose key value isn't in the file yet. Entries get the
        next free id when they have none.

        Returns:
            Number of entries appended
        """
        entries = self.load_raw()
        seen = {e.get(key) for e in entries if isinstance(e, dict)}
        next_id = max_id(entries) + 1

        added = 0
        for entry in new_entries:
            if entry.get(key) in seen:
                continue
            seen.add(entry.get(key))
            if 'id' not in entry:
                entry = {'id': next_id, **entry}
                next_id += 1
            entries.append(entry)
            added += 1

        if added and not self.write(entries):
            return 0
        return added


class GameStorage:
    """Handles storage of scraped release records."""

    def __init__(self, path: str = "games.json"):
        """Initialize storage with the JSON file path."""
        self.file = JsonArrayFile(path)
        self.path = self.file.path
        self.quarantine_path = self.path.with_name(f"{self.path.stem}.quarantine{self.path.suffix}")
        self.quarantined: List = []

    def load(self) -> List[ItemRecord]:
        """
        Load and validate all records.

        Malformed entries are kept out of the result and written to the
        quarantine file next to the store.
        """
        raw = self.file.load_raw()
        records = []
        quarantined = []

        for entry in raw:
            try:
                records.append(ItemRecord.from_dict(entry))
            except MalformedRecord as e:
                quarantined.append(entry)
                print(f"  Quarantined malformed entry: {e}")

        self.quarantined = quarantined
        if quarantined:
            print(f"⚠️  {len(quarantined)} malformed entries moved to {self.quarantine_path}")
            try:
                write_json_atomic(self.quarantine_path, quarantined)
            except OSError as e:
                print(f"⚠️  Failed to write quarantine file: {e}")

        print(f"Loaded {len(records)} games from {self.path}")
        return records

    def append(self, record: ItemRecord) -> bool:
        """
        Append a single record, assigning the next id if it has none.

        Returns:
            True if saved, False if the link already exists or the write failed
        """
        entries = self.file.load_raw()

        if any(isinstance(e, dict) and e.get('link') == record.link for e in entries):
            print(f"  ‼️ {record.name} already exists. Skipping...")
            return False

        if record.id is None:
            record.id = max_id(entries) + 1

        entries.append(record.to_dict())
        if not self.file.write(entries):
            return False

        print(f"  🔥 Saved {record.name} to {self.path}")
        return True

    def update_record(self, record: ItemRecord) -> bool:
        """
        Replace the stored entry that has the same link.

        Returns:
            True if replaced, False if no entry has that link or the write failed
        """
        entries = self.file.load_raw()
        for i, entry in enumerate(entries):
            if isinstance(entry, dict) and entry.get('link') == record.link:
                if record.id is None:
                    record.id = entry.get('id')
                entries[i] = record.to_dict()
                return self.file.write(entries)

        print(f"  No stored game with link {record.link}")
        return False

    def overwrite(self, records: Iterable[ItemRecord]) -> bool:
        """
        Deduplicate by link (first seen wins) and rewrite the whole file.
        """
        seen_links: Set[str] = set()
        unique = []
        for record in records:
            if record.link in seen_links:
                print(f"  ‼️ Duplicate game {record.name} with link {record.link} skipped")
                continue
            seen_links.add(record.link)
            unique.append(record)

        if not self.file.write([r.to_dict() for r in unique]):
            return False

        not_checked = sum(1 for r in unique if not is_today(r.last_checked))
        with_direct = sum(1 for r in unique if r.has_direct_links())
        print(f"✓ Saved {self.path}. {len(unique)} games, {not_checked} not checked today, "
              f"{with_direct} with direct links")
        return True

    def find_by_name(self, name: str) -> Optional[ItemRecord]:
        """Case-insensitive exact name lookup."""
        wanted = name.strip().lower()
        for record in self.load():
            if record.name.lower() == wanted:
                return record
        return None


class PendingQueue:
    """Entries waiting for detail scraping. The file is removed once empty."""

    def __init__(self, path: str = "temp.json"):
        self.file = JsonArrayFile(path)
        self.path = self.file.path

    def load(self, create_if_missing: bool = True) -> List[dict]:
        return [e for e in self.file.load_raw(create_if_missing) if isinstance(e, dict) and e.get('link')]

    def save(self, entries: List[dict]):
        if not entries:
            self.delete()
            return
        if self.file.write(entries):
            print(f"  Remaining {len(entries)} games in {self.path}")

    def delete(self):
        if self.path.exists():
            try:
                self.path.unlink()
                print(f"Deleted {self.path}")
            except OSError as e:
                print(f"⚠️  Failed to delete {self.path}: {e}")


def load_enumeration(path: str) -> List[dict]:
    """
    Load the complete enumeration file ([{id, name, link}]).

    Returns:
        Entries with a link, [] if the file is missing or unreadable
    """
    enumeration = JsonArrayFile(path)
    if not enumeration.exists():
        print(f"⚠️  {path} does not exist")
        print("💡 Hint: run with --mode enumerate to build it.")
        return []

    entries = [e for e in enumeration.load_raw(create_if_missing=False)
               if isinstance(e, dict) and e.get('link')]
    print(f"✓ {path} loaded, it has {len(entries)} games")
    return entries
