"""
Progress tracking for resumable crawls and sweeps.
Persists {"lastCheckedIndex": n} where n is the 0-based index of the next
unit to process (pages or store rows), i.e. the number already completed.
"""

import json
import shutil
from datetime import datetime
from pathlib import Path

from utils import write_json_atomic


def backup_corrupted(path: Path):
    """Create a timestamped backup of a corrupted state file."""
    if path.exists():
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        backup_path = path.with_name(f"{path.stem}.corrupted.{timestamp}{path.suffix}")
        try:
            shutil.copy2(path, backup_path)
            print(f"Backed up corrupted state to {backup_path}")
        except OSError as e:
            print(f"Failed to backup corrupted state: {e}")


class ProgressTracker:
    """Manages the on-disk progress marker."""

    def __init__(self, path: str = "progress.json", default_index: int = 0):
        """
        Initialize tracker with the marker file.

        Args:
            path: Progress file path
            default_index: Index used when no marker exists
        """
        self.path = Path(path)
        self.default_index = default_index
        self._index = default_index

    def load(self) -> int:
        """
        Load the marker from disk, creating it with the default if absent.

        Returns:
            Index of the next unit to process
        """
        if not self.path.exists():
            print(f"⚠️  {self.path} does not exist, starting from {self.default_index}")
            self.save(self.default_index)
            return self._index

        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
            index = int(data.get('lastCheckedIndex', self.default_index))
            if index < 0:
                raise ValueError(f"negative index {index}")
        except (json.JSONDecodeError, OSError, AttributeError, TypeError, ValueError) as e:
            print(f"⚠️  Progress file corrupted: {e}")
            backup_corrupted(self.path)
            self._index = self.default_index
            return self._index

        self._index = index
        print(f"🌀 Loading progress... next index is {index}")
        return index

    def save(self, index: int):
        """Atomically persist the marker. Failures are logged, not raised."""
        self._index = index
        try:
            write_json_atomic(self.path, {'lastCheckedIndex': index})
        except OSError as e:
            print(f"⚠️  Save progress {self.path} failed: {e}")

    def advance(self, index: int):
        """Record that every unit before index is done."""
        self.save(index)

    def reset(self):
        """Start the next run from the beginning."""
        self.save(0)
        print(f"Progress reset in {self.path}")

    def delete(self):
        """Remove the marker file."""
        self._index = self.default_index
        if self.path.exists():
            try:
                self.path.unlink()
                print(f"Deleted {self.path}")
            except OSError as e:
                print(f"⚠️  Failed to delete {self.path}: {e}")
