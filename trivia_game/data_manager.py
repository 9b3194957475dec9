"""
Data manager for persisting settings and statistics as JSON snapshots.
"""
import json
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional

from .config_manager import Settings
from .stats_recorder import StatsRecorder

DEFAULT_PROFILE = "default"


class DataManager:
    """Loads and saves per-profile settings and stats snapshots."""

    def __init__(self, data_directory: str = "./data/"):
        """
        Initialize DataManager with the data directory path.

        Args:
            data_directory: Directory that holds settings/ and stats/ snapshots
        """
        self.data_directory = Path(data_directory)
        self.logger = logging.getLogger(__name__)
        self.load_errors: List[str] = []

    def load_settings(self, profile_id: str = DEFAULT_PROFILE) -> Settings:
        """
        Load a profile's settings, falling back to defaults.

        Args:
            profile_id: Profile identifier

        Returns:
            Settings rebuilt from the snapshot, or default Settings
        """
        data = self._read_snapshot(self._snapshot_path("settings", profile_id))
        return Settings.from_snapshot(data)

    def save_settings(self, profile_id: str, settings: Settings) -> Dict[str, Any]:
        """Persist a profile's settings snapshot."""
        return self._write_snapshot(self._snapshot_path("settings", profile_id), settings.to_snapshot())

    def load_stats(self, profile_id: str = DEFAULT_PROFILE) -> StatsRecorder:
        """
        Load a profile's statistics, falling back to empty stats.

        Args:
            profile_id: Profile identifier

        Returns:
            StatsRecorder rebuilt from the snapshot, or an empty recorder
        """
        data = self._read_snapshot(self._snapshot_path("stats", profile_id))
        return StatsRecorder.from_snapshot(data)

    def save_stats(self, profile_id: str, stats: StatsRecorder) -> Dict[str, Any]:
        """Persist a profile's statistics snapshot."""
        return self._write_snapshot(self._snapshot_path("stats", profile_id), stats.to_snapshot())

    def attach(self, profile_id: str, settings: Settings, stats: StatsRecorder) -> None:
        """
        Save settings and stats after every committed mutation.

        Args:
            profile_id: Profile the objects belong to
            settings: Settings to observe
            stats: Stats recorder to observe
        """
        settings.add_listener(lambda changed: self.save_settings(profile_id, changed))
        stats.add_listener(lambda changed: self.save_stats(profile_id, changed))
        self.logger.debug(f"Persistence attached for profile {profile_id}")

    def get_load_errors(self) -> List[str]:
        """
        Get list of errors encountered while loading snapshots.

        Returns:
            List of error messages
        """
        return self.load_errors.copy()

    def has_load_errors(self) -> bool:
        return len(self.load_errors) > 0

    def _snapshot_path(self, kind: str, profile_id: str) -> Path:
        # Profile ids come from outside (Discord user ids); keep file names safe
        safe_id = re.sub(r"[^A-Za-z0-9_.-]", "_", str(profile_id)) or DEFAULT_PROFILE
        return self.data_directory / kind / f"{safe_id}.json"

    def _read_snapshot(self, file_path: Path) -> Optional[Any]:
        """
        Load and parse a single snapshot file.

        Args:
            file_path: Path to the JSON file

        Returns:
            Parsed JSON data or None if the file is missing or unreadable
        """
        if not file_path.exists():
            return None

        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            error_msg = f"Invalid JSON in {file_path}: {e}"
        except OSError as e:
            error_msg = f"Failed to read {file_path}: {e}"

        self.logger.error(error_msg)
        self.load_errors.append(error_msg)
        return None

    def _write_snapshot(self, file_path: Path, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Write a snapshot atomically.

        Args:
            file_path: Destination path
            data: JSON-serializable snapshot

        Returns:
            Dictionary with success status and error message if applicable
        """
        try:
            file_path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=file_path.parent, suffix=".tmp")
            try:
                with os.fdopen(fd, 'w', encoding='utf-8') as f:
                    json.dump(data, f, indent=2, ensure_ascii=False)
                os.replace(tmp_name, file_path)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise
            self.logger.debug(f"Saved snapshot {file_path}")
            return {'success': True}

        except PermissionError:
            error_msg = f"Permission denied: Cannot write {file_path}"
        except OSError as e:
            error_msg = f"System error writing {file_path}: {e}"

        self.logger.error(error_msg)
        return {
            'success': False,
            'error': error_msg
        }
