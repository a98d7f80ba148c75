"""
Printer Settings Module

Process-wide printer settings for label jobs:
- Selected destination (opaque printer handle) and display name
- Auto-print toggle
- Start position on a partially used first sheet

Settings are read-mostly. Jobs never hold the store; they take an
immutable PrinterSettings snapshot when they start, so a change made
while a job runs cannot move that job's labels.
"""

import json
import logging
import threading
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, Optional

from core.exceptions import ConfigurationError
from models.print_job import PrinterSettings
from modules.sheet_layout import LABELS_PER_SHEET

logger = logging.getLogger("label_print.modules.printer_config")


_UPDATABLE_FIELDS = ("destination_id", "printer_name", "auto_print_enabled", "start_position")


class PrinterSettingsStore:
    """
    Lock-protected printer settings, persisted as JSON.

    Persistence is optional: without a path the store lives in memory only.
    """

    def __init__(self, path: Optional[str] = None, initial: Optional[PrinterSettings] = None):
        """
        Initialize the store.

        Args:
            path: JSON file to load from and save to
            initial: Settings to use when the file is missing
        """
        self._path = Path(path) if path else None
        self._lock = threading.Lock()
        self._settings = initial or PrinterSettings()

        if self._path and self._path.exists():
            self._settings = self._load(self._path)

        logger.info(
            f"PrinterSettingsStore initialized (destination={self._settings.destination_id}, "
            f"start_position={self._settings.start_position})"
        )

    @staticmethod
    def _load(path: Path) -> PrinterSettings:
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            return PrinterSettings.from_dict(data)
        except (OSError, ValueError, TypeError) as e:
            raise ConfigurationError("PRINTER_SETTINGS_PATH", f"cannot read {path}: {e}")

    def _save(self, settings: PrinterSettings) -> None:
        if not self._path:
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp.write_text(json.dumps(settings.to_dict(), indent=2), encoding="utf-8")
        tmp.replace(self._path)

    def snapshot(self) -> PrinterSettings:
        """Immutable copy of the current settings."""
        with self._lock:
            return self._settings

    def update(self, **fields: Any) -> PrinterSettings:
        """
        Change one or more settings and persist them.

        Args:
            **fields: Any of destination_id, printer_name, auto_print_enabled,
                start_position

        Returns:
            The new settings snapshot

        Raises:
            ValueError: unknown field or out-of-range value
        """
        unknown = set(fields) - set(_UPDATABLE_FIELDS)
        if unknown:
            raise ValueError(f"Unknown printer setting(s): {', '.join(sorted(unknown))}")

        if "start_position" in fields:
            position = int(fields["start_position"])
            if not 0 <= position < LABELS_PER_SHEET:
                raise ValueError(
                    f"start_position must be between 0 and {LABELS_PER_SHEET - 1}, got {position}"
                )
            fields["start_position"] = position

        if "auto_print_enabled" in fields:
            fields["auto_print_enabled"] = bool(fields["auto_print_enabled"])

        for key in ("destination_id", "printer_name"):
            if key in fields:
                fields[key] = fields[key] or None

        with self._lock:
            updated = replace(self._settings, **fields)
            self._save(updated)
            self._settings = updated

        logger.info(f"Printer settings updated: {', '.join(sorted(fields))}")
        return updated

    def to_dict(self) -> Dict[str, Any]:
        settings = self.snapshot()
        data = settings.to_dict()
        data["is_printer_configured"] = settings.is_printer_configured
        data["is_ready_to_auto_print"] = settings.is_ready_to_auto_print
        return data
