"""Persist reports under the scan root and keep a history of earlier runs.

    <root>/.bulwark/report.json                  current report
    <root>/.bulwark-history/<timestamp>/report.json   archived reports
"""

import shutil
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from bulwark import __version__
from bulwark.findings import Report
from bulwark.utils.constants import HISTORY_DIR_NAME, OUTPUT_DIR_NAME, REPORT_FILE_NAME
from bulwark.utils.helpers import load_json_file, save_json_file
from bulwark.utils.logging import get_request_id, logger


class ReportStore:
    """Reads and writes reports for one scan root."""

    def __init__(self, root: Path | str, output_dir: str = OUTPUT_DIR_NAME, history_dir: str = HISTORY_DIR_NAME):
        self.root = Path(root)
        self.output_dir = self.root / output_dir
        self.history_dir = self.root / history_dir

    @property
    def current_path(self) -> Path:
        return self.output_dir / REPORT_FILE_NAME

    def archive_current(self, now: datetime | None = None) -> Path | None:
        """Move the current report into the history directory."""
        if not self.current_path.exists():
            return None
        stamp = (now or datetime.now(UTC)).strftime("%Y%m%dT%H%M%S%fZ")
        target_dir = self.history_dir / stamp
        target_dir.mkdir(parents=True, exist_ok=True)
        target = target_dir / REPORT_FILE_NAME
        shutil.move(str(self.current_path), str(target))
        logger.debug(f"[REPORT] Archived previous report to {target}")
        return target

    def write(self, report: Report, output_file: Path | str | None = None) -> Path:
        """Write the report; the default location archives the previous one first."""
        data = report_document(report)
        if output_file:
            path = Path(output_file)
        else:
            self.archive_current()
            path = self.current_path
        save_json_file(data, path)
        logger.info(f"[REPORT] Findings written to {path}")
        return path

    def history(self) -> list[Path]:
        """Archived report files, oldest first."""
        if not self.history_dir.is_dir():
            return []
        return sorted(
            d / REPORT_FILE_NAME
            for d in self.history_dir.iterdir()
            if d.is_dir() and (d / REPORT_FILE_NAME).exists()
        )

    def load(self, previous: bool = False) -> dict[str, Any] | None:
        """Load the current report, or the most recent archived one."""
        if previous:
            archived = self.history()
            return load_json_file(archived[-1]) if archived else None
        if not self.current_path.exists():
            return None
        return load_json_file(self.current_path)


def report_document(report: Report) -> dict[str, Any]:
    data = report.to_dict()
    data["tool_version"] = __version__
    data["generated_at"] = datetime.now(UTC).isoformat()
    data["request_id"] = get_request_id()
    return data
