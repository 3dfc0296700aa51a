"""
Appends finished task records to a JSON Lines history file.
"""

import json
import logging
from pathlib import Path

from levelfetch.models.task import TaskRecord

log = logging.getLogger(__name__)

HISTORY_FILENAME = "task_history.jsonl"


def save_task_record(config_dir: Path, record: TaskRecord) -> Path | None:
    """
    Appends a task record, without its rolling log, to the history file.

    Returns the history file path, or None if it could not be written.
    """
    history_file = config_dir / HISTORY_FILENAME
    try:
        config_dir.mkdir(parents=True, exist_ok=True)
        with open(history_file, "a", encoding="utf-8") as f:
            json.dump(
                record.model_dump(by_alias=True, mode="json", exclude={"logs"}),
                f,
                ensure_ascii=False,
            )
            f.write("\n")
    except OSError as e:
        log.warning(f"[yellow]Could not save task history:[/] {e}")
        return None
    return history_file
