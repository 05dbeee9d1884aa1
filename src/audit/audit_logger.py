import json
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List

AUDIT_EVENTS = {
    "contract_generated",
    "contract_generation_failed",
    "template_usage",
}


class AuditLogger:
    """
    Append-only audit logger for contract generation decisions.

    Example:
        >>> audit = AuditLogger(Path("logs/audit"))
        >>> audit.log("contract_generated", {"contract_id": 12, "mode": "rules"})
    """

    def __init__(self, log_dir: Path):
        """
        Initialize the audit logger and ensure log directory exists.
        """
        self.log_dir = log_dir
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def log(self, event_type: str, payload: Dict):
        """
        Append a JSONL record for the given event.

        Example:
            >>> audit.log("template_usage", {"template_ids": ["1", "4"]})
        """
        if event_type not in AUDIT_EVENTS:
            raise ValueError(f"Unknown audit event type: {event_type}")

        record = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event_type": event_type,
            "payload": payload
        }

        file_path = self.log_dir / f"{event_type}.log.jsonl"

        with self._lock, open(file_path, "a", encoding="utf-8") as f:
            f.write(json.dumps(record, ensure_ascii=False, default=str) + "\n")

    def read(self, event_type: str) -> List[Dict]:
        """
        Load every record of one event type, oldest first.
        """
        file_path = self.log_dir / f"{event_type}.log.jsonl"
        if not file_path.exists():
            return []
        with open(file_path, "r", encoding="utf-8") as f:
            return [json.loads(line) for line in f if line.strip()]
