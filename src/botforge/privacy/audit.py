"""Tamper-evident audit logging for sync and security events.

Each line is a JSON object carrying ``chain_prev`` and ``chain_hash``; the
hash covers the entry and the previous hash, so removing or editing a line
breaks ``verify()``. Payloads never contain bot source code or tokens.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from hashlib import sha256
from pathlib import Path
from typing import Dict, Iterable, Optional

from filelock import FileLock

logger = logging.getLogger(__name__)

DEFAULT_AUDIT_DIR = Path.home() / ".botforge" / "audit"


@dataclass(frozen=True)
class AuditEvent:
    """Represents a structured audit event."""

    event_id: str
    source: str
    action: str
    status: str
    timestamp: datetime
    repository: Optional[str] = None
    bot_id: Optional[str] = None
    metadata: Dict[str, object] = field(default_factory=dict)

    def to_payload(self) -> Dict[str, object]:
        payload: Dict[str, object] = {
            "event_id": self.event_id,
            "source": self.source,
            "action": self.action,
            "status": self.status,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.repository:
            payload["repository"] = self.repository
        if self.bot_id:
            payload["bot_id"] = self.bot_id
        if self.metadata:
            payload["metadata"] = self.metadata
        return payload


@dataclass
class AuditLogger:
    """Writes append-only hash-chained audit logs.

    Attributes:
        output_dir: Directory for audit log files
        filename: Name of the main audit log file
        max_bytes: Maximum log file size before rotation
        retention_days: Days to retain rotated logs
        manifest_name: Name of the manifest file holding the chain head
    """

    output_dir: Path = DEFAULT_AUDIT_DIR
    filename: str = "audit.log"
    max_bytes: int = 5 * 1024 * 1024
    retention_days: int = 90
    manifest_name: str = "audit_manifest.json"

    def __post_init__(self) -> None:
        self.output_dir = Path(self.output_dir).expanduser()
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self._path = self.output_dir / self.filename
        self._manifest_path = self.output_dir / self.manifest_name
        self._lock = FileLock(str(self.output_dir / f"{self.filename}.lock"), timeout=10)
        with self._lock:
            if not self._manifest_path.exists():
                self._save_manifest({"last_hash": None, "chain_start": None, "rotated": []})

    def record(self, event: AuditEvent) -> None:
        with self._lock:
            manifest = self._load_manifest()
            payload = dict(event.to_payload())
            payload["chain_prev"] = manifest.get("last_hash")
            payload["chain_hash"] = _compute_chain_hash(payload)
            with self._path.open("a", encoding="utf-8") as fp:
                fp.write(json.dumps(payload, separators=(",", ":")) + "\n")
            manifest["last_hash"] = payload["chain_hash"]
            self._save_manifest(manifest)
            self._rotate_if_needed()
        self._prune_old_logs()

    def record_action(
        self,
        *,
        event_id: str,
        source: str,
        action: str,
        status: str,
        repository: Optional[str] = None,
        bot_id: Optional[str] = None,
        metadata: Optional[Dict[str, object]] = None,
    ) -> None:
        self.record(
            AuditEvent(
                event_id=event_id,
                source=source,
                action=action,
                status=status,
                timestamp=datetime.now(timezone.utc),
                repository=repository,
                bot_id=bot_id,
                metadata=metadata or {},
            )
        )

    def iter_events(self, *, path: Optional[Path] = None) -> Iterable[Dict[str, object]]:
        """Iterate over audit events of the current (or given) log file."""
        target = path or self._path
        if not target.exists():
            return
        with target.open("r", encoding="utf-8") as fp:
            for line in fp:
                line = line.strip()
                if not line:
                    continue
                try:
                    yield json.loads(line)
                except json.JSONDecodeError:
                    logger.warning("Failed to parse audit line as JSON")

    def verify(self, *, path: Optional[Path] = None) -> bool:
        """Verify the integrity of the audit log chain.

        Returns:
            True if chain is valid, False if tampered
        """
        target = path or self._path
        if not target.exists():
            return True
        previous_hash = self._load_manifest().get("chain_start") if path is None else None
        first = True
        for entry in self.iter_events(path=target):
            chain_prev = entry.get("chain_prev")
            if not (first and path is not None) and chain_prev != previous_hash:
                return False
            if entry.get("chain_hash") != _compute_chain_hash(entry):
                return False
            previous_hash = entry.get("chain_hash")
            first = False
        return True

    def _rotate_if_needed(self) -> None:
        if not self._path.exists():
            return
        if self._path.stat().st_size < self.max_bytes:
            return
        timestamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S%f")
        rotated_name = self.output_dir / f"audit-{timestamp}.log"
        os.replace(self._path, rotated_name)
        manifest = self._load_manifest()
        rotated = manifest.get("rotated", [])
        rotated.append(
            {
                "path": rotated_name.name,
                "closed_at": datetime.now(timezone.utc).isoformat(),
                "hash": manifest.get("last_hash"),
            }
        )
        manifest["rotated"] = rotated
        # The next file continues the chain from the rotated file's last hash.
        manifest["chain_start"] = manifest.get("last_hash")
        self._save_manifest(manifest)

    def _prune_old_logs(self) -> None:
        cutoff = datetime.now(timezone.utc) - timedelta(days=self.retention_days)
        for file_path in self.output_dir.glob("audit-*.log"):
            timestamp = _extract_timestamp(file_path.name)
            if timestamp and timestamp < cutoff:
                file_path.unlink(missing_ok=True)

    def _load_manifest(self) -> Dict[str, object]:
        return json.loads(self._manifest_path.read_text())

    def _save_manifest(self, manifest: Dict[str, object]) -> None:
        tmp_path = self._manifest_path.with_suffix(".tmp")
        tmp_path.write_text(json.dumps(manifest, indent=2))
        os.replace(tmp_path, self._manifest_path)


def _compute_chain_hash(payload: Dict[str, object]) -> str:
    canonical = json.dumps(
        {k: payload[k] for k in sorted(payload) if k != "chain_hash"},
        separators=(",", ":"),
    )
    return sha256(canonical.encode("utf-8")).hexdigest()


def _extract_timestamp(filename: str) -> Optional[datetime]:
    try:
        stamp = filename.split("-")[1].split(".")[0]
        return datetime.strptime(stamp, "%Y%m%d%H%M%S%f").replace(tzinfo=timezone.utc)
    except (IndexError, ValueError):
        return None


__all__ = ["AuditEvent", "AuditLogger", "DEFAULT_AUDIT_DIR"]
