"""
JSON persistence for the vault ledger.

The whole ledger is written as one document to ``<path>.tmp`` and moved
into place with ``os.replace``, so a reader only ever sees the previous or
the next complete state.

Processes sharing one state file serialize their read-modify-write cycles
on an exclusive ``flock`` of ``<path>.lock``.
"""

from __future__ import annotations

import fcntl
import json
import logging
import os
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, Optional, Tuple, Union

from .contracts.time_locked_vault import VaultState
from .vault_exceptions import VaultError

logger = logging.getLogger("timevault.state_store")

STATE_FORMAT_VERSION = 1


class StateStoreError(VaultError):
    """Raised when a persisted ledger cannot be read back."""
    pass


class VaultStateStore:
    """Load and save a ``VaultState`` (plus backend metadata) at one path."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path).expanduser()
        self._lock = threading.Lock()

    def exists(self) -> bool:
        return self.path.exists()

    @contextmanager
    def locked(self) -> Iterator[None]:
        """Hold the cross-process lock for this state file."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(f"{self.path}.lock", "a", encoding="utf-8") as handle:
            fcntl.flock(handle, fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(handle, fcntl.LOCK_UN)

    # ------------------------------------------------------------------
    # Persistence helpers
    # ------------------------------------------------------------------
    def load(self) -> Tuple[Optional[VaultState], Dict[str, Any]]:
        """
        Read the stored ledger.

        Returns:
            (state, metadata); ``(None, {})`` when nothing has been saved yet

        Raises:
            StateStoreError: The file exists but is unreadable or malformed
        """
        with self._lock:
            if not self.path.exists():
                return None, {}
            try:
                with open(self.path, "r", encoding="utf-8") as handle:
                    data = json.load(handle)
            except (json.JSONDecodeError, OSError) as exc:
                logger.error(
                    "Failed to load vault state from %s: %s",
                    self.path,
                    exc,
                    extra={"event": "state.load_failed", "path": str(self.path)},
                )
                raise StateStoreError(
                    f"Cannot read vault state at {self.path}",
                    details={"path": str(self.path), "reason": str(exc)},
                ) from exc

        version = data.get("version")
        if version != STATE_FORMAT_VERSION:
            raise StateStoreError(
                f"Unsupported vault state version {version!r}",
                details={"path": str(self.path)},
            )
        try:
            state = VaultState.from_dict(data["vault"])
        except (KeyError, TypeError, ValueError) as exc:
            raise StateStoreError(
                f"Malformed vault state at {self.path}",
                details={"path": str(self.path), "reason": str(exc)},
            ) from exc

        problems = state.verify_invariants()
        if problems:
            raise StateStoreError(
                f"Stored vault state is inconsistent: {problems[0]}",
                details={"path": str(self.path), "problems": problems},
            )
        return state, dict(data.get("metadata", {}))

    def save(self, state: VaultState, metadata: Optional[Dict[str, Any]] = None) -> None:
        snapshot = {
            "version": STATE_FORMAT_VERSION,
            "saved_at": time.time(),
            "vault": state.to_dict(),
            "metadata": metadata or {},
        }
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = f"{self.path}.tmp"
            with open(tmp_path, "w", encoding="utf-8") as handle:
                json.dump(snapshot, handle, indent=2)
            os.replace(tmp_path, self.path)
        logger.debug(
            "Saved vault state to %s",
            self.path,
            extra={"event": "state.saved", "path": str(self.path)},
        )
