"""Installed component state - which versions are in the output tree.

State is stored in <output>/.rx-state.json and lets a re-run skip
components whose latest release is already installed.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import datetime
from pathlib import Path

from rx.platform.files import atomic_write_text

__all__ = [
    "ComponentState",
    "STATE_FILE",
    "load_state",
    "save_state",
]

STATE_FILE = ".rx-state.json"


@dataclass(frozen=True, slots=True)
class ComponentState:
    """State of an installed component.

    Attributes:
        version: Installed release version
        asset: Asset name that was merged
        installed_at: ISO timestamp of installation
    """

    version: str
    asset: str
    installed_at: str

    @classmethod
    def now(cls, version: str, asset: str) -> ComponentState:
        """Create state with current timestamp."""
        return cls(version=version, asset=asset, installed_at=datetime.now().isoformat())


def _state_file(output_dir: Path) -> Path:
    return output_dir / STATE_FILE


def load_state(output_dir: Path) -> dict[str, ComponentState]:
    """Load component state from disk.

    Args:
        output_dir: Output tree root containing .rx-state.json

    Returns:
        Dict mapping repository id to ComponentState (empty if missing or corrupt)
    """
    state_path = _state_file(output_dir)
    if not state_path.exists():
        return {}

    try:
        data = json.loads(state_path.read_text(encoding="utf-8"))
        return {repo: ComponentState(**entry) for repo, entry in data.items()}
    except (json.JSONDecodeError, TypeError, KeyError, AttributeError, OSError):
        # Corrupted state file, start fresh
        return {}


def save_state(output_dir: Path, state: dict[str, ComponentState]) -> None:
    """Save component state to disk atomically."""
    data = {repo: asdict(entry) for repo, entry in sorted(state.items())}
    atomic_write_text(_state_file(output_dir), json.dumps(data, indent=2) + "\n", encoding="utf-8")
