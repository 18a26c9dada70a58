"""Persistent port-to-project mappings and user preferences."""

import json
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from zkill.models import PortMapping

logger = logging.getLogger(__name__)

CONFIG_VERSION = "1.0.0"


def default_config_path() -> Path:
    """~/.zkill/config.json, or config.json inside $ZKILL_HOME."""
    home = os.environ.get("ZKILL_HOME")
    base = Path(home).expanduser() if home else Path.home() / ".zkill"
    return base / "config.json"


def _parse_timestamp(value: object) -> datetime:
    """Parse an ISO-8601 timestamp, accepting a trailing Z."""
    if not isinstance(value, str):
        raise ValueError(f"invalid timestamp {value!r}")
    # JavaScript-style trailing Z
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    return parsed if parsed.tzinfo else parsed.astimezone()


@dataclass
class Config:
    """In-memory form of the config document."""

    port_mappings: list[PortMapping] = field(default_factory=list)
    auto_kill_enabled: bool = False
    confirm_kill: bool = True
    version: str = CONFIG_VERSION

    @classmethod
    def from_dict(cls, data: dict) -> "Config":
        """Build a Config, migrating documents written before versioning."""
        if not data.get("version"):
            logger.info("Migrating unversioned config to %s", CONFIG_VERSION)
            data = {
                "portMappings": data.get("portMappings") or [],
                "autoKillEnabled": bool(data.get("autoKillEnabled", False)),
                "confirmKill": True,
                "version": CONFIG_VERSION,
            }

        mappings: list[PortMapping] = []
        for entry in data.get("portMappings") or []:
            try:
                mappings.append(
                    PortMapping(
                        port=int(entry["port"]),
                        project_name=str(entry["projectName"]),
                        project_path=str(entry["projectPath"]),
                        last_used=_parse_timestamp(entry.get("lastUsed")),
                        auto_kill=bool(entry.get("autoKill", False)),
                    )
                )
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("Skipping malformed port mapping %r: %s", entry, exc)

        return cls(
            port_mappings=mappings,
            auto_kill_enabled=bool(data.get("autoKillEnabled", False)),
            confirm_kill=bool(data.get("confirmKill", True)),
            version=str(data["version"]),
        )

    def to_dict(self) -> dict:
        """Serialize to the on-disk camelCase layout."""
        return {
            "portMappings": [
                {
                    "port": m.port,
                    "projectName": m.project_name,
                    "projectPath": m.project_path,
                    "lastUsed": m.last_used.isoformat(),
                    "autoKill": m.auto_kill,
                }
                for m in self.port_mappings
            ],
            "autoKillEnabled": self.auto_kill_enabled,
            "confirmKill": self.confirm_kill,
            "version": self.version,
        }


class Storage:
    """
    JSON-backed store for port mappings and the auto-kill/confirm flags.

    A missing or corrupted file is replaced with defaults. Write failures
    are logged and never raised.
    """

    def __init__(self, path: str | Path | None = None) -> None:
        self._path = Path(path) if path else default_config_path()
        self._config = self._load()

    @property
    def config_path(self) -> Path:
        """Location of the JSON config file."""
        return self._path

    def _load(self) -> Config:
        """Read the config file, recreating it when missing or corrupted."""
        if not self._path.exists():
            return self._reset()

        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
            if not isinstance(data, dict):
                raise ValueError("top-level value is not an object")
            config = Config.from_dict(data)
        except (OSError, ValueError) as exc:
            logger.warning("Config file %s is corrupted (%s), creating a new one", self._path, exc)
            return self._reset()

        if config.to_dict() != data:
            self._save(config)
        return config

    def _reset(self) -> Config:
        """Write and return a default config."""
        config = Config()
        self._save(config)
        return config

    def _save(self, config: Config) -> None:
        """Persist ``config``; write failures are logged only."""
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(json.dumps(config.to_dict(), indent=2), encoding="utf-8")
        except OSError as exc:
            logger.error("Failed to save config to %s: %s", self._path, exc)

    def add_port_mapping(
        self,
        port: int,
        project_name: str,
        project_path: str,
        auto_kill: bool = False,
    ) -> PortMapping:
        """Record ``port`` as last used by a project, replacing any previous owner."""
        mapping = PortMapping(
            port=port,
            project_name=project_name,
            project_path=project_path,
            last_used=datetime.now(timezone.utc),
            auto_kill=auto_kill,
        )
        self._config.port_mappings = [m for m in self._config.port_mappings if m.port != port]
        self._config.port_mappings.append(mapping)
        self._save(self._config)
        return mapping

    def get_port_mapping(self, port: int) -> PortMapping | None:
        """Return the mapping for ``port``, or None."""
        return next((m for m in self._config.port_mappings if m.port == port), None)

    def get_all_mappings(self) -> list[PortMapping]:
        """Return every mapping ordered by port."""
        return sorted(self._config.port_mappings, key=lambda m: m.port)

    def get_mappings_for_project(self, project_path: str) -> list[PortMapping]:
        """Return the mappings recorded for one project path."""
        return [m for m in self._config.port_mappings if m.project_path == project_path]

    def remove_port_mapping(self, port: int) -> None:
        """Forget the mapping for ``port``."""
        self._config.port_mappings = [m for m in self._config.port_mappings if m.port != port]
        self._save(self._config)

    def is_auto_kill_enabled(self) -> bool:
        """Whether auto-kill is switched on globally."""
        return self._config.auto_kill_enabled

    def set_auto_kill(self, enabled: bool) -> None:
        """Switch auto-kill on or off globally."""
        self._config.auto_kill_enabled = enabled
        self._save(self._config)

    def is_confirm_kill_enabled(self) -> bool:
        """Whether kills ask for confirmation."""
        return self._config.confirm_kill

    def set_confirm_kill(self, enabled: bool) -> None:
        """Switch kill confirmation on or off."""
        self._config.confirm_kill = enabled
        self._save(self._config)

    def clear(self) -> None:
        """Discard every mapping and preference."""
        self._config = self._reset()
