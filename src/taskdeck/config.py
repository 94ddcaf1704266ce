from __future__ import annotations

from dataclasses import dataclass, field
import logging
from pathlib import Path
import tomllib
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .models import TaskFilter


def _default_config_root() -> Path:
    return Path.home() / ".config" / "taskdeck"


def _default_log_dir() -> Path:
    return Path.home() / ".local" / "state" / "taskdeck"


@dataclass(slots=True)
class FirestoreSettings:
    project_id: str = ""
    database: str = "(default)"
    collection: str = "tasks"
    poll_interval: float = 2.0


@dataclass(slots=True)
class AuthSettings:
    client_secrets: Path = field(default_factory=lambda: _default_config_root() / "google_client_secret.json")
    token_path: Path = field(default_factory=lambda: _default_config_root() / "google_token.json")


@dataclass(slots=True)
class DisplaySettings:
    default_filter: TaskFilter = TaskFilter.ALL
    timezone: str | None = None


@dataclass(slots=True)
class LoggingSettings:
    level: str = "INFO"
    directory: Path = field(default_factory=_default_log_dir)

    @property
    def numeric_level(self) -> int:
        value = logging.getLevelName(self.level.upper())
        return value if isinstance(value, int) else logging.INFO


@dataclass(slots=True)
class TaskdeckConfig:
    firestore: FirestoreSettings = field(default_factory=FirestoreSettings)
    auth: AuthSettings = field(default_factory=AuthSettings)
    display: DisplaySettings = field(default_factory=DisplaySettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)

    @classmethod
    def default(cls) -> "TaskdeckConfig":
        return cls()

    def to_dict(self) -> dict:
        return {
            "firestore": {
                "project_id": self.firestore.project_id,
                "database": self.firestore.database,
                "collection": self.firestore.collection,
                "poll_interval": self.firestore.poll_interval,
            },
            "auth": {
                "client_secrets": str(self.auth.client_secrets),
                "token_path": str(self.auth.token_path),
            },
            "display": {
                "default_filter": self.display.default_filter.value,
                "timezone": self.display.timezone or "",
            },
            "logging": {
                "level": self.logging.level,
                "directory": str(self.logging.directory),
            },
        }


class ConfigManager:
    """Simple TOML configuration loader."""

    def __init__(self, config_path: Path | None = None) -> None:
        self.config_path = config_path or (_default_config_root() / "config.toml")
        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        self._errors: list[str] = []

    def errors(self) -> list[str]:
        return list(self._errors)

    def load(self) -> TaskdeckConfig:
        self._errors.clear()
        if not self.config_path.exists():
            config = TaskdeckConfig.default()
            self._write(config)
            return config

        try:
            with self.config_path.open("rb") as handle:
                raw = tomllib.load(handle)
        except tomllib.TOMLDecodeError as exc:
            self._errors.append(f"Could not parse {self.config_path}: {exc}")
            return TaskdeckConfig.default()

        firestore_cfg = raw.get("firestore", {})
        auth_cfg = raw.get("auth", {})
        display_cfg = raw.get("display", {})
        logging_cfg = raw.get("logging", {})
        defaults = TaskdeckConfig.default()

        def _path_or(value: object, fallback: Path) -> Path:
            if not value:
                return fallback
            return Path(str(value)).expanduser()

        try:
            poll_interval = float(firestore_cfg.get("poll_interval", defaults.firestore.poll_interval))
            if poll_interval <= 0:
                raise ValueError("must be positive")
        except (TypeError, ValueError) as exc:
            self._errors.append(f"Invalid firestore.poll_interval: {exc}")
            poll_interval = defaults.firestore.poll_interval

        try:
            default_filter = TaskFilter(display_cfg.get("default_filter", TaskFilter.ALL.value))
        except ValueError:
            self._errors.append(
                f"Invalid display.default_filter {display_cfg.get('default_filter')!r}; expected all, pending or completed"
            )
            default_filter = TaskFilter.ALL

        timezone = display_cfg.get("timezone") or None
        if timezone is not None:
            try:
                ZoneInfo(str(timezone))
            except (ZoneInfoNotFoundError, ValueError):
                self._errors.append(f"Invalid display.timezone {timezone!r}; using the local zone")
                timezone = None

        level = str(logging_cfg.get("level", defaults.logging.level)).upper()
        if not isinstance(logging.getLevelName(level), int):
            self._errors.append(f"Invalid logging.level {level!r}")
            level = defaults.logging.level

        return TaskdeckConfig(
            firestore=FirestoreSettings(
                project_id=str(firestore_cfg.get("project_id", "")),
                database=str(firestore_cfg.get("database") or defaults.firestore.database),
                collection=str(firestore_cfg.get("collection") or defaults.firestore.collection),
                poll_interval=poll_interval,
            ),
            auth=AuthSettings(
                client_secrets=_path_or(auth_cfg.get("client_secrets"), defaults.auth.client_secrets),
                token_path=_path_or(auth_cfg.get("token_path"), defaults.auth.token_path),
            ),
            display=DisplaySettings(
                default_filter=default_filter,
                timezone=str(timezone) if timezone else None,
            ),
            logging=LoggingSettings(
                level=level,
                directory=_path_or(logging_cfg.get("directory"), defaults.logging.directory),
            ),
        )

    def _write(self, config: TaskdeckConfig) -> None:
        data = config.to_dict()
        lines = [
            "[firestore]",
            f"project_id = \"{data['firestore']['project_id']}\"",
            f"database = \"{data['firestore']['database']}\"",
            f"collection = \"{data['firestore']['collection']}\"",
            f"poll_interval = {data['firestore']['poll_interval']}",
            "",
            "[auth]",
            f"client_secrets = \"{data['auth']['client_secrets']}\"",
            f"token_path = \"{data['auth']['token_path']}\"",
            "",
            "[display]",
            f"default_filter = \"{data['display']['default_filter']}\"",
            f"timezone = \"{data['display']['timezone']}\"",
            "",
            "[logging]",
            f"level = \"{data['logging']['level']}\"",
            f"directory = \"{data['logging']['directory']}\"",
        ]
        self.config_path.write_text("\n".join(lines) + "\n", encoding="utf-8")

    def save(self, config: TaskdeckConfig) -> None:
        self._write(config)
