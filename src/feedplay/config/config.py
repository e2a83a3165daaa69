"""Application configuration management for feedplay.

This module defines the application settings and a custom settings source
that loads values from a YAML file whose path is itself a setting.
"""

from datetime import timedelta
import logging
import os
from pathlib import Path
import shlex
from typing import Annotated, Any, Literal, cast

from pydantic import Field, field_validator
from pydantic.fields import FieldInfo
from pydantic_core import PydanticUndefined
from pydantic_settings import (
    BaseSettings,
    NoDecode,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)
import pytimeparse2  # pyright: ignore[reportMissingTypeStubs]
import yaml

from ..exceptions import ConfigLoadError
from ..playback.player import (
    DEFAULT_PLAYER_ARGS,
    DEFAULT_PLAYER_BINARY,
    DEFAULT_RESUME_FLAG,
)

logger = logging.getLogger(__name__)

APP_NAME = "feedplay"


def default_data_dir() -> Path:
    """Return ``$XDG_DATA_HOME/feedplay``, defaulting to ~/.local/share."""
    base = os.environ.get("XDG_DATA_HOME") or "~/.local/share"
    return Path(base).expanduser() / APP_NAME


def default_config_file() -> Path:
    """Return ``$XDG_CONFIG_HOME/feedplay/config.yaml``, defaulting to ~/.config."""
    base = os.environ.get("XDG_CONFIG_HOME") or "~/.config"
    return Path(base).expanduser() / APP_NAME / "config.yaml"


class YamlFileFromFieldSource(PydanticBaseSettingsSource):
    """Load configuration from a YAML file specified by a field.

    A settings source that loads configuration from a YAML file specified
    by the ``config_file`` field of the settings model itself. This source
    should be run after all other sources that might populate that field.

    The default config file is optional: if nobody set ``config_file`` and
    the default file does not exist, loading is skipped. A file that was
    asked for explicitly must exist.

    Attributes:
        yaml_file_encoding: Encoding to use when reading the YAML file.
        yaml_data: Cached YAML data loaded from the file.
    """

    def __init__(
        self,
        settings_cls: type[BaseSettings],
        yaml_file_encoding: str | None = None,
    ):
        super().__init__(settings_cls)
        self.yaml_file_encoding = yaml_file_encoding or "utf-8"
        self.yaml_data: dict[str, Any] = {}

    def _get_explicit_state_of(self, field_name: str) -> Any:
        """Get the value earlier sources set for a field, or None."""
        value = self.current_state.get(field_name)
        if value not in (None, PydanticUndefined):
            return value

        field_info = self.settings_cls.model_fields[field_name]
        if isinstance(field_info.validation_alias, str):
            value = self.current_state.get(field_info.validation_alias)
            if value not in (None, PydanticUndefined):
                return value
        return None

    def _get_yaml_path(self) -> tuple[Path, bool]:
        """Determine the YAML path from the already processed settings state.

        Returns:
            The path, and whether it was set explicitly.
        """
        path_value = self._get_explicit_state_of("config_file")
        logger.debug(
            "Attempting to resolve YAML configuration file path.",
            extra={
                "current_path_value": "None" if path_value is None else str(path_value)
            },
        )

        match path_value:
            case None:
                return default_config_file(), False
            case Path():
                return path_value.expanduser(), True
            case str():
                return Path(path_value).expanduser(), True
            case _:
                raise TypeError(
                    f"Field 'config_file' must resolve to a Path or string, "
                    f"received type '{type(path_value).__name__}'"
                )

    def _read_yaml_file(self, file_path: Path) -> dict[str, Any]:
        """Read and parse the YAML file."""
        with Path.open(file_path, encoding=self.yaml_file_encoding) as f:
            loaded_yaml = yaml.safe_load(f)

        if isinstance(loaded_yaml, dict):
            logger.debug(
                "Successfully parsed YAML configuration file.",
                extra={"file_path": str(file_path)},
            )
            return cast(dict[str, Any], loaded_yaml)
        elif loaded_yaml is None:
            logger.debug(
                "YAML configuration file is empty.",
                extra={"file_path": str(file_path)},
            )
            return {}
        else:
            raise TypeError(
                f"Invalid YAML config format: expected dict, got {type(loaded_yaml).__name__}"
            )

    def get_field_value(
        self, field: FieldInfo, field_name: str
    ) -> tuple[Any, str, bool]:
        """Get value from loaded YAML data."""
        field_value = self.yaml_data.get(field_name)
        return field_value, field_name, self.field_is_complex(field)

    def __call__(self) -> dict[str, Any]:
        """Load YAML data from the file specified in the config_file field."""
        try:
            yaml_path, explicit = self._get_yaml_path()
        except TypeError as e:
            raise ConfigLoadError(
                "Failed to resolve YAML configuration file path.",
            ) from e

        if not explicit and not yaml_path.exists():
            logger.debug(
                "Default configuration file not found; skipping YAML loading.",
                extra={"file_path": str(yaml_path)},
            )
            self.yaml_data = {}
            return {}

        try:
            self.yaml_data = self._read_yaml_file(yaml_path)
        except (TypeError, OSError, yaml.YAMLError) as e:
            raise ConfigLoadError(
                "Failed to load or parse YAML configuration file.",
                config_file=str(yaml_path),
            ) from e

        return self.yaml_data.copy()


class AppSettings(BaseSettings):
    """Application settings.

    Values come from initialization arguments, environment variables, a
    ``.env`` file and finally the YAML config file, in that order of
    precedence.

    Attributes:
        log_format: Format for application logs (human or json).
        log_level: Logging level for the application.
        log_include_stacktrace: Include full stack traces in error logs.
        data_dir: Directory holding the database.
        config_file: Path to the YAML config file.
        player_binary: Media player executable.
        player_args: Flags passed to the player after the video reference.
        player_terminate_grace: Seconds between SIGTERM and SIGKILL when
            stopping the player.
        player_resume_flag: Flag template that starts the player at a saved
            position; empty disables resuming.
        player_ipc: Read playback progress over the player's IPC socket.
        end_tolerance: Seconds before the end that count as a finished video.
        sync_concurrency: Maximum number of feeds fetched at once.
        fetch_timeout: Seconds allowed to fetch one feed.
        reactivate_removed: Restore removed videos when a feed lists them again.
        undo_history_size: Number of removal operations that can be undone.
        undo_window: How long a removal stays undoable; None means forever.
        user_agent: User-Agent header sent when fetching feeds.
    """

    # Logging
    log_format: Literal["human", "json"] = Field(
        default="human",
        validation_alias="FEEDPLAY_LOG_FORMAT",
        description="Format for application logs ('human' or 'json').",
    )
    log_level: str = Field(
        default="WARNING",
        validation_alias="FEEDPLAY_LOG_LEVEL",
        description="Logging level for the application (e.g., DEBUG, INFO, WARNING, ERROR). Case-insensitive.",
    )
    log_include_stacktrace: bool = Field(
        default=False,
        validation_alias="FEEDPLAY_LOG_INCLUDE_STACKTRACE",
        description="Include full stack traces in error logs (true/false).",
    )

    # Paths
    data_dir: Path = Field(
        default_factory=default_data_dir,
        validation_alias="FEEDPLAY_DATA_DIR",
        description="Directory holding the feedplay database.",
    )
    config_file: Path = Field(
        default_factory=default_config_file,
        validation_alias="FEEDPLAY_CONFIG_FILE",
        description="Path to the YAML config file. The default location is optional.",
    )

    # Playback
    player_binary: str = Field(
        default=DEFAULT_PLAYER_BINARY,
        validation_alias="FEEDPLAY_PLAYER_BINARY",
        description="Media player executable, looked up on PATH.",
    )
    player_args: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: list(DEFAULT_PLAYER_ARGS),
        validation_alias="FEEDPLAY_PLAYER_ARGS",
        description="Flags passed to the player after the video reference, as a list or a shell-quoted string.",
    )
    player_terminate_grace: float = Field(
        default=5.0,
        gt=0,
        validation_alias="FEEDPLAY_PLAYER_TERMINATE_GRACE",
        description="Seconds to wait after asking the player to stop before killing it.",
    )
    player_resume_flag: str = Field(
        default=DEFAULT_RESUME_FLAG,
        validation_alias="FEEDPLAY_PLAYER_RESUME_FLAG",
        description="Flag that starts the player at a saved position, with '{position}' replaced by seconds. Empty disables resuming.",
    )
    player_ipc: bool = Field(
        default=True,
        validation_alias="FEEDPLAY_PLAYER_IPC",
        description="Read playback position, duration and title from the player's IPC socket (mpv --input-ipc-server).",
    )
    end_tolerance: float = Field(
        default=1.0,
        ge=0,
        validation_alias="FEEDPLAY_END_TOLERANCE",
        description="Seconds before the end at which a video counts as watched and leaves the watch queue.",
    )

    # Synchronization
    sync_concurrency: int = Field(
        default=4,
        ge=1,
        validation_alias="FEEDPLAY_SYNC_CONCURRENCY",
        description="Maximum number of feeds fetched at once during a refresh.",
    )
    fetch_timeout: float = Field(
        default=3.0,
        gt=0,
        validation_alias="FEEDPLAY_FETCH_TIMEOUT",
        description="Seconds allowed to fetch and read a single feed.",
    )
    reactivate_removed: bool = Field(
        default=False,
        validation_alias="FEEDPLAY_REACTIVATE_REMOVED",
        description="Return removed videos to the available list when their feed lists them again.",
    )
    user_agent: str = Field(
        default=f"{APP_NAME}/0.1",
        validation_alias="FEEDPLAY_USER_AGENT",
        description="User-Agent header sent when fetching feeds.",
    )

    # Undo
    undo_history_size: int = Field(
        default=10,
        ge=1,
        validation_alias="FEEDPLAY_UNDO_HISTORY_SIZE",
        description="Number of removal operations that can be undone.",
    )
    undo_window: timedelta | None = Field(
        default=None,
        validation_alias="FEEDPLAY_UNDO_WINDOW",
        description="How long a removal stays undoable (e.g., '1h', '2 days'). Unset means no limit.",
    )

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("player_args", mode="before")
    @classmethod
    def parse_player_args(cls, v: Any) -> list[str]:
        """Parse player arguments from a shell-quoted string or a list.

        Args:
            v: Value to parse.

        Returns:
            The arguments as a list of strings.

        Raises:
            TypeError: If the value is neither a string nor a list of strings.
        """
        match v:
            case None:
                return []
            case str() as s:
                return shlex.split(s.strip())
            case list() as l if all(isinstance(arg, str) for arg in l):  # type: ignore
                return l  # type: ignore
            case other:
                raise TypeError(
                    f"player_args must be a string or list of strings, got {type(other).__name__}"
                )

    @field_validator("player_resume_flag")
    @classmethod
    def check_resume_flag(cls, v: str) -> str:
        """Require the ``{position}`` placeholder in a non-empty resume flag.

        Raises:
            ValueError: If the placeholder is missing.
        """
        v = v.strip()
        if v and "{position}" not in v:
            raise ValueError(
                f"player_resume_flag must contain '{{position}}', got '{v}'"
            )
        return v

    @field_validator("undo_window", mode="before")
    @classmethod
    def parse_undo_window(cls, v: Any) -> timedelta | None:
        """Parse undo_window from a duration string.

        Args:
            v: Value to parse, can be string, number of seconds, timedelta, or None.

        Returns:
            timedelta instance or None if not provided.

        Raises:
            ValueError: If the duration string format is invalid.
            TypeError: If the value has an unsupported type.
        """
        match v:
            case None:
                return None
            case str() as s if not s.strip():
                return None
            case str() as s:
                seconds = cast(
                    int | float | None,
                    pytimeparse2.parse(s),  # pyright: ignore[reportUnknownMemberType]
                )
                if seconds is None:
                    raise ValueError(
                        f"Invalid duration format: '{s}'. "
                        "Examples: '30m', '1h', '2 days', '1w'"
                    )
                if seconds <= 0:
                    raise ValueError(f"undo_window must be positive, got '{s}'")
                return timedelta(seconds=seconds)
            case int() | float() as n if not isinstance(n, bool):
                if n <= 0:
                    raise ValueError(f"undo_window must be positive, got {n}")
                return timedelta(seconds=n)
            case timedelta():
                return v
            case _:
                raise TypeError(
                    f"undo_window must be a duration string (e.g., '1h', '2d') or None, "
                    f"got {type(v).__name__}"
                )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Customize the order and sources for settings loading.

        Environment variables and initialization parameters are processed
        first so they can set ``config_file``; the YAML source then reads
        the file that field points at.

        Returns:
            Tuple of settings sources in the order they should be processed.
        """
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlFileFromFieldSource(settings_cls=settings_cls),
            file_secret_settings,
        )
