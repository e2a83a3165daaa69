"""Command-line interface entry points for feedplay.

This module parses the command line, loads application settings, sets up
logging and runs the selected subcommand against the library. Results go
to stdout; logs and errors go to stderr.
"""

import asyncio
from collections.abc import Sequence
import logging
from pathlib import Path
import signal
import sys

from pydantic import Field
from pydantic import ValidationError as SettingsValidationError
from pydantic_settings import (
    BaseSettings,
    CliSubCommand,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    get_subcommand,
)

from ..config import AppSettings
from ..db.types import Feed, Video
from ..exceptions import FeedplayError
from ..library import Library
from ..logging_config import setup_logging
from ..playback import PlaybackStatus
from ..sync import RefreshSummary
from .commands import (
    FEED_KINDS,
    VIDEO_STATES,
    ActivateCommand,
    AddFeedCommand,
    AddVideoCommand,
    Command,
    DeactivateCommand,
    FeedsCommand,
    PlayCommand,
    RefreshCommand,
    RemoveCommand,
    RemoveFeedCommand,
    RenameFeedCommand,
    UndoCommand,
    VideosCommand,
)

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1


class FeedplayCli(BaseSettings):
    """Follow video feeds and play what they publish."""

    config_file: Path | None = Field(
        default=None, description="Path to the YAML config file."
    )
    data_dir: Path | None = Field(
        default=None, description="Directory holding the database."
    )
    log_level: str | None = Field(default=None, description="Logging level.")

    add_feed: CliSubCommand[AddFeedCommand]
    add_video: CliSubCommand[AddVideoCommand]
    refresh: CliSubCommand[RefreshCommand]
    feeds: CliSubCommand[FeedsCommand]
    videos: CliSubCommand[VideosCommand]
    play: CliSubCommand[PlayCommand]
    activate: CliSubCommand[ActivateCommand]
    deactivate: CliSubCommand[DeactivateCommand]
    remove: CliSubCommand[RemoveCommand]
    undo: CliSubCommand[UndoCommand]
    remove_feed: CliSubCommand[RemoveFeedCommand]
    rename_feed: CliSubCommand[RenameFeedCommand]

    model_config = SettingsConfigDict(
        cli_prog_name="feedplay",
        cli_kebab_case=True,
        cli_implicit_flags=True,
        extra="ignore",
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
        """Read only the command line; AppSettings handles env and files."""
        return (init_settings,)

    def settings_overrides(self) -> dict[str, object]:
        """Return the global options that were given, keyed by setting name."""
        overrides: dict[str, object] = {}
        if self.config_file is not None:
            overrides["config_file"] = self.config_file
        if self.data_dir is not None:
            overrides["data_dir"] = self.data_dir
        if self.log_level is not None:
            overrides["log_level"] = self.log_level
        return overrides


# --- Output ---


def format_feed(feed: Feed) -> str:
    """Render a feed as one line of command output."""
    status = "never synced"
    if feed.last_synced_at is not None:
        status = f"synced {feed.last_synced_at:%Y-%m-%d %H:%M}"
    if feed.consecutive_failures:
        status += f", {feed.consecutive_failures} failure(s): {feed.last_error}"
    return f"{feed.id:>4}  {feed.kind!s:<11}  {feed.label}  ({status})"


def format_video(video: Video) -> str:
    """Render a video as one line of command output."""
    source = video.feed_label or "direct"
    return (
        f"{video.id:>5}  {video.state!s:<9}  {video.discovered_at:%Y-%m-%d}  "
        f"[{source}] {video.title}"
    )


def format_refresh(summary: RefreshSummary) -> list[str]:
    """Render a refresh summary; failing feeds are listed after the others."""
    lines = [
        f"{r.label}: {r.merge.added} new, {r.merge.unchanged} known"
        for r in summary.succeeded
        if r.merge is not None
    ]
    lines.extend(f"{r.label}: FAILED ({r.error})" for r in summary.failed)
    lines.append(
        f"{summary.added} new video(s) from {len(summary.succeeded)} feed(s), "
        f"{len(summary.failed)} feed(s) failed."
    )
    return lines


def _print_lines(lines: Sequence[str]) -> None:
    for line in lines:
        print(line)


# --- Dispatch ---


async def _play(library: Library, video_id: int) -> int:
    cancel = asyncio.Event()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGTERM, cancel.set)
    except NotImplementedError:
        logger.debug("Signal handlers not supported on this platform.")
    try:
        outcome = await library.play(video_id, cancel)
    finally:
        try:
            loop.remove_signal_handler(signal.SIGTERM)
        except NotImplementedError:
            pass
    if outcome.finished:
        print(f"Video {video_id} watched to the end.")
    elif outcome.position_seconds is not None:
        print(f"Video {video_id} will resume at {outcome.position_seconds:.0f}s.")
    if outcome.status == PlaybackStatus.CANCELLED:
        print(f"Playback of video {video_id} cancelled.")
    return EXIT_OK


async def dispatch(library: Library, command: Command) -> int:
    """Run ``command`` against ``library`` and print its result.

    Args:
        library: The library to operate on.
        command: The parsed subcommand.

    Returns:
        The process exit status.

    Raises:
        FeedplayError: If the command fails.
    """
    match command:
        case AddFeedCommand():
            feed = await library.add_feed(
                FEED_KINDS[command.kind], command.locator, command.label
            )
            _print_lines([format_feed(feed)])
        case AddVideoCommand():
            video = await library.add_video(command.reference, command.title)
            _print_lines([format_video(video)])
        case RefreshCommand():
            summary = await library.refresh(command.feed_id or None)
            _print_lines(format_refresh(summary))
            if summary.failed:
                return EXIT_FAILURE
        case FeedsCommand():
            _print_lines([format_feed(f) for f in await library.list_feeds()])
        case VideosCommand():
            state = VIDEO_STATES[command.state] if command.state else None
            videos = await library.list_videos(state=state, feed_id=command.feed_id)
            _print_lines([format_video(v) for v in videos])
        case PlayCommand():
            return await _play(library, command.video_id)
        case ActivateCommand():
            _print_lines([format_video(await library.activate(command.video_id))])
        case DeactivateCommand():
            _print_lines([format_video(await library.deactivate(command.video_id))])
        case RemoveCommand():
            _print_lines([format_video(await library.remove(command.video_id))])
        case UndoCommand():
            _print_lines([format_video(v) for v in await library.undo_remove()])
        case RemoveFeedCommand():
            removed = await library.remove_feed(command.feed_id, cascade=command.cascade)
            print(f"Feed {command.feed_id} removed with {len(removed)} video(s).")
        case RenameFeedCommand():
            feed = await library.rename_feed(command.feed_id, command.label)
            _print_lines([format_feed(feed)])
    return EXIT_OK


async def main_cli(argv: Sequence[str] | None = None) -> int:
    """Parse the command line and run the selected command.

    Args:
        argv: Arguments without the program name. If None, ``sys.argv`` is used.

    Returns:
        The process exit status.
    """
    cli = FeedplayCli(_cli_parse_args=list(argv) if argv is not None else True)
    command: Command = get_subcommand(cli)  # type: ignore[assignment]

    try:
        settings = AppSettings(**cli.settings_overrides())  # type: ignore[arg-type]
    except FeedplayError as e:
        print(f"error: {e}", file=sys.stderr)
        return EXIT_FAILURE
    except SettingsValidationError as e:
        for error in e.errors():
            where = ".".join(str(part) for part in error["loc"]) or "settings"
            print(f"error: invalid setting {where}: {error['msg']}", file=sys.stderr)
        return EXIT_FAILURE

    setup_logging(
        log_format_type=settings.log_format,
        app_log_level_name=settings.log_level,
        include_stacktrace=settings.log_include_stacktrace,
    )
    logger.debug(
        "Application settings loaded.",
        extra={
            "config_file": str(settings.config_file),
            "data_dir": str(settings.data_dir),
            "command": type(command).__name__,
        },
    )

    try:
        async with Library.open(settings) as library:
            return await dispatch(library, command)
    except FeedplayError as e:
        logger.debug("Command failed.", exc_info=e)
        print(f"error: {e}", file=sys.stderr)
        return EXIT_FAILURE
