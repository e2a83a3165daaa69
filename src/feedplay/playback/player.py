"""Thin async wrapper around the external media player.

The player is started with ``asyncio.create_subprocess_exec`` as
``<binary> <reference> [ipc flag] [resume flag] <args...>``. Its output is
discarded; besides the exit status, playback progress is read over the
player's IPC socket when IPC is enabled.
"""

import asyncio
from collections.abc import Sequence
import contextlib
import logging
from pathlib import Path
import signal
import tempfile

from ..exceptions import PlayerLaunchError
from .ipc import ipc_server_flag, watch_progress
from .types import PlaybackProgress, PlayerExit

logger = logging.getLogger(__name__)

DEFAULT_PLAYER_BINARY = "mpv"
DEFAULT_PLAYER_ARGS = ("--force-window=immediate",)
DEFAULT_RESUME_FLAG = "--start=+{position}"

# Signals that mean the user closed the player rather than it failing.
CANCEL_SIGNALS = frozenset({signal.SIGINT, signal.SIGTERM, signal.SIGHUP})


def is_cancel_exit(return_code: int) -> bool:
    """Return True if ``return_code`` reports termination by a cancel signal.

    Both the subprocess convention (``-signum``) and the shell convention
    (``128 + signum``) are recognized.
    """
    if return_code < 0:
        return -return_code in CANCEL_SIGNALS
    return return_code - 128 in CANCEL_SIGNALS


class Player:
    """Launch the configured player and wait for it to exit.

    Attributes:
        binary: The player executable.
        args: Flags passed after the playable reference.
        terminate_grace: Seconds to wait after SIGTERM before sending SIGKILL.
        resume_flag: Flag template that starts playback at ``{position}``
            seconds; empty to never resume.
        ipc: Ask the player for an IPC socket and read progress from it.
        ipc_drain_timeout: Seconds to wait for the last IPC events after the
            player has exited.
    """

    def __init__(
        self,
        binary: str = DEFAULT_PLAYER_BINARY,
        args: Sequence[str] = DEFAULT_PLAYER_ARGS,
        terminate_grace: float = 5.0,
        resume_flag: str = DEFAULT_RESUME_FLAG,
        ipc: bool = True,
        ipc_drain_timeout: float = 1.0,
    ):
        self.binary = binary
        self.args = tuple(args)
        self.terminate_grace = terminate_grace
        self.resume_flag = resume_flag
        self.ipc = ipc
        self.ipc_drain_timeout = ipc_drain_timeout

    def command(
        self,
        reference: str,
        start_position: float | None = None,
        socket_path: Path | None = None,
    ) -> list[str]:
        """Build the player command line for ``reference``."""
        cmd = [self.binary, reference]
        if socket_path is not None:
            cmd.append(ipc_server_flag(socket_path))
        if self.resume_flag and start_position:
            cmd.append(self.resume_flag.format(position=round(start_position, 3)))
        cmd.extend(self.args)
        return cmd

    async def _launch(self, cmd: Sequence[str]) -> asyncio.subprocess.Process:
        """Start the player.

        Raises:
            PlayerLaunchError: If the executable is missing or cannot be run.
        """
        try:
            return await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except FileNotFoundError as e:
            raise PlayerLaunchError(
                "Player executable not found.", player_binary=self.binary
            ) from e
        except PermissionError as e:
            raise PlayerLaunchError(
                "Permission denied running player.", player_binary=self.binary
            ) from e
        except OSError as e:
            raise PlayerLaunchError(
                "Failed to execute player.", player_binary=self.binary
            ) from e

    async def _stop(self, process: asyncio.subprocess.Process) -> int:
        """Terminate the player, escalating to SIGKILL after the grace period.

        Returns:
            The player's exit status.
        """
        if process.returncode is not None:
            return process.returncode
        with contextlib.suppress(ProcessLookupError):
            process.terminate()
        try:
            async with asyncio.timeout(self.terminate_grace):
                return await process.wait()
        except TimeoutError:
            logger.warning(
                "Player ignored SIGTERM, killing it.",
                extra={"pid": process.pid, "grace_seconds": self.terminate_grace},
            )
            with contextlib.suppress(ProcessLookupError):
                process.kill()
            return await process.wait()

    async def _wait(
        self, process: asyncio.subprocess.Process, cancel: asyncio.Event | None
    ) -> tuple[int, bool]:
        """Wait for the player to exit or for ``cancel`` to be set.

        Returns:
            The exit status, and whether the player was stopped on request.
        """
        log_params = {"pid": process.pid, "player_binary": self.binary}
        waiter = asyncio.create_task(process.wait())
        canceller = asyncio.create_task(cancel.wait()) if cancel else None
        try:
            pending = {waiter} if canceller is None else {waiter, canceller}
            await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
            if waiter.done():
                return waiter.result(), False
            logger.debug("Stopping player on request.", extra=log_params)
            return await self._stop(process), True
        except asyncio.CancelledError:
            await self._stop(process)
            raise
        finally:
            waiter.cancel()
            if canceller is not None:
                canceller.cancel()

    async def _finish_watch(self, watcher: asyncio.Task[None]) -> None:
        """Let the progress watch read the player's last events, then end it."""
        done, _ = await asyncio.wait({watcher}, timeout=self.ipc_drain_timeout)
        if not done:
            watcher.cancel()
            await asyncio.wait({watcher})
        if not watcher.cancelled() and (e := watcher.exception()) is not None:
            logger.warning(
                "Could not read playback progress from the player.",
                extra={"player_binary": self.binary},
                exc_info=e,
            )

    async def play(
        self,
        reference: str,
        cancel: asyncio.Event | None = None,
        start_position: float | None = None,
    ) -> PlayerExit:
        """Run the player until it exits or ``cancel`` is set.

        Cancelling the calling task stops the player before the
        cancellation propagates.

        Args:
            reference: URL or path handed to the player.
            cancel: Event that, once set, stops the player.
            start_position: Seconds into the video to start playback at.

        Returns:
            The player's exit status, whether it was stopped on request, and
            the progress it reported.

        Raises:
            PlayerLaunchError: If the player cannot be started.
        """
        progress = PlaybackProgress()
        with tempfile.TemporaryDirectory(prefix="feedplay-") as ipc_dir:
            socket_path = Path(ipc_dir) / "player.sock" if self.ipc else None
            process = await self._launch(
                self.command(reference, start_position, socket_path)
            )
            logger.debug(
                "Player started.",
                extra={
                    "pid": process.pid,
                    "player_binary": self.binary,
                    "start_position": start_position,
                },
            )

            watcher = (
                asyncio.create_task(watch_progress(socket_path, progress))
                if socket_path is not None
                else None
            )
            try:
                return_code, stopped = await self._wait(process, cancel)
            finally:
                if watcher is not None:
                    await self._finish_watch(watcher)

        return PlayerExit(return_code=return_code, stopped=stopped, progress=progress)
