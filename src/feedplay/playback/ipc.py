"""Playback progress over the player's JSON IPC socket.

mpv (and players speaking its protocol) accept ``--input-ipc-server=<path>``
and then serve newline-delimited JSON on that Unix socket. After connecting,
the properties in ``OBSERVED_PROPERTIES`` are observed and every
``property-change`` event is applied to a PlaybackProgress until the player
closes the connection.
"""

import asyncio
import contextlib
import json
import logging
from pathlib import Path

from .types import PlaybackProgress

logger = logging.getLogger(__name__)

OBSERVED_PROPERTIES = ("playback-time", "duration", "media-title")


def ipc_server_flag(socket_path: Path) -> str:
    """Return the player flag that opens an IPC server at ``socket_path``."""
    return f"--input-ipc-server={socket_path}"


def encode_command(*command: object) -> bytes:
    """Encode one IPC command as a JSON line."""
    return json.dumps({"command": list(command)}).encode() + b"\n"


async def _connect(
    socket_path: Path, retry_interval: float
) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
    while True:
        try:
            return await asyncio.open_unix_connection(str(socket_path))
        except (FileNotFoundError, ConnectionRefusedError):
            await asyncio.sleep(retry_interval)


async def watch_progress(
    socket_path: Path, progress: PlaybackProgress, retry_interval: float = 0.1
) -> None:
    """Record the player's progress into ``progress`` until it disconnects.

    Waits for the socket to appear. A player that never opens it keeps the
    watch waiting, so the caller cancels it once the player has exited.

    Args:
        socket_path: Path the player was told to serve IPC on.
        progress: Updated in place as events arrive.
        retry_interval: Seconds between connection attempts.
    """
    reader, writer = await _connect(socket_path, retry_interval)
    logger.debug("Connected to player IPC.", extra={"socket_path": str(socket_path)})
    try:
        for observe_id, name in enumerate(OBSERVED_PROPERTIES, start=1):
            writer.write(encode_command("observe_property", observe_id, name))
        await writer.drain()

        while line := await reader.readline():
            try:
                message = json.loads(line)
            except json.JSONDecodeError:
                logger.debug(
                    "Ignoring malformed IPC message.",
                    extra={"line": line[:200].decode(errors="replace")},
                )
                continue
            if isinstance(message, dict) and message.get("event") == "property-change":
                progress.apply(str(message.get("name")), message.get("data"))
    except (ConnectionResetError, BrokenPipeError) as e:
        logger.debug("Player closed the IPC connection.", exc_info=e)
    finally:
        writer.close()
        with contextlib.suppress(OSError):
            await writer.wait_closed()
