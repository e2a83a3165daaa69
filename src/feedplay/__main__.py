import asyncio
import contextlib
import sys

from .cli import main_cli


def main() -> None:
    """Entry point for the feedplay CLI application."""
    exit_code = 130
    with contextlib.suppress(KeyboardInterrupt):
        exit_code = asyncio.run(main_cli())
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
