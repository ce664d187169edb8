"""Entry point for whiteboard_app."""

from __future__ import annotations

import sys

from whiteboard_app.cli import main as cli_main


def main() -> None:
    # Without a subcommand, start the web server like a deployed install.
    argv = sys.argv[1:] or ["serve"]
    raise SystemExit(cli_main(argv))


if __name__ == "__main__":
    main()
