"""CLI bootstrap for ios-simulator-server. Delegates to simulator_server.main.cli()."""

from __future__ import annotations


def main() -> None:
    from simulator_server.main import cli
    cli()


if __name__ == "__main__":
    main()
