"""Main entry point for the LinkBand Sensor Data Writer."""

import sys


def main() -> int:
    """Run the lsdw command-line interface."""
    from lsdw.diagnostics.cli import main as cli_main

    return cli_main(sys.argv[1:])


if __name__ == "__main__":
    sys.exit(main())
