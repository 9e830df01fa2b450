"""CLI entry point for geoscale.cli module.

Enables execution via: python -m geoscale.cli dispatch [--kind K] [-v]
"""

import sys

from geoscale.cli.dispatch import main

COMMANDS = {"dispatch": main}

if __name__ == "__main__":
    if len(sys.argv) < 2 or sys.argv[1] not in COMMANDS:
        print(f"Usage: python -m geoscale.cli {{{','.join(COMMANDS)}}} [OPTIONS]", file=sys.stderr)
        raise SystemExit(2)
    raise SystemExit(COMMANDS[sys.argv[1]](sys.argv[2:]))
