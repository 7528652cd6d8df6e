#!/usr/bin/env python3
"""
Run Alembic against the mail sync schema.

Usage:
    python migrate.py upgrade head      # Create or update all tables
    python migrate.py current           # Show the applied revision
    python migrate.py downgrade -1      # Step back one revision
    python migrate.py revision -m "..." # New revision, autogenerated from mailsync.models
    python migrate.py upgrade head --sql  # Print the SQL instead of running it

The database comes from DATABASE_HOST / DATABASE_NAME (read from .env when present).
"""

import subprocess
import sys
from pathlib import Path

from dotenv import load_dotenv

load_dotenv(override=True)

CONFIG_PATH = Path(__file__).parent / "migrations" / "alembic.ini"


def build_command(args: list[str]) -> list[str]:
    """Alembic invocation for ``args``; ``revision`` always autogenerates."""
    args = list(args)
    if args and args[0] == "revision" and "--autogenerate" not in args:
        args.insert(1, "--autogenerate")
    return [sys.executable, "-m", "alembic", "-c", str(CONFIG_PATH)] + args


def main() -> None:
    try:
        result = subprocess.run(build_command(sys.argv[1:]), check=False)
        sys.exit(result.returncode)
    except KeyboardInterrupt:
        print("\nOperation cancelled by user")
        sys.exit(1)
    except OSError as e:
        print(f"Error running migration command: {e}")
        sys.exit(1)


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print(__doc__)
        sys.exit(1)

    main()
