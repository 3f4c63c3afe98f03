"""Allow running restic-do as ``python -m resticdo``."""

from resticdo.cli.restic_do import main

if __name__ == "__main__":
    main()
