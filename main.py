"""restic-do command-line interface."""

from resticdo.cli.restic_do import main

if __name__ == "__main__":
    main()
