"""restic-do - command-line wrapper around the restic backup tool.

Translates named actions (backup, restore, check, forget, mount, ...) into
restic invocations, loads its settings from an env file and optionally reports
outcomes to a Slack-compatible webhook.
"""

__version__ = "0.1.0"
__author__ = "restic-do contributors"

from . import exceptions, logging

__all__ = ["exceptions", "logging"]
