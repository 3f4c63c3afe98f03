"""Validation of action parameters."""

from .action_validator import REQUIRED_PARAMETERS, ActionValidator

__all__ = ["REQUIRED_PARAMETERS", "ActionValidator"]
