"""Composite backup flow."""

from .backup_flow import FLOW_STEPS, BackupFlow, FlowResult, FlowStep, StepResult

__all__ = ["FLOW_STEPS", "BackupFlow", "FlowResult", "FlowStep", "StepResult"]
