"""Service layer."""
from mediaflow.services.workflows import RunOutcome, WorkflowService, load_store, parse_workflow

__all__ = ["RunOutcome", "WorkflowService", "load_store", "parse_workflow"]
