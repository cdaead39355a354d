"""Storage package: persistence adapter and SQL repository."""
from mediaflow.storage.persistence import from_durable, sanitize_node_data, to_durable
from mediaflow.storage.repository import StoredWorkflow, WorkflowRepository

__all__ = [
    "StoredWorkflow",
    "WorkflowRepository",
    "from_durable",
    "sanitize_node_data",
    "to_durable",
]
