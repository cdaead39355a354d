"""Exception hierarchy shared by the graph, runtime and storage layers."""


class WorkflowError(Exception):
    """Base exception for workflow errors."""

    pass


class InvalidEdgeError(WorkflowError):
    """Raised when a connect request is rejected. The graph is left unchanged."""

    pass


class GraphCycleError(WorkflowError):
    """Raised when no topological order exists for a run."""

    def __init__(self, nodes: list[str]):
        self.nodes = nodes
        super().__init__(f"Workflow has cycles involving: {', '.join(nodes)}")


class MissingInputError(WorkflowError):
    """Raised by a node whose input handle has no upstream value."""

    def __init__(self, handle: str, message: str | None = None):
        self.handle = handle
        super().__init__(message or f"Missing required input: {handle}")


class MediaTimeoutError(WorkflowError, TimeoutError):
    """Raised when a media operation exceeds its time bound."""

    pass


class ExternalServiceError(WorkflowError):
    """Raised when a remote upload or generation call fails."""

    pass


class PersistenceError(WorkflowError):
    """Raised when saving or reading durable state fails."""

    pass


class ConfigurationError(WorkflowError):
    """Raised when required credentials or settings are missing."""

    pass


class NodeNotFoundError(KeyError):
    """Raised when a graph operation references an unknown node id."""

    def __str__(self) -> str:
        return f"Node not found: {self.args[0]}"


class InvalidWorkflowError(WorkflowError):
    """Raised when a submitted workflow payload cannot be parsed."""

    pass


class AuthenticationRequiredError(WorkflowError):
    """Raised when an operation needs an identity and none was given."""

    pass


class WorkflowNotFoundError(WorkflowError):
    """Raised when a workflow id does not exist."""

    pass


class AccessDeniedError(WorkflowError):
    """Raised when a workflow belongs to another owner."""

    pass
