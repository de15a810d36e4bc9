"""
Exception taxonomy for the orchestration core.

Terminal errors (DiscoveryError, StageError) end a job as failed.
DispatchError is non-terminal: the job stays "processing" and has to be
reconciled by an external staleness check.
"""


class CodeScribeError(Exception):
    """Base class for all orchestration errors."""


class DiscoveryError(CodeScribeError):
    """The repository listing call failed."""


class StageError(CodeScribeError):
    """A delegated call inside a pipeline stage failed."""

    def __init__(self, stage: str, cause: str):
        self.stage = stage
        self.cause = cause
        super().__init__(f"Failed during stage {stage}: {cause}")


class MissingInputError(StageError):
    """A stage was entered without the state fields it requires."""

    def __init__(self, stage: str, missing: list[str]):
        self.missing = missing
        super().__init__(stage, f"missing required input: {', '.join(missing)}")


class DispatchError(CodeScribeError):
    """Sending the continuation for the next chunk failed."""


class IntakeValidationError(CodeScribeError):
    """An intake request is malformed. Raised before any job row exists."""


class JobNotFoundError(CodeScribeError):
    """No job row exists for the given id."""


class InvalidTransitionError(CodeScribeError):
    """A status update would move a job backwards or out of a terminal state."""


class PlanAlreadySetError(CodeScribeError):
    """A chunk plan was already persisted for this job."""
