class ExperimentServiceError(Exception):
    """Base class for errors raised by the experiment engine."""


class NotFoundError(ExperimentServiceError):
    """No active, in-window experiment matches the request."""


class InvalidExperimentError(ExperimentServiceError):
    """The experiment has no variant a user could ever be assigned to."""


class DuplicateExperimentError(ExperimentServiceError):
    """An experiment with the same name already exists."""


class StoreError(ExperimentServiceError):
    """The persistence layer failed; never retried by the engine."""
