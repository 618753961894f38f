class GrainError(Exception):
    """
    Base class for all grain simulation failures.
    """


class InvalidInputError(GrainError, ValueError):
    """
    Malformed request: bad dimensions, settings or buffer size.
    Raised at request entry, before any work starts.
    """


class InternalInvariantError(GrainError, RuntimeError):
    """
    A logic fault inside the pipeline (e.g. a grain missing from the density map).
    The request is aborted and never retried.
    """


class WorkerBusyError(GrainError):
    """
    A request is already in flight on this worker.
    """
