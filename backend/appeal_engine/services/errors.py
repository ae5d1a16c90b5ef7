"""Service-layer exceptions for the appeal learning pipeline."""


class AppealEngineError(Exception):
    """Base class for appeal engine service errors."""
    pass


class OutcomeValidationError(AppealEngineError):
    """Raised when an outcome is recorded for a case that is not resolved."""
    pass


class DuplicateCaseError(AppealEngineError):
    """Raised when a case id is appended to the corpus twice."""
    pass


class CaseNotFoundError(AppealEngineError):
    """Raised when a training case does not exist or is inactive."""
    pass


class AppealNotFoundError(AppealEngineError):
    """Raised when a submitted appeal does not exist."""
    pass


class CorpusStoreError(AppealEngineError):
    """Raised when the corpus store cannot be read or written."""
    pass
