"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    retryable = False


class ValidationError(DomainException):
    """Input has the wrong shape or violates a policy limit"""

    pass


class SessionNotReadyError(ValidationError):
    """Session has not finished processing its statement"""

    pass


class NotFoundError(DomainException):
    """Session or card is absent, or the session has expired"""

    pass


class UnsuitableDocumentError(DomainException):
    """Document does not look like a financial statement"""

    pass


class UnreadableDocumentError(DomainException):
    """Document could not be opened or holds no extractable text"""

    pass


class ExternalServiceError(DomainException):
    """Transient failure in the classifier or the storage layer"""

    retryable = True


class ClassifierUnavailableError(ExternalServiceError):
    """Classifier is down, rate limited, or returned a malformed response"""

    pass


class ClassifierTimeoutError(ExternalServiceError):
    """Classifier call exceeded its time budget"""

    pass


class ClassifierRejectedError(ExternalServiceError):
    """Classifier refused the request as malformed input"""

    retryable = False


class StorageError(ExternalServiceError):
    """Database write or read failed"""

    pass


class InvalidTransitionError(DomainException):
    """Requested session status is not reachable from the current one"""

    pass
