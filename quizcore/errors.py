class QuizCoreError(RuntimeError):
    pass


class InvalidInputError(QuizCoreError):
    """An identifier or required field in the request could not be used."""


class NotFoundError(QuizCoreError):
    """The quiz has no answer key, or the submission has no detail rows."""


class PersistenceError(QuizCoreError):
    """The store failed; the original database error is chained as `__cause__`."""
