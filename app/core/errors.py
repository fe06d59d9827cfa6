"""
Error taxonomy.

Only persistence problems are exceptions.  The other expected outcomes
(no sleep session yet, a metric or a baseline without data) are typed
values, see :mod:`app.schemas.outcome` and
:class:`app.schemas.sleep_session.NoSessionFound`.
"""


class PersistenceError(Exception):
    """A score-store or sample-store read/write failed.

    Always retryable: the stored state is left untouched by a failed
    write (transactions are rolled back).
    """

    retryable = True

    def __init__(self, operation: str, detail: str = ""):
        self.operation = operation
        self.detail = detail
        message = f"Persistence failure during {operation}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
