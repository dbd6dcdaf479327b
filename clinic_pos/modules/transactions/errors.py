from __future__ import annotations


class ValidationFailed(Exception):
    """
    One or more input problems, collected rather than raised one at a time.

    `errors` keeps the individual messages so the UI can list them together.
    """

    def __init__(self, errors: list[str] | str):
        if isinstance(errors, str):
            errors = [errors]
        self.errors: list[str] = list(errors)
        super().__init__("; ".join(self.errors))


class BackendError(Exception):
    """A persistence/network call failed. Transient: the operator may retry."""
