"""Typed failures raised by the vault index and its tools."""


class VaultError(Exception):
    """Base class for every failure the vault engine reports to callers."""

    kind = "vault_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(VaultError):
    """A path, subfolder or scope does not exist in the vault."""

    kind = "not_found"


class BadRequestError(VaultError):
    """The request itself is invalid (bad regex, empty query, bad path)."""

    kind = "bad_request"


class IoFailureError(VaultError):
    """The vault root is inaccessible. No query can be served."""

    kind = "io_failure"


class RecoverableParseIssue(VaultError):
    """A single file could not be read, decoded or parsed."""

    kind = "parse_issue"


class QueryCancelledError(VaultError):
    """A query was cancelled between files; partial results are discarded."""

    kind = "cancelled"
