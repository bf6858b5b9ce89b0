"""Exception types raised by the PigeonNS resolver."""

from __future__ import annotations


class ResolverError(Exception):
    """Base class for every error raised by pigeonns."""


class NotRunningError(ResolverError):
    """
    Brief: resolve() was called while the resolver is stopped.

    Inputs:
    - message: description

    Outputs:
    - Exception instance
    """

    def __init__(self, message: str = "Resolver is not running. Call start() first.") -> None:
        super().__init__(message)


class AlreadyRunningError(ResolverError):
    """Brief: start() was called on a resolver that is already running."""

    def __init__(self, message: str = "Resolver is already running") -> None:
        super().__init__(message)


class ResolveTimeoutError(ResolverError, TimeoutError):
    """
    Brief: No matching mDNS answer arrived within the query window.

    Inputs:
    - name: normalized hostname that was queried

    Outputs:
    - Exception instance; also an instance of the builtin TimeoutError.

    Example:
        >>> err = ResolveTimeoutError("printer.local")
        >>> str(err)
        'Timeout resolving printer.local'
    """

    def __init__(self, name: str) -> None:
        super().__init__(f"Timeout resolving {name}")
        self.name = name


class StoppedError(ResolverError):
    """Brief: The resolver was stopped while a query was still in flight."""

    def __init__(self, message: str = "Resolver stopped") -> None:
        super().__init__(message)


class UnsupportedRecordTypeError(ResolverError, ValueError):
    """Brief: A record type other than A or AAAA was requested."""

    def __init__(self, rtype: object) -> None:
        super().__init__(f"Unsupported record type: {rtype!r} (expected A or AAAA)")
        self.rtype = rtype


class TransportError(ResolverError):
    """
    Brief: Multicast socket failure (bind, membership, send or receive).

    Inputs:
    - message: description

    Outputs:
    - Exception instance
    """

    pass
