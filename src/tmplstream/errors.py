from __future__ import annotations


class TmplStreamError(Exception):
    """
    Base class for errors raised by the package.
    """


class ChannelError(TmplStreamError):
    """
    A request sent to the matching worker could not be completed.
    """


class RemoteComputationError(ChannelError):
    """
    The matching worker reported a failure for a correlated request.
    """

    def __init__(self, message: str, request_type: str | None = None) -> None:
        super().__init__(message)
        self.request_type = request_type


class MatchTimeoutError(ChannelError):
    """
    No reply arrived before the request's deadline.
    """


class ChannelClosedError(ChannelError):
    """
    The channel was closed while the request was pending or being submitted.
    """


__all__ = [
    "ChannelClosedError",
    "ChannelError",
    "MatchTimeoutError",
    "RemoteComputationError",
    "TmplStreamError",
]
