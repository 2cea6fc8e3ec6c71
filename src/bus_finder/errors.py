"""Exceptions raised by the bus finder."""

from __future__ import annotations

from typing import Optional


class BusFinderError(Exception):
    """Base class for all bus finder errors."""


class TransportError(BusFinderError):
    """An upstream request failed (non-2xx status or network failure)."""

    def __init__(self, resource: str, ident: Optional[str] = None,
                 status: Optional[int] = None, reason: str = ""):
        self.resource = resource
        self.ident = ident
        self.status = status
        self.reason = reason
        target = f"{resource} {ident}" if ident else resource
        if status is not None:
            message = f"Request for {target} failed: HTTP {status} {reason}".rstrip()
        else:
            message = f"Request for {target} failed: {reason}"
        super().__init__(message)


class DecodeError(BusFinderError):
    """An upstream payload was malformed or lacked required structure."""

    def __init__(self, resource: str, ident: Optional[str] = None, reason: str = ""):
        self.resource = resource
        self.ident = ident
        self.reason = reason
        target = f"{resource} {ident}" if ident else resource
        super().__init__(f"Could not decode {target}: {reason}")


class OperationCancelled(BusFinderError):
    """The caller cancelled the operation or its deadline passed."""


class PartialResolutionWarning(UserWarning):
    """A single stop lookup failed and the stop was left out of the result."""

    def __init__(self, stop_id: str, cause: BaseException):
        self.stop_id = stop_id
        self.cause = cause
        super().__init__(f"Skipping stop {stop_id}: {cause}")
