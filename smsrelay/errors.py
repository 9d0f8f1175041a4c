"""Fault taxonomy shared by sources, normalizers, storage and dispatch."""

from __future__ import annotations


class RelayError(Exception):
    """Base class for every fault raised by smsrelay."""


class ParseFault(RelayError):
    """Source payload or timestamp does not match the expected shape."""


class PermissionFault(RelayError):
    """The host refused access to a data source."""

    def __init__(self, source: str, detail: str = "") -> None:
        self.source = source
        self.detail = detail
        message = f"permission denied for {source}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class FetchFault(RelayError):
    """An acquisition command could not run or returned unusable output."""


class StorageFault(RelayError):
    """Schema or dedup store I/O failed."""


class DuplicateRecordFault(StorageFault):
    """The identifier is already present in the dedup table."""


class ChannelFault(RelayError):
    """The dispatch channel is closed or unavailable."""
