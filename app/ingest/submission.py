from __future__ import annotations

from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional, Protocol, Sequence

PayloadFetcher = Callable[[], Awaitable[bytes]]


@dataclass(slots=True)
class SubmittedFile:
    """An attachment for the duration of one ingestion; never persisted as-is."""

    filename: str
    size_bytes: int
    content_type: Optional[str] = None
    payload: Optional[bytes] = None
    fetcher: Optional[PayloadFetcher] = None

    async def read(self) -> bytes:
        if self.payload is None:
            if self.fetcher is None:
                raise ValueError(f"No payload or fetcher for {self.filename}")
            self.payload = await self.fetcher()
        return self.payload

    @classmethod
    def from_bytes(cls, filename: str, payload: bytes, content_type: Optional[str] = None) -> "SubmittedFile":
        return cls(filename=filename, size_bytes=len(payload), content_type=content_type, payload=payload)


class StatusHandle(Protocol):
    async def edit(self, text: str) -> None: ...


class StatusReporter(Protocol):
    """Posts the per-file progress message that is later edited in place."""

    async def post(self, text: str) -> StatusHandle: ...


@dataclass(slots=True)
class SubmissionEvent:
    author: str
    channel_id: str
    reporter: StatusReporter
    attachments: Sequence[SubmittedFile] = field(default_factory=list)
    author_is_bot: bool = False


__all__ = [
    "PayloadFetcher",
    "StatusHandle",
    "StatusReporter",
    "SubmissionEvent",
    "SubmittedFile",
]
