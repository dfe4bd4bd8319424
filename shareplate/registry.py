import logging
import re
import threading
from datetime import datetime, time, timedelta, timezone
from enum import Enum
from typing import Callable
from uuid import uuid4

from shareplate.models import FileRecord, FileStats, StorageHandle
from shareplate.sharing import SHARE_CODE_LENGTH

logger = logging.getLogger(__name__)

_CODE_PATTERN = re.compile(r"[A-Z0-9]+")
_LINK_SUFFIX_PATTERN = re.compile(r"/d/([a-zA-Z0-9]+)\Z")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class IdentifierKind(str, Enum):
    CODE = "code"
    LINK = "link"
    LINK_SUFFIX = "link_suffix"


def _match_code(identifier: str) -> str | None:
    if len(identifier) == SHARE_CODE_LENGTH and _CODE_PATTERN.fullmatch(identifier):
        return identifier
    return None


def _match_link(identifier: str) -> str | None:
    return identifier if identifier.startswith("http") else None


def _match_link_suffix(identifier: str) -> str | None:
    match = _LINK_SUFFIX_PATTERN.search(identifier)
    return match.group(1) if match else None


# Tried in order, first match wins.
_MATCHERS: list[tuple[IdentifierKind, Callable[[str], str | None]]] = [
    (IdentifierKind.CODE, _match_code),
    (IdentifierKind.LINK, _match_link),
    (IdentifierKind.LINK_SUFFIX, _match_link_suffix),
]


def classify_identifier(identifier: str) -> tuple[IdentifierKind, str] | None:
    """Work out whether a user-supplied string is a share code, a full share
    link or a ``/d/<suffix>`` fragment.

    Returns the kind together with the value to look up (the suffix alone for
    fragments), or ``None`` when the string looks like none of them.
    """
    for kind, matcher in _MATCHERS:
        value = matcher(identifier)
        if value is not None:
            return kind, value
    return None


class ShareConflictError(Exception):
    def __init__(self, field: str, value: str):
        super().__init__(f"{field} {value!r} is already in use")
        self.field = field
        self.value = value


class FileRegistry:
    """In-memory store of relayed files for the lifetime of the process.

    One instance is shared by all request handlers; every operation runs under
    a single lock so readers never see a half-applied create or delete.
    """

    def __init__(self, clock: Callable[[], datetime] = utc_now):
        self._clock = clock
        self._lock = threading.Lock()
        self._files: dict[str, FileRecord] = {}
        self._by_code: dict[str, str] = {}
        self._by_link: dict[str, str] = {}

    def create(
        self,
        *,
        original_name: str,
        storage_handle: StorageHandle,
        file_size: int,
        mime_type: str,
        share_code: str,
        share_link: str,
    ) -> FileRecord:
        with self._lock:
            if share_code in self._by_code:
                raise ShareConflictError("share_code", share_code)
            if share_link in self._by_link:
                raise ShareConflictError("share_link", share_link)

            record = FileRecord(
                id=str(uuid4()),
                original_name=original_name,
                storage_handle=storage_handle,
                file_size=file_size,
                mime_type=mime_type,
                share_code=share_code,
                share_link=share_link,
                uploaded_at=self._clock(),
            )
            self._files[record.id] = record
            self._by_code[share_code] = record.id
            self._by_link[share_link] = record.id
        logger.info("Registered file %s (%s, %d bytes)", record.id, original_name, file_size)
        return record

    def get_by_id(self, file_id: str) -> FileRecord | None:
        with self._lock:
            return self._files.get(file_id)

    def get_by_code(self, code: str) -> FileRecord | None:
        with self._lock:
            return self._lookup(self._by_code, code)

    def get_by_link(self, link: str) -> FileRecord | None:
        with self._lock:
            return self._lookup(self._by_link, link)

    def _lookup(self, index: dict[str, str], key: str) -> FileRecord | None:
        file_id = index.get(key)
        return self._files.get(file_id) if file_id else None

    def _find_by_link_suffix(self, suffix: str) -> FileRecord | None:
        tail = f"/d/{suffix}"
        with self._lock:
            for record in self._files.values():
                if record.share_link.endswith(tail):
                    return record
        return None

    def resolve(self, identifier: str) -> FileRecord | None:
        classified = classify_identifier(identifier)
        if classified is None:
            return None
        kind, value = classified
        if kind is IdentifierKind.CODE:
            return self.get_by_code(value)
        if kind is IdentifierKind.LINK:
            return self.get_by_link(value)
        return self._find_by_link_suffix(value)

    def delete(self, file_id: str) -> bool:
        with self._lock:
            record = self._files.pop(file_id, None)
            if record is None:
                return False
            del self._by_code[record.share_code]
            del self._by_link[record.share_link]
        logger.info("Removed file %s from registry", file_id)
        return True

    def list_all(self) -> list[FileRecord]:
        with self._lock:
            records = list(self._files.values())
        # Equal timestamps keep newest-inserted first.
        return sorted(reversed(records), key=lambda record: record.uploaded_at, reverse=True)

    def stats(self) -> FileStats:
        with self._lock:
            records = list(self._files.values())

        # Local calendar day, midnight to midnight; each bound takes its own UTC offset.
        today = self._clock().astimezone().date()
        day_start = datetime.combine(today, time.min).astimezone()
        day_end = datetime.combine(today + timedelta(days=1), time.min).astimezone()
        uploaded_today = sum(1 for record in records if day_start <= record.uploaded_at < day_end)

        return FileStats(
            total_files=len(records),
            total_storage_bytes=sum(record.file_size for record in records),
            today_uploads=uploaded_today,
            active_links=len(records),
        )

    def __len__(self) -> int:
        with self._lock:
            return len(self._files)
