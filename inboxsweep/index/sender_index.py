"""Sender index — the domain-grouped, persisted cache of one mailbox.

The index maps a lowercase sender domain to a DomainBucket holding the
messages received from that domain, in the order the gateway returned them.
Every mutation is written through to a JSON snapshot on disk.  The snapshot
is trusted only as a whole: a file that fails validation anywhere is
discarded and the caller is told to rebuild.
"""
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from email.utils import parseaddr
from pathlib import Path
from typing import TYPE_CHECKING, Iterator

from inboxsweep.models.message import MessageRecord

if TYPE_CHECKING:
    from inboxsweep.imap.gateway import MailboxGateway

logger = logging.getLogger(__name__)

UNKNOWN_DOMAIN = "unknown-domain"

# Transient result sets that never live in the index
RECENT_VIEW = "recent-view"
SEARCH_VIEW = "search-view"
RESERVED_KEYS = frozenset({RECENT_VIEW, SEARCH_VIEW})

_NON_ALNUM = re.compile(r"[^A-Za-z0-9]")
_BAD_HOST_RE = re.compile(r"[\s@<>]")


def domain_key_for(address: str | None) -> str:
    """Lowercased host part of *address*, or UNKNOWN_DOMAIN when malformed."""
    if not address:
        return UNKNOWN_DOMAIN
    _, addr = parseaddr(address)
    local, sep, host = (addr or address).strip().rpartition("@")
    host = host.strip().lower()
    if not sep or not local or not host or _BAD_HOST_RE.search(host):
        return UNKNOWN_DOMAIN
    return host


def cache_path_for(mailbox: str, cache_dir: Path) -> Path:
    """One snapshot file per mailbox; non-alphanumerics are replaced by '_'."""
    return Path(cache_dir) / f"{_NON_ALNUM.sub('_', mailbox)}.json"


class CacheCorruption(ValueError):
    """The persisted snapshot is unreadable or structurally invalid."""


@dataclass
class DomainBucket:
    domain_key: str
    messages: list[MessageRecord] = field(default_factory=list)

    @property
    def message_count(self) -> int:
        return len(self.messages)

    @property
    def total_size_bytes(self) -> int:
        return sum(m.size_bytes or 0 for m in self.messages)

    def to_cache_dict(self) -> dict:
        return {
            "Name": self.domain_key,
            "Count": self.message_count,
            "Messages": [m.to_cache_dict() for m in self.messages],
        }


class SenderIndex:
    """Owned store for one mailbox's domain buckets.

    Consumers receive the store by handle; there is no module-level state.
    """

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path)
        self._buckets: dict[str, DomainBucket] = {}

    @property
    def path(self) -> Path:
        return self._path

    # ── Queries ───────────────────────────────────────────────────────────────

    def __len__(self) -> int:
        return len(self._buckets)

    def __contains__(self, domain_key: object) -> bool:
        return isinstance(domain_key, str) and domain_key.lower() in self._buckets

    def __iter__(self) -> Iterator[DomainBucket]:
        return iter(self._buckets.values())

    @property
    def total_messages(self) -> int:
        return sum(b.message_count for b in self._buckets.values())

    def get(self, domain_key: str) -> DomainBucket | None:
        return self._buckets.get(domain_key.lower())

    def messages_for(self, domain_key: str) -> list[MessageRecord]:
        bucket = self.get(domain_key)
        return list(bucket.messages) if bucket else []

    def domains(self) -> list[DomainBucket]:
        """Buckets ordered by message count (descending), then domain."""
        return sorted(self._buckets.values(), key=lambda b: (-b.message_count, b.domain_key))

    # ── Build ─────────────────────────────────────────────────────────────────

    def rebuild(self, gateway: MailboxGateway, max_count: int | None = None) -> int:
        """Replace the index with a fresh one from the gateway.  Returns message count.

        Gateway errors propagate and leave the current index untouched.
        """
        records = gateway.fetch_messages(max_count=max_count or None)
        self._buckets = {}
        for record in records:
            self._add(record)
        logger.info(
            "Indexed %d message(s) from %d domain(s)", len(records), len(self._buckets)
        )
        self.save()
        return len(records)

    def _add(self, record: MessageRecord) -> None:
        key = domain_key_for(record.sender_address)
        bucket = self._buckets.get(key)
        if bucket is None:
            bucket = self._buckets[key] = DomainBucket(domain_key=key)
        bucket.messages.append(record)

    # ── Persistence ───────────────────────────────────────────────────────────

    def load(self) -> bool:
        """Replace the in-memory index with the persisted snapshot.

        Returns False ("no usable cache") when the file is missing or
        corrupt; in that case the in-memory index is left empty.
        """
        self._buckets = {}
        if not self._path.exists():
            logger.info("No index snapshot at %s", self._path)
            return False
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
            buckets = _parse_snapshot(raw)
        except (OSError, ValueError, TypeError, RecursionError) as exc:
            logger.warning("Discarding unusable index snapshot %s: %s", self._path, exc)
            return False
        self._buckets = buckets
        logger.info(
            "Loaded index: %d message(s) in %d domain(s)", self.total_messages, len(buckets)
        )
        return True

    def save(self) -> bool:
        """Write the full index to disk.  Failures are warned, never raised."""
        data = {key: bucket.to_cache_dict() for key, bucket in self._buckets.items()}
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self._path.with_suffix(self._path.suffix + ".tmp")
            tmp.write_text(json.dumps(data, indent=1), encoding="utf-8")
            tmp.replace(self._path)
        except Exception as exc:
            logger.warning("Could not save index to %s: %s", self._path, exc)
            return False
        return True

    # ── Mutations ─────────────────────────────────────────────────────────────

    def remove_message(self, domain_key: str, message_id: str) -> bool:
        """Remove one record.  Returns False (no-op) when key or id is absent."""
        if domain_key in RESERVED_KEYS:
            return False
        key = domain_key.lower()
        bucket = self._buckets.get(key)
        if bucket is None:
            logger.info("remove_message: domain %r not in index", domain_key)
            return False
        for i, record in enumerate(bucket.messages):
            if record.message_id == message_id:
                del bucket.messages[i]
                break
        else:
            logger.info("remove_message: %r not cached under %r", message_id, key)
            return False
        if not bucket.messages:
            del self._buckets[key]
            logger.debug("Domain %s emptied, bucket dropped", key)
        self.save()
        return True

    def remove_domain(self, domain_key: str) -> bool:
        """Remove a whole bucket.  Returns False (no-op) when absent."""
        if domain_key in RESERVED_KEYS:
            return False
        if self._buckets.pop(domain_key.lower(), None) is None:
            logger.info("remove_domain: domain %r not in index", domain_key)
            return False
        self.save()
        return True


def _parse_snapshot(raw: object) -> dict[str, DomainBucket]:
    """Validate a decoded snapshot completely before anything is applied."""
    if not isinstance(raw, dict):
        raise CacheCorruption("snapshot root is not an object")
    buckets: dict[str, DomainBucket] = {}
    for key, entry in raw.items():
        if not isinstance(key, str) or not key or key != key.lower():
            raise CacheCorruption(f"invalid domain key {key!r}")
        if not isinstance(entry, dict):
            raise CacheCorruption(f"entry for {key!r} is not an object")
        messages = entry.get("Messages")
        count = entry.get("Count")
        if not isinstance(messages, list) or not isinstance(count, int):
            raise CacheCorruption(f"entry for {key!r} lacks Count/Messages")
        if count != len(messages):
            raise CacheCorruption(f"entry for {key!r}: Count {count} != {len(messages)} messages")
        if not messages:
            raise CacheCorruption(f"entry for {key!r} is empty")
        buckets[key] = DomainBucket(
            domain_key=key,
            messages=[MessageRecord.from_cache_dict(m) for m in messages],
        )
    return buckets
