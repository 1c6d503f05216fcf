"""Bulk action executor — Delete / Move across many messages.

For each target, in order:
  1. resolve the message id (records without one are skipped as failures)
  2. call the gateway
  3. on success, drop the record from the sender index right away

A failing item is recorded and the batch continues; the index only ever
loses entries the server confirmed, so under partial failure it
under-reports exactly the items that were not mutated remotely.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Sequence

from inboxsweep.imap.gateway import MailboxGateway
from inboxsweep.index.sender_index import RESERVED_KEYS, SenderIndex, domain_key_for
from inboxsweep.models.message import MessageRecord

logger = logging.getLogger(__name__)


class ActionKind(str, Enum):
    DELETE = "delete"
    MOVE = "move"


class ExecutorState(str, Enum):
    IDLE = "idle"
    CONFIRMING = "confirming"
    CANCELLED = "cancelled"
    EXECUTING = "executing"
    REPORTING = "reporting"


@dataclass(frozen=True)
class BulkActionRequest:
    targets: tuple[MessageRecord, ...]
    kind: ActionKind
    view_key: str
    destination_folder_id: str | None = None

    @property
    def target_message_ids(self) -> list[str]:
        return [t.message_id for t in self.targets]


@dataclass(frozen=True)
class FailedItem:
    subject: str
    message_id: str
    reason: str


@dataclass
class BulkResult:
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    failures: list[FailedItem] = field(default_factory=list)
    cancelled: bool = False
    stale_domain: bool = False

    @property
    def summary(self) -> str:
        if self.cancelled:
            return "Cancelled."
        text = f"{self.succeeded}/{self.attempted} succeeded, {self.failed} failed"
        if self.stale_domain:
            text += " (index may be stale, rebuild advised)"
        return text


Confirm = Callable[[str], bool]
Report = Callable[[str], None]


class BulkActionExecutor:
    """Runs one bulk action at a time, synchronously."""

    def __init__(
        self,
        gateway: MailboxGateway,
        index: SenderIndex,
        confirm: Confirm,
        report: Report | None = None,
    ) -> None:
        self._gateway = gateway
        self._index = index
        self._confirm = confirm
        self._report = report or (lambda text: None)
        self.state = ExecutorState.IDLE

    def execute(self, request: BulkActionRequest) -> BulkResult:
        """Apply *request* item by item, reconciling the index per success."""
        _validate(request.targets, request.kind, request.destination_folder_id)
        self._enter()
        try:
            if not self._ask(_prompt(request.kind, len(request.targets), request.destination_folder_id)):
                return BulkResult(cancelled=True)

            def reconcile(record: MessageRecord) -> None:
                self._index.remove_message(_owning_domain(request.view_key, record), record.message_id)

            result, _ = self._run(request.targets, request.kind, request.destination_folder_id, reconcile)
            self._finish(result)
            return result
        finally:
            self.state = ExecutorState.IDLE

    def execute_domain(
        self,
        domain_key: str,
        kind: ActionKind,
        destination_folder_id: str | None = None,
    ) -> BulkResult:
        """Apply *kind* to every cached message of one domain."""
        return self.execute_domains([domain_key], kind, destination_folder_id)[0]

    def execute_domains(
        self,
        domain_keys: Sequence[str],
        kind: ActionKind,
        destination_folder_id: str | None = None,
    ) -> list[BulkResult]:
        """Apply *kind* to every cached message of each domain, one result per domain.

        A single confirmation covers all domains.  Full success drops a bucket
        in one call.  On partial success the succeeded items are removed
        individually and the remaining entries are flagged as possibly stale.
        """
        batches = [(key, tuple(self._index.messages_for(key))) for key in domain_keys]
        if not batches:
            raise ValueError("bulk action needs at least one domain")
        for _, targets in batches:
            _validate(targets, kind, destination_folder_id)
        self._enter()
        try:
            total = sum(len(targets) for _, targets in batches)
            scope = f"from {batches[0][0]}" if len(batches) == 1 else f"from {len(batches)} domains"
            if not self._ask(_prompt(kind, total, destination_folder_id, scope=scope)):
                return [BulkResult(cancelled=True)]

            results = []
            for domain_key, targets in batches:
                result, done = self._run(targets, kind, destination_folder_id, reconcile=None)
                if result.failed == 0:
                    self._index.remove_domain(domain_key)
                else:
                    for record in done:
                        self._index.remove_message(domain_key, record.message_id)
                    if result.succeeded:
                        result.stale_domain = True
                        logger.warning(
                            "%s on %s partially failed (%d/%d); remaining entries may be stale, rebuild advised",
                            kind.value, domain_key, result.failed, result.attempted,
                        )
                self._finish(result)
                results.append(result)
            return results
        finally:
            self.state = ExecutorState.IDLE

    # ── Internals ─────────────────────────────────────────────────────────────

    def _enter(self) -> None:
        if self.state is not ExecutorState.IDLE:
            raise RuntimeError(f"bulk action already in progress ({self.state.value})")
        self.state = ExecutorState.CONFIRMING

    def _ask(self, prompt: str) -> bool:
        if self._confirm(prompt):
            return True
        self.state = ExecutorState.CANCELLED
        logger.info("Bulk action cancelled by operator")
        return False

    def _run(
        self,
        targets: Sequence[MessageRecord],
        kind: ActionKind,
        destination: str | None,
        reconcile: Callable[[MessageRecord], None] | None,
    ) -> tuple[BulkResult, list[MessageRecord]]:
        self.state = ExecutorState.EXECUTING
        result = BulkResult(attempted=len(targets))
        done: list[MessageRecord] = []
        for record in targets:
            if not record.message_id:
                result.failed += 1
                result.failures.append(FailedItem(record.subject, "", "no message id"))
                logger.warning("Skipping %r: no message id", record.subject)
                continue
            try:
                if kind is ActionKind.DELETE:
                    self._gateway.delete_message(record.message_id)
                else:
                    self._gateway.move_message(record.message_id, destination or "")
            except Exception as exc:
                result.failed += 1
                result.failures.append(FailedItem(record.subject, record.message_id, str(exc)))
                logger.error("%s failed for %s: %s", kind.value, record.message_id, exc)
                continue
            result.succeeded += 1
            done.append(record)
            if reconcile is not None:
                reconcile(record)
        return result, done

    def _finish(self, result: BulkResult) -> None:
        self.state = ExecutorState.REPORTING
        for item in result.failures:
            self._report(f"FAILED: {item.subject or '(no subject)'} [{item.message_id or '?'}]: {item.reason}")
        self._report(result.summary)
        logger.info(
            "Bulk action done: attempted=%d succeeded=%d failed=%d",
            result.attempted, result.succeeded, result.failed,
        )


def _validate(targets: Sequence[MessageRecord], kind: ActionKind, destination: str | None) -> None:
    if not targets:
        raise ValueError("bulk action needs at least one target")
    if kind is ActionKind.MOVE and not destination:
        raise ValueError("move needs a destination folder")


def _prompt(kind: ActionKind, count: int, destination: str | None, scope: str = "") -> str:
    what = f"{count} message(s)" + (f" {scope}" if scope else "")
    if kind is ActionKind.MOVE:
        return f"Move {what} to '{destination}'?"
    return f"Delete {what}?"


def _owning_domain(view_key: str, record: MessageRecord) -> str:
    """Bucket a record lives in: the listing's domain, or its own for live views."""
    if view_key in RESERVED_KEYS:
        return domain_key_for(record.sender_address)
    return view_key
