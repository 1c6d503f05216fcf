"""IMAP connection factory — password auth from the system keyring."""
from __future__ import annotations

import logging

from imapclient import IMAPClient

from inboxsweep.models.account import Account
from inboxsweep.utils.keyring_store import get_password

logger = logging.getLogger(__name__)

_TRASH_NAMES = ("[gmail]/trash", "[google mail]/trash", "trash", "deleted items", "deleted messages", "deleted")


class IMAPConnectionError(Exception):
    pass


def connect(account: Account, timeout: int = 30) -> IMAPClient:
    """
    Create and authenticate an IMAPClient for the given account.
    Raises IMAPConnectionError on failure.
    """
    try:
        client = IMAPClient(
            host=account.host,
            port=account.port,
            ssl=account.use_ssl,
            timeout=timeout,
        )
    except Exception as exc:
        raise IMAPConnectionError(f"Cannot connect to {account.host}:{account.port}: {exc}") from exc

    password = get_password(account.username, account.host)
    if password is None:
        raise IMAPConnectionError(
            f"No password found for {account.username}@{account.host}. "
            "Run again with --reset-password to store credentials."
        )
    try:
        client.login(account.username, password)
    except Exception as exc:
        raise IMAPConnectionError(f"Authentication failed for {account.username}: {exc}") from exc

    logger.info("Authenticated %s@%s via password", account.username, account.host)
    return client


def find_trash_folder(folder_names: list[str]) -> str | None:
    """Return the server's Trash folder name, or None when there is none."""
    by_lower = {name.lower(): name for name in folder_names}
    for candidate in _TRASH_NAMES:
        if candidate in by_lower:
            return by_lower[candidate]
    for name in folder_names:
        if name.lower().endswith("/trash") or name.lower().endswith(".trash"):
            return name
    return None
