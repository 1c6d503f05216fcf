"""InboxSweep CLI — index a mailbox and print its sender domains."""
from __future__ import annotations

import argparse
import getpass
import logging
import sys

import inboxsweep.config as cfg
from inboxsweep.imap.connection import IMAPConnectionError, connect
from inboxsweep.imap.gateway import GatewayError, ImapGateway
from inboxsweep.index.sender_index import SenderIndex, cache_path_for
from inboxsweep.models.account import Account
from inboxsweep.utils.keyring_store import delete_password, get_password, set_password
from inboxsweep.utils.size_fmt import human_size

logger = logging.getLogger(__name__)


def add_account_arguments(p: argparse.ArgumentParser) -> None:
    p.add_argument("--host", help="IMAP server hostname (default: last used)")
    p.add_argument("--port", type=int, default=993, help="IMAP port (default 993)")
    p.add_argument("--username", help="IMAP username / email (default: last used)")
    p.add_argument("--no-ssl", action="store_true", help="Disable SSL/TLS")
    p.add_argument("--folder", help=f"Folder to triage (default: {cfg.DEFAULT_FOLDER})")
    p.add_argument("--reset-password", action="store_true", help="Prompt for the password and store it again")
    p.add_argument("--rebuild", action="store_true", help="Rebuild the sender index from the server")
    p.add_argument("--max-count", type=int, help="Index at most this many (newest) messages")
    p.add_argument("-v", "--verbose", action="store_true")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="inboxsweep-cli",
        description="InboxSweep — index a mailbox by sender domain (CLI)",
    )
    add_account_arguments(p)
    p.add_argument("--list-folders", action="store_true", help="Print the server's folders and exit")
    p.add_argument("--top", type=int, default=50, help="Number of domains to print (default 50)")
    return p


def resolve_account(args: argparse.Namespace) -> Account | None:
    """Account from the command line, else the one saved by the last session."""
    if args.host and args.username:
        return Account(
            display_name=f"{args.username}@{args.host}",
            host=args.host,
            port=args.port,
            username=args.username,
            use_ssl=not args.no_ssl,
            folder=args.folder or cfg.DEFAULT_FOLDER,
        )
    account = cfg.load_account()
    if account and args.folder:
        account.folder = args.folder
    return account


def ensure_password(account: Account, reset: bool = False) -> None:
    if not reset and get_password(account.username, account.host) is not None:
        return
    if reset:
        delete_password(account.username, account.host)
    password = getpass.getpass(f"Password for {account.username}@{account.host}: ")
    if not set_password(account.username, account.host, password):
        raise IMAPConnectionError("Could not store the password in the system keyring")


def open_session(args: argparse.Namespace) -> tuple[Account, ImapGateway, SenderIndex]:
    """Connect and return (account, gateway, index) with the index loaded.

    Raises IMAPConnectionError when no account is known or login fails.
    """
    account = resolve_account(args)
    if account is None:
        raise IMAPConnectionError("No account given: pass --host and --username")
    ensure_password(account, reset=args.reset_password)

    client = connect(account, timeout=cfg.CONNECT_TIMEOUT_SECONDS)
    cfg.save_account(account)
    gateway = ImapGateway(client, account.folder)
    index = SenderIndex(cache_path_for(account.mailbox, cfg.CACHE_DIR))
    return account, gateway, index


def load_or_rebuild(index: SenderIndex, gateway: ImapGateway, rebuild: bool, max_count: int | None) -> None:
    if not rebuild and index.load():
        return
    if not rebuild:
        print("No usable index cache, rebuilding…")
    limit = max_count if max_count is not None else cfg.INDEX_MAX_COUNT
    index.rebuild(gateway, limit or None)


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    cfg.ensure_dirs()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(cfg.LOG_PATH, encoding="utf-8"),
        ],
    )

    try:
        account, gateway, index = open_session(args)
    except IMAPConnectionError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        sys.exit(1)

    try:
        if args.list_folders:
            for folder in gateway.list_folders():
                print(folder.id)
            return

        print(f"Indexing {account.folder} of {account.mailbox}…")
        load_or_rebuild(index, gateway, args.rebuild, args.max_count)
    except GatewayError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        sys.exit(1)
    finally:
        try:
            gateway.logout()
        except Exception as exc:
            logger.debug("Logout failed: %s", exc)

    # Summary table
    print("\n" + "=" * 64)
    print(f"{'DOMAIN':<40} {'MESSAGES':>10} {'SIZE':>12}")
    print("-" * 64)
    for bucket in index.domains()[: args.top]:
        print(f"{bucket.domain_key:<40} {bucket.message_count:>10} {human_size(bucket.total_size_bytes):>12}")
    print("=" * 64)
    print(f"{len(index)} domain(s), {index.total_messages} message(s)")
    print(f"Index: {index.path}")


if __name__ == "__main__":
    main()
