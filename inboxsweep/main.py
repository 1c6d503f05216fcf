"""InboxSweep — entry point for the terminal application."""
from __future__ import annotations

import argparse
import curses
import locale
import logging
import sys

import inboxsweep.config as cfg
from inboxsweep.cli import add_account_arguments, load_or_rebuild, open_session
from inboxsweep.imap.connection import IMAPConnectionError
from inboxsweep.imap.gateway import GatewayError
from inboxsweep.ui.screens import Session, SessionSettings
from inboxsweep.ui.terminal import CursesTerminal

logger = logging.getLogger(__name__)


def _setup_logging(verbose: bool = False) -> None:
    # The terminal belongs to curses, so log to file only
    fmt = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=fmt,
        handlers=[logging.FileHandler(cfg.LOG_PATH, encoding="utf-8")],
    )


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="inboxsweep",
        description="InboxSweep — triage a mailbox by sender domain",
    )
    add_account_arguments(p)
    return p


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    cfg.ensure_dirs()
    _setup_logging(args.verbose)
    locale.setlocale(locale.LC_ALL, "")

    try:
        account, gateway, index = open_session(args)
    except IMAPConnectionError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1

    try:
        print(f"Loading index for {account.mailbox}…")
        load_or_rebuild(index, gateway, args.rebuild, args.max_count)
        settings = SessionSettings(
            index_max_count=args.max_count if args.max_count is not None else cfg.INDEX_MAX_COUNT,
            recent_days=cfg.RECENT_DAYS,
            search_max_results=cfg.SEARCH_MAX_RESULTS,
        )

        def _run(stdscr) -> None:
            Session(gateway, index, CursesTerminal(stdscr), settings, source_folder=account.folder).run()

        curses.wrapper(_run)
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130
    except GatewayError as exc:
        logger.error("Fatal gateway error: %s", exc)
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1
    finally:
        try:
            gateway.logout()
        except Exception as exc:
            logger.debug("Logout failed: %s", exc)
    logger.info("Shutdown ok")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
