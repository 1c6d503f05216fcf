"""InboxSweep — terminal mailbox triage by sender domain."""
