"""Account dataclass — the mailbox an InboxSweep session works on."""
from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any


@dataclass
class Account:
    display_name: str = ""
    host: str = ""
    port: int = 993
    username: str = ""
    use_ssl: bool = True
    folder: str = "INBOX"

    @property
    def mailbox(self) -> str:
        """Mailbox identity used to key the per-account index file."""
        if "@" in self.username:
            return self.username
        return f"{self.username}@{self.host}"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Account":
        return cls(
            display_name=str(data.get("display_name", "")),
            host=str(data.get("host", "")),
            port=int(data.get("port", 993)),
            username=str(data.get("username", "")),
            use_ssl=bool(data.get("use_ssl", True)),
            folder=str(data.get("folder", "INBOX")),
        )

    def __str__(self) -> str:
        return f"{self.display_name} <{self.username}@{self.host}>"
