"""Folder dataclass — one node of the remote folder tree."""
from __future__ import annotations

from dataclasses import dataclass


@dataclass
class Folder:
    id: str = ""
    display_name: str = ""
    parent_id: str | None = None

    @property
    def is_top_level(self) -> bool:
        return self.parent_id is None
