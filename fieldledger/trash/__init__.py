"""Undo support for deleted jobs."""

from fieldledger.trash.manager import TrashEntry, TrashManager, TrashState

__all__ = ["TrashEntry", "TrashManager", "TrashState"]
