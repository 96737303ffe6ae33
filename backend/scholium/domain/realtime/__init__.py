"""Realtime change notification exports."""

from .events import ChangeEvent, ChangeKind
from .factory import build_notifier
from .notifier import ChangeNotifier, InMemoryNotifier

__all__ = ["ChangeEvent", "ChangeKind", "ChangeNotifier", "InMemoryNotifier", "build_notifier"]
