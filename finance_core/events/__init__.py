"""Change notification package."""

from finance_core.events.notifier import ChangeHandler, ChangeNotifier

__all__ = ["ChangeHandler", "ChangeNotifier"]
