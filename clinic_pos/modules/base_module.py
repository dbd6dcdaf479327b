from PySide6.QtCore import QObject
from PySide6.QtWidgets import QWidget


class BaseModule(QObject):
    """A screen in the main window: owns its widget and any dialogs it opens."""

    def get_widget(self) -> QWidget:
        raise NotImplementedError

    def shutdown(self) -> None:
        """Called when the main window closes; close dialogs, stop timers."""
