from PySide6.QtWidgets import (
    QApplication,
    QMainWindow,
    QWidget,
    QVBoxLayout,
    QHBoxLayout,
    QListWidget,
    QListWidgetItem,
    QStackedWidget,
    QSizePolicy,
)
from PySide6.QtCore import Qt
import sys

from .constants import APP_NAME
from .database import get_connection
from .database.backend import SqlitePosBackend
from .modules.base_module import BaseModule
from .modules.transactions.controller import TransactionsController
from .utils.loggers import get_logger

_log = get_logger()


class MainWindow(QMainWindow):
    def __init__(self, backend: SqlitePosBackend):
        super().__init__()
        self.setWindowTitle(APP_NAME)
        self.setWindowFlag(Qt.WindowMinimizeButtonHint, True)
        self.setWindowFlag(Qt.WindowMaximizeButtonHint, True)
        self.setMinimumSize(820, 520)

        self.backend = backend

        # ---- Central layout: left nav + stacked pages ----
        central = QWidget(self)
        layout = QVBoxLayout(central)
        self.setCentralWidget(central)

        self.nav = QListWidget()
        self.nav.setFixedWidth(120)
        self.nav.setSizePolicy(QSizePolicy.Fixed, QSizePolicy.Expanding)
        self.stack = QStackedWidget()

        row = QWidget()
        row_lay = QHBoxLayout(row)
        row_lay.addWidget(self.nav)
        row_lay.addWidget(self.stack, 1)
        layout.addWidget(row, 1)

        self.modules: list[tuple[str, BaseModule]] = []
        self.nav.currentRowChanged.connect(self.stack.setCurrentIndex)

        self.add_module("Transactions", TransactionsController(backend))

        if self.nav.count():
            self.nav.setCurrentRow(0)

    def add_module(self, title: str, module: BaseModule):
        page = module.get_widget()
        self.nav.addItem(QListWidgetItem(title))
        self.stack.addWidget(page)
        self.modules.append((title, module))

    def closeEvent(self, event):
        for title, module in self.modules:
            module.shutdown()
        super().closeEvent(event)


def main():
    app = QApplication.instance()
    if app is None:
        app = QApplication(sys.argv)
    app.setApplicationName(APP_NAME)

    conn = get_connection()
    backend = SqlitePosBackend(conn)
    _log.info("%s started", APP_NAME)

    win = MainWindow(backend)
    win.resize(1200, 720)
    win.show()
    try:
        return app.exec()
    finally:
        conn.close()


if __name__ == "__main__":
    sys.exit(main())
