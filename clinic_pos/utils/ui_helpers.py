from PySide6.QtWidgets import QWidget, QMessageBox


def info(parent: QWidget, title: str, text: str):
    QMessageBox.information(parent, title, text)


def error(parent: QWidget, title: str, text: str):
    QMessageBox.critical(parent, title, text)


def confirm(parent: QWidget, title: str, text: str) -> bool:
    """Yes/No question; defaults to No so a stray Enter never confirms."""
    res = QMessageBox.question(
        parent, title, text,
        QMessageBox.Yes | QMessageBox.No,
        QMessageBox.No,
    )
    return res == QMessageBox.Yes


def bullet_list(lines: list[str]) -> str:
    return "\n".join(f"• {line}" for line in lines)
