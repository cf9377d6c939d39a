"""Zweek GUI entry point."""

from __future__ import annotations

import sys

from PySide6.QtWidgets import QApplication

from ..logging_setup import configure_logging
from .main_window import MainWindow


def main() -> None:
    """Launch the Zweek desktop application."""
    configure_logging()
    app = QApplication(sys.argv)
    window = MainWindow()
    window.show()
    sys.exit(app.exec())


if __name__ == "__main__":
    main()
