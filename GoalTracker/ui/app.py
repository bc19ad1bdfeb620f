"""Application setup utilities and custom QApplication for GoalTracker.

This module provides:
    - set_model_id: set Windows AppUserModelID for custom window icons on Windows
    - Application: subclass of QApplication configuring application metadata
"""
import ctypes
import sys
import uuid
from typing import Optional, Sequence

from PySide6 import QtCore, QtGui, QtWidgets

from .. import __version__


def set_app_icon() -> None:
    """Set application icon for all platforms."""
    from ..settings import lib
    icon_path = lib.settings.template_dir / 'icon.png'
    if icon_path.exists():
        app = QtWidgets.QApplication.instance()
        app.setWindowIcon(QtGui.QIcon(icon_path.as_posix()))


def set_model_id() -> None:
    """Set windows model id to add custom window icons on windows."""
    if QtCore.QSysInfo().productType() in ('windows', 'winrt'):
        hresult = ctypes.windll.shell32.SetCurrentProcessExplicitAppUserModelID(
            f'GoalTracker-{uuid.uuid4()}'
        )
        if hresult != 0:
            raise RuntimeError(f'SetCurrentProcessExplicitAppUserModelID failed with code {hresult}')


class Application(QtWidgets.QApplication):
    """Custom QApplication setting the application name, version and icon."""

    def __init__(self, argv: Optional[Sequence[str]] = None) -> None:
        if argv is None:
            argv = sys.argv

        super().__init__(list(argv))

        from ..settings import lib
        self.setApplicationName(lib.app_name)
        self.setOrganizationName('')
        self.setApplicationVersion(__version__)
        self.setQuitOnLastWindowClosed(True)

        set_model_id()
        set_app_icon()
