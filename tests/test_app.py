"""
Tests for GoalTracker.ui.app and the package entry point.

Run:
    python -m unittest tests.test_app
"""
import unittest
from unittest import mock

from PySide6 import QtCore, QtWidgets

import GoalTracker
from GoalTracker.settings import lib
from GoalTracker.status import status
from GoalTracker.ui import app
from tests.base import BaseTestCase


class AppHelpersTest(BaseTestCase):

    def test_set_model_id_is_noop_off_windows(self):
        if QtCore.QSysInfo().productType() not in ('windows', 'winrt'):
            app.set_model_id()

    def test_set_app_icon_without_icon_file(self):
        app.set_app_icon()
        self.assertTrue(QtWidgets.QApplication.instance().windowIcon().isNull())

    def test_version(self):
        self.assertEqual(GoalTracker.__version__, '0.1.0')
        self.assertEqual(lib.app_name, 'GoalTracker')

    def test_exec_exits_when_database_cannot_open(self):
        with mock.patch.object(app, 'Application'), \
                mock.patch('GoalTracker.core.database.open_database',
                           side_effect=status.PersistenceException('disk full')):
            with self.assertRaises(SystemExit) as ctx:
                GoalTracker.exec_()
        self.assertEqual(ctx.exception.code, 1)


if __name__ == '__main__':
    unittest.main()
