from __future__ import annotations

import asyncio
import sys

from PySide6.QtWidgets import QApplication
from qasync import QEventLoop

from servicebus_demo.auth import AuthManager
from servicebus_demo.bus import BusSession
from servicebus_demo.config import SettingsManager
from servicebus_demo.errors import AuthenticationError
from servicebus_demo.ui import MainWindow
from servicebus_demo.utils import configure_logging, get_logger


def main() -> None:
    configure_logging()
    logger = get_logger(__name__)
    logger.info("Starting Service Bus demo")

    settings = SettingsManager().load()
    if not settings.is_configured:
        logger.warning(
            "Tenant or client id is not set; sign-in will be rejected by Entra ID"
        )
    auth = AuthManager()
    try:
        auth.configure(settings)
    except AuthenticationError as exc:
        # Sign-in reports the failure in the window.
        logger.error("Authentication is not configured", error=str(exc))

    app = QApplication(sys.argv)
    loop = QEventLoop(app)
    asyncio.set_event_loop(loop)

    window = MainWindow(auth, lambda: BusSession(settings))
    window.show()

    app.aboutToQuit.connect(loop.stop)

    try:
        with loop:
            loop.run_forever()
    except KeyboardInterrupt:
        logger.info("Application interrupted by user")


__all__ = ["main"]
