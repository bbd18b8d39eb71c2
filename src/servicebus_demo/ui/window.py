from __future__ import annotations

from typing import Callable

from PySide6.QtCore import Qt
from PySide6.QtGui import QCloseEvent
from PySide6.QtWidgets import (
    QHBoxLayout,
    QLabel,
    QMainWindow,
    QPushButton,
    QVBoxLayout,
    QWidget,
)

from servicebus_demo.auth import AuthManager, AuthenticationState
from servicebus_demo.bus import BusSession
from servicebus_demo.events import ResultEvent
from servicebus_demo.utils import get_logger
from servicebus_demo.utils.asyncio import AsyncBridge


logger = get_logger(__name__)

NO_SESSION_MESSAGE = "No session available"
STRANGER_GREETING = "Hey stranger, you look new!"


class MainWindow(QMainWindow):
    """Login header plus the three Service Bus actions and the latest result.

    A fresh :class:`BusSession` is built from ``session_factory`` every time
    the user becomes authenticated and torn down on logout or close.
    """

    def __init__(
        self,
        auth: AuthManager,
        session_factory: Callable[[], BusSession],
        *,
        bridge: AsyncBridge | None = None,
        parent: QWidget | None = None,
    ) -> None:
        super().__init__(parent)
        self._auth = auth
        self._session_factory = session_factory
        self._bridge = bridge or AsyncBridge()
        self._session: BusSession | None = None
        self._session_unsubscribe: Callable[[], None] | None = None

        self.setWindowTitle("Service Bus Demo")
        self._build_ui()

        self._bridge.task_completed.connect(self._handle_task_completed)
        self._auth_unsubscribe = auth.state_changed.subscribe(self._handle_auth_state)
        self._handle_auth_state(auth.state)

    @property
    def session(self) -> BusSession | None:
        return self._session

    @property
    def result_text(self) -> str:
        return self._result_label.text()

    def _build_ui(self) -> None:
        container = QWidget()
        layout = QVBoxLayout(container)
        layout.setContentsMargins(24, 24, 24, 24)
        layout.setSpacing(12)

        header = QHBoxLayout()
        self._greeting_label = QLabel(STRANGER_GREETING)
        header.addWidget(self._greeting_label, stretch=1)
        self._login_button = QPushButton("Login")
        self._login_button.clicked.connect(self._handle_login_clicked)
        header.addWidget(self._login_button)
        self._logout_button = QPushButton("Logout")
        self._logout_button.clicked.connect(self._handle_logout_clicked)
        header.addWidget(self._logout_button)
        layout.addLayout(header)

        self._actions = QWidget()
        actions_layout = QVBoxLayout(self._actions)
        actions_layout.setContentsMargins(0, 0, 0, 0)
        self._list_button = QPushButton("Get Subscriptions")
        self._list_button.clicked.connect(self._handle_list_clicked)
        self._create_button = QPushButton("Create Subscription")
        self._create_button.clicked.connect(self._handle_create_clicked)
        self._send_button = QPushButton("Send")
        self._send_button.clicked.connect(self._handle_send_clicked)
        for button in (self._list_button, self._create_button, self._send_button):
            actions_layout.addWidget(button)

        self._result_label = QLabel()
        self._result_label.setWordWrap(True)
        self._result_label.setTextFormat(Qt.TextFormat.PlainText)
        self._result_label.setTextInteractionFlags(
            Qt.TextInteractionFlag.TextSelectableByMouse
        )
        layout.addWidget(self._actions)
        # Stays visible while signed out so sign-in failures can be shown.
        layout.addWidget(self._result_label)
        layout.addStretch(1)

        self.setCentralWidget(container)

    # Authentication --------------------------------------------------

    def _handle_auth_state(self, state: AuthenticationState) -> None:
        authenticated = state is AuthenticationState.AUTHENTICATED
        self._login_button.setHidden(authenticated)
        self._login_button.setEnabled(state is not AuthenticationState.IN_PROGRESS)
        self._logout_button.setHidden(not authenticated)
        self._actions.setHidden(not authenticated)
        self._greeting_label.setText(self._greeting(authenticated))

        if authenticated and self._session is None:
            self._bridge.run_coroutine(self._start_session())
        elif state is AuthenticationState.UNAUTHENTICATED:
            session = self._detach_session()
            if session is not None:
                self._bridge.run_coroutine(session.uninitialize())

    def _greeting(self, authenticated: bool) -> str:
        user = self._auth.current_user()
        if authenticated and user is not None:
            return f"Welcome, {user.display_name or user.username}!"
        return STRANGER_GREETING

    def _handle_login_clicked(self) -> None:
        self._bridge.run_coroutine(self._auth.sign_in_interactive())

    def _handle_logout_clicked(self) -> None:
        self._bridge.run_coroutine(self._logout())

    async def _logout(self) -> None:
        session = self._detach_session()
        if session is not None:
            await session.uninitialize()
        await self._auth.sign_out()

    # Session ---------------------------------------------------------

    async def _start_session(self) -> None:
        session = self._session_factory()
        self._session = session
        self._session_unsubscribe = session.subscribe(self._handle_result)
        try:
            await session.initialize(self._auth)
        except Exception:
            if self._session is session:
                self._detach_session()
            raise

    def _detach_session(self) -> BusSession | None:
        session, self._session = self._session, None
        if self._session_unsubscribe is not None:
            self._session_unsubscribe()
            self._session_unsubscribe = None
        return session

    def _handle_result(self, event: ResultEvent) -> None:
        self._result_label.setText(event.message)

    def _handle_task_completed(self, _result: object, error: object) -> None:
        if error is None:
            return
        logger.warning("Background operation failed", error=str(error))
        self._result_label.setText(f"Error occurred: {error}")

    # Actions ---------------------------------------------------------

    def _handle_list_clicked(self) -> None:
        if self._session is None:
            self._result_label.setText(NO_SESSION_MESSAGE)
            return
        self._session.get_subscriptions()

    def _handle_create_clicked(self) -> None:
        if self._session is None:
            self._result_label.setText(NO_SESSION_MESSAGE)
            return
        self._session.create_subscription()

    def _handle_send_clicked(self) -> None:
        if self._session is None:
            self._result_label.setText(NO_SESSION_MESSAGE)
            return
        self._bridge.run_coroutine(self._session.send())

    # Lifecycle -------------------------------------------------------

    async def shutdown(self) -> None:
        session = self._detach_session()
        if session is not None:
            await session.uninitialize()
        await self._bridge.wait_idle()

    def closeEvent(self, event: QCloseEvent) -> None:  # noqa: N802 - Qt override
        session = self._detach_session()
        if session is not None:
            # Keep the window open until the connection is closed.
            event.ignore()
            future = self._bridge.run_coroutine(session.uninitialize())
            future.add_done_callback(lambda _future: self.close())
            return
        self._auth_unsubscribe()
        super().closeEvent(event)


__all__ = ["MainWindow", "NO_SESSION_MESSAGE", "STRANGER_GREETING"]
