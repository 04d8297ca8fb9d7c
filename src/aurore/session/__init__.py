"""Session lifecycle: state machine, supervisor, conversation reconciler."""

from aurore.session.reconciler import ConversationEntry, ConversationReconciler
from aurore.session.state import SessionInfo, apply_process_exit, apply_session_message
from aurore.session.supervisor import (
    Session,
    SessionCallbacks,
    SessionStartError,
    SessionSupervisor,
)

__all__ = [
    "ConversationEntry",
    "ConversationReconciler",
    "Session",
    "SessionCallbacks",
    "SessionInfo",
    "SessionStartError",
    "SessionSupervisor",
    "apply_process_exit",
    "apply_session_message",
]
