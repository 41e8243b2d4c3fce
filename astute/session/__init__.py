"""Live session integration: reconciler and coordination."""

from astute.session.base import SessionDelegate, VoiceSession
from astute.session.controller import ConversationController
from astute.session.reconciler import EventReconciler, ReconcilerState

__all__ = [
    "ConversationController",
    "EventReconciler",
    "ReconcilerState",
    "SessionDelegate",
    "VoiceSession",
]
