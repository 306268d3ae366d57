"""
Credential propagation and session management.

Tracks registration credentials across a behavior chain and applies the
hard-reset / soft-navigate / preserve session policies. The auth behavior
sequence lives in ``specqa.auth.auth_flow``.
"""

from specqa.auth.credentials import (
    CredentialSet,
    CredentialTracker,
    process_steps_with_credentials,
)
from specqa.auth.session_manager import SessionManager, SessionPolicy, select_policy

__all__ = [
    "CredentialSet",
    "CredentialTracker",
    "SessionManager",
    "SessionPolicy",
    "process_steps_with_credentials",
    "select_policy",
]
