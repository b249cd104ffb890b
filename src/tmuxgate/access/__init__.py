"""Access control for tmuxgate.

Classifies client addresses against the configured allowlist and
installs the HTTP middleware that rejects everything else.

Public API:
    build_policy -- Build the immutable AccessPolicy from settings
    classify -- Pure allow/deny decision for one address
    is_allowed -- The same decision as a boolean
    install_access_gate -- Register the middleware on a FastAPI app
"""

from tmuxgate.access.classifier import build_policy, classify, is_allowed, parse_rule
from tmuxgate.access.gate import client_address, install_access_gate

__all__ = [
    "build_policy",
    "classify",
    "client_address",
    "install_access_gate",
    "is_allowed",
    "parse_rule",
]
