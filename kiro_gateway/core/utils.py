"""
Kiro Gateway - Utilities

Machine fingerprint, upstream request headers and id generation.
"""

import getpass
import hashlib
import socket
import uuid
from typing import Dict


def get_machine_fingerprint() -> str:
    """Stable per-machine identifier sent in user agents."""
    try:
        seed = f"{socket.gethostname()}-{getpass.getuser()}-kiro-gateway"
    except (OSError, KeyError, ImportError):
        seed = "default-kiro-gateway"
    return hashlib.sha256(seed.encode("utf-8")).hexdigest()


def get_kiro_headers(fingerprint: str, token: str) -> Dict[str, str]:
    """Headers for a generateAssistantResponse call."""
    suffix = fingerprint[:32]
    return {
        "Authorization": f"Bearer {token}",
        "Content-Type": "application/json",
        "User-Agent": (
            "aws-sdk-js/1.0.27 ua/2.1 os/win32#10.0.19044 lang/js md/nodejs#22.21.1 "
            f"api/codewhispererstreaming#1.0.27 m/E KiroGateway-{suffix}"
        ),
        "x-amz-user-agent": f"aws-sdk-js/1.0.27 KiroGateway-{suffix}",
        "x-amzn-codewhisperer-optout": "true",
        "x-amzn-kiro-agent-mode": "vibe",
        "amz-sdk-invocation-id": str(uuid.uuid4()),
        "amz-sdk-request": "attempt=1; max=3",
    }


def generate_conversation_id() -> str:
    return str(uuid.uuid4())


def generate_tool_call_id() -> str:
    """Id for tool calls the backend starts without a toolUseId."""
    return f"call_{uuid.uuid4().hex[:8]}"
