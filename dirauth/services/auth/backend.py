from __future__ import annotations

from dataclasses import dataclass


@dataclass
class AuthResult:
    """Outcome of one login attempt."""
    success: bool
    user_data: dict | None = None
    error_message: str = ""
