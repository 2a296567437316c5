"""
BEHAVIOR-AS-CONSTANTS
---------------------
Single source of truth for behavioral constants of the login service.

Rules:
- If changing a value changes runtime behavior, it belongs here.
- No magic numbers elsewhere in the codebase.
- Other modules MUST import from this file.
"""

from __future__ import annotations

from typing import Final, Tuple

# =============================================================================
# Coordinator scheduling
# =============================================================================

# Event-loop turns yielded per settle pass so that freshly resolved provider
# calls get to post their outcome before the inbox is inspected again.
SETTLE_LOOP_YIELDS: Final[int] = 3

COORDINATOR_ID_PREFIX: Final[str] = "login_"
SESSION_ID_PREFIX: Final[str] = "sess_"
ID_HEX_CHARS: Final[int] = 12

# =============================================================================
# Logging
# =============================================================================

# Number of leading token characters that may appear in logs / reprs.
TOKEN_PREVIEW_CHARS: Final[int] = 4

PAYLOAD_PREVIEW_CHARS: Final[int] = 100

# =============================================================================
# Default tags seeded for a brand new account
# =============================================================================

# (title, color) pairs; order follows tuple position.
DEFAULT_TAG_TEMPLATES: Final[Tuple[Tuple[str, int], ...]] = (
    ("Food", 0xFF4CAF50),
    ("Groceries", 0xFF8BC34A),
    ("Transport", 0xFF2196F3),
    ("Housing", 0xFF795548),
    ("Bills", 0xFFFF9800),
    ("Health", 0xFFF44336),
    ("Entertainment", 0xFF9C27B0),
    ("Clothes", 0xFFE91E63),
    ("Travel", 0xFF00BCD4),
    ("Other", 0xFF9E9E9E),
)

# =============================================================================
# Server
# =============================================================================

DEFAULT_SERVER_HOST: Final[str] = "0.0.0.0"
DEFAULT_SERVER_PORT: Final[int] = 8000
