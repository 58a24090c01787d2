from __future__ import annotations

import os
from typing import List, Optional

GEMINI_API_KEY = os.getenv("GEMINI_API_KEY", "").strip()
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.5-flash").strip() or "gemini-2.5-flash"
GEMINI_API_BASE = os.getenv("GEMINI_API_BASE", "https://generativelanguage.googleapis.com/v1beta").strip().rstrip("/")

# Low temperature keeps generated apps close to the instructions
try:
    TEMPERATURE = float(os.getenv("TEMPERATURE", "0.1"))
except ValueError:
    TEMPERATURE = 0.1

_max_tokens_raw = os.getenv("LLM_MAX_TOKENS", "").strip()
LLM_MAX_TOKENS: Optional[int]
if _max_tokens_raw:
    try:
        LLM_MAX_TOKENS = int(_max_tokens_raw)
    except ValueError:
        LLM_MAX_TOKENS = None
else:
    LLM_MAX_TOKENS = None

try:
    LLM_TIMEOUT_MS = int(os.getenv("LLM_TIMEOUT_MS", "60000"))
except ValueError:
    LLM_TIMEOUT_MS = 60000
if LLM_TIMEOUT_MS <= 0:
    LLM_TIMEOUT_MS = 60000

try:
    LLM_MAX_RETRIES = int(os.getenv("LLM_MAX_RETRIES", "3"))
except ValueError:
    LLM_MAX_RETRIES = 3
if LLM_MAX_RETRIES < 0:
    LLM_MAX_RETRIES = 0

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

ALLOW_ORIGINS: List[str] = [o.strip() for o in os.getenv("ALLOW_ORIGINS", "*").split(",") if o.strip()]
