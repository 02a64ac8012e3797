# worker/meta_config.py
"""
Configuration management for the worker service.

Every value is read from the environment the orchestrator sets at launch.
"""
import os
from pathlib import Path


# --- Identity ---
WORKER_NAME: str = os.environ.get("WORKER_NAME", "unnamed")
RPC_HOST: str = os.environ.get("RPC_HOST", "0.0.0.0")
RPC_PORT: int = int(os.environ.get("RPC_PORT", 50051))
REQUESTER_LABEL: str = os.environ.get("REQUESTER_LABEL", "Orchestrator")
"""Speaker label of requests in the chat log; set by the orchestrator at launch."""

# --- Behaviour ---
AUTONOMOUS: bool = os.environ.get("WORKER_AUTONOMOUS", "true").strip().lower() in ("1", "true", "yes", "on")
SYSTEM_PROMPT_PATH: str | None = os.environ.get("WORKER_SYSTEM_PROMPT_PATH") or None
CHAT_LOG_MAX_ENTRIES: int = 100

# --- LLM Upstream ---
LLM_API_URL: str = os.environ.get("LLM_API_URL", "https://api.anthropic.com/v1/messages")
LLM_API_VERSION: str = os.environ.get("LLM_API_VERSION", "2023-06-01")
LLM_MODEL: str = os.environ.get("LLM_MODEL", "claude-3-5-sonnet-20241022")
LLM_MAX_TOKENS: int = int(os.environ.get("LLM_MAX_TOKENS", 1024))
LLM_TIMEOUT: float = float(os.environ.get("LLM_TIMEOUT", 120.0))

# --- Command Execution ---
EXEC_TIMEOUT: float = float(os.environ.get("EXEC_TIMEOUT", 60.0))
FETCH_TIMEOUT: float = float(os.environ.get("FETCH_TIMEOUT", 30.0))
FETCH_MAX_CHARS: int = int(os.environ.get("FETCH_MAX_CHARS", 20000))
RESULT_DISPLAY_LIMIT: int = 10
"""Listing and search results beyond this many lines are summarized."""

# --- Shutdown ---
TERMINATE_GRACE_DELAY: float = float(os.environ.get("TERMINATE_GRACE_DELAY", 0.1))

# --- Logging ---
LOG_LEVEL: str = os.environ.get("LOG_LEVEL", "INFO")


def get_api_key() -> str:
    """Reads the upstream key, preferring the file named by ANTHROPIC_API_KEY_FILE. Empty if unset."""
    key_file = os.environ.get("ANTHROPIC_API_KEY_FILE")
    if key_file:
        try:
            return Path(key_file).read_text().strip()
        except OSError:
            return ""
    return os.environ.get("ANTHROPIC_API_KEY", "").strip()


def load_system_prompt() -> str | None:
    """Override from WORKER_SYSTEM_PROMPT_PATH, or None to use the built-in prompt."""
    if SYSTEM_PROMPT_PATH is None:
        return None
    return Path(SYSTEM_PROMPT_PATH).read_text()
