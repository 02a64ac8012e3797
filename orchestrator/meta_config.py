# orchestrator/meta_config.py
"""
Configuration management for the orchestrator.

This module provides centralized configuration loaded from environment variables.
"""
import os
from pathlib import Path


# --- Credentials ---
def get_api_key() -> str | None:
    """Returns the upstream LLM key handed to new workers, or None if unset."""
    key_file = os.environ.get('ANTHROPIC_API_KEY_FILE')
    if key_file:
        path = Path(key_file)
        if path.exists():
            return path.read_text().strip() or None
        return None
    return os.environ.get('ANTHROPIC_API_KEY') or None


# --- Image & Naming ---
WORKER_IMAGE_NAME: str = os.environ.get("FLEET_IMAGE", "llm-fleet-worker:latest")
CONTAINER_NAME_PREFIX: str = os.environ.get("FLEET_CONTAINER_PREFIX", "worker-")
MANAGED_BY_LABEL: str = "llm-fleet-orchestrator"
REQUESTER_LABEL: str = os.environ.get("FLEET_REQUESTER_LABEL", "Orchestrator")
"""Speaker label of requests in worker chat logs. Handed to every worker as REQUESTER_LABEL."""

# --- Ports & Networking ---
STARTING_PORT: int = int(os.environ.get("FLEET_STARTING_PORT", 50100))
DEFAULT_WORKER_PORT: int = int(os.environ.get("FLEET_DEFAULT_WORKER_PORT", 50051))
"""Port assumed for a discovered container that declares none."""
WORKER_HOST: str = os.environ.get("FLEET_WORKER_HOST", "127.0.0.1")
NETWORK_MODE: str = os.environ.get("FLEET_NETWORK_MODE", "host")

# --- Timeout Configuration ---
CONTAINER_READY_DELAY: float = float(os.environ.get("FLEET_CONTAINER_READY_DELAY", 2.0))  # fixed sleep, not a poll
CONTAINER_STOP_TIMEOUT: int = int(os.environ.get("FLEET_STOP_TIMEOUT", 10))
RPC_CONNECT_TIMEOUT: float = float(os.environ.get("FLEET_RPC_CONNECT_TIMEOUT", 5.0))
RPC_CALL_TIMEOUT: float = float(os.environ.get("FLEET_RPC_CALL_TIMEOUT", 300.0))  # covers the worker's LLM call

# --- Logging ---
LOG_LEVEL: str = os.environ.get("LOG_LEVEL", "WARNING")
