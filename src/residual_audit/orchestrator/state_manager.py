"""Audit run state storage with in-memory or Redis backend."""

import json
import os
from collections import OrderedDict
from datetime import datetime
from typing import Any, Dict, Optional

import redis

from residual_audit.constants import AuditStatus
from residual_audit.utils.errors import StateManagerError
from residual_audit.utils.logging import get_logger

logger = get_logger(__name__)

STATE_TTL_SECONDS = 86400

# In-memory state backend (default), oldest runs evicted past the cap
MAX_IN_MEMORY_RUNS = int(os.getenv("STATE_MAX_IN_MEMORY_RUNS", 1000))
_in_memory_state: "OrderedDict[str, Dict[str, Any]]" = OrderedDict()

_redis_client: Optional[redis.Redis] = None


def get_backend() -> str:
    """Configured backend: "memory" (default) or "redis" """
    return os.getenv("STATE_BACKEND", "memory").lower()


def get_redis_client() -> redis.Redis:
    """
    Lazily connect to Redis using REDIS_HOST (host:port) and REDIS_DB.

    Raises:
        StateManagerError: If the connection cannot be established
    """
    global _redis_client
    if _redis_client is not None:
        return _redis_client

    host_port = os.getenv("REDIS_HOST", "localhost:6379")
    host, _, port = host_port.partition(':')
    try:
        client = redis.Redis(
            host=host,
            port=int(port or 6379),
            db=int(os.getenv("REDIS_DB", 0)),
            decode_responses=True,
            socket_keepalive=True,
            socket_connect_timeout=5
        )
        client.ping()
    except (redis.RedisError, ValueError) as e:
        raise StateManagerError(f"Redis connection failed: {e}")

    logger.info("Connected to Redis", host=host, port=port)
    _redis_client = client
    return client


def _key(run_id: str) -> str:
    return f"residual-audit:{run_id}:state"


def save_run_state(run_id: str, state: Dict[str, Any]) -> None:
    """
    Save audit run state.

    Args:
        run_id: Audit run ID
        state: State dictionary to save

    Raises:
        StateManagerError: If save fails
    """
    if get_backend() == "memory":
        _in_memory_state.pop(run_id, None)
        _in_memory_state[run_id] = dict(state)
        while len(_in_memory_state) > MAX_IN_MEMORY_RUNS:
            _in_memory_state.popitem(last=False)
        logger.info("Saved run state (in-memory)", run_id=run_id, status=state.get('status'))
        return

    try:
        value = json.dumps(state, default=str)
        get_redis_client().setex(_key(run_id), STATE_TTL_SECONDS, value)
    except redis.RedisError as e:
        raise StateManagerError(f"Failed to save run state: {e}")
    logger.info("Saved run state", run_id=run_id, status=state.get('status'))


def restore_run_state(run_id: str) -> Dict[str, Any]:
    """
    Restore audit run state.

    Returns:
        State dictionary, or empty dict if not found

    Raises:
        StateManagerError: If the Redis backend cannot be read
    """
    if get_backend() == "memory":
        state = _in_memory_state.get(run_id, {})
        if not state:
            logger.warning(f"No saved state found for {run_id} (in-memory)")
        return dict(state)

    try:
        value = get_redis_client().get(_key(run_id))
    except redis.RedisError as e:
        raise StateManagerError(f"Failed to restore run state: {e}")

    if not value:
        logger.warning(f"No saved state found for {run_id}")
        return {}
    return json.loads(value)


def mark_run_started(run_id: str, month: str) -> None:
    save_run_state(run_id, {
        'status': AuditStatus.RUNNING.value,
        'month': month,
        'started_at': datetime.now().isoformat()
    })


def mark_run_completed(run_id: str, month: str, counts: Dict[str, int]) -> None:
    """Record a completed run and its issue counts"""
    save_run_state(run_id, {
        'status': AuditStatus.COMPLETED.value,
        'month': month,
        'counts': counts,
        'completed_at': datetime.now().isoformat()
    })


def mark_run_failed(run_id: str, month: str, error: str) -> None:
    """Record a failed run; nothing from the run was committed"""
    save_run_state(run_id, {
        'status': AuditStatus.FAILED.value,
        'month': month,
        'error': error,
        'failed_at': datetime.now().isoformat()
    })


def check_redis_health() -> bool:
    """
    Check if Redis connection is healthy.

    Returns:
        True if Redis is reachable, False otherwise
    """
    try:
        return bool(get_redis_client().ping())
    except (StateManagerError, redis.RedisError):
        return False
