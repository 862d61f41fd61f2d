"""
Environment detection helpers.

Only ENV is consulted.
"""
import os
from functools import lru_cache


@lru_cache(maxsize=1)
def get_env_name() -> str:
    """
    Get the current environment name from ENV variable.

    Returns:
        Environment name (lowercase): 'local', 'dev', 'staging', 'prod', etc.
        Defaults to 'dev' if not set.
    """
    return os.getenv("ENV", "dev").lower()


def is_local_env() -> bool:
    """True for 'local', 'dev' and 'test' environments."""
    return get_env_name() in ("local", "dev", "test")
