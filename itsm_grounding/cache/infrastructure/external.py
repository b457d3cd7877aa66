"""
Cache External Configuration
=============================

Loads the per-type TTL policy from YAML.

File layout:
    default_ttl_seconds: 300
    type_ttls:
      employees: 900
      requestOfferings: 14400
"""

import threading
from pathlib import Path
from typing import Optional

import yaml
from pydantic import ValidationError

from itsm_grounding.cache.application import ITTLPolicyProvider
from itsm_grounding.cache.domain import TTLPolicy
from itsm_grounding.config import settings
from itsm_grounding.core import ConfigurationException
from itsm_grounding.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class TTLPolicyManager(ITTLPolicyProvider):
    """
    Thread-safe TTL policy holder with explicit reload.

    A missing file yields the built-in policy; an invalid file is a
    configuration error on first load and is ignored on reload.
    """

    def __init__(self):
        self._policy: Optional[TTLPolicy] = None
        self._lock = threading.Lock()
        self._path: Optional[Path] = None

    def load(self, path: Optional[Path] = None) -> TTLPolicy:
        """Initial policy load."""
        self._path = path or settings.cache_policy_path
        policy = self._load_from_file(self._path)
        with self._lock:
            self._policy = policy
        return policy

    def _load_from_file(self, path: Path) -> TTLPolicy:
        """Load and parse the YAML policy file."""
        defaults = {
            "default_ttl_seconds": settings.cache_default_ttl_seconds,
            "max_ttl_seconds": settings.cache_max_ttl_seconds,
        }

        if not path.exists():
            logger.info("TTL policy file not found, using defaults", extra={"path": str(path)})
            return TTLPolicy(**defaults)

        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f) or {}
            return TTLPolicy(**{**defaults, **data})
        except (yaml.YAMLError, ValidationError, TypeError) as e:
            raise ConfigurationException(
                f"Invalid TTL policy file: {path}",
                {"error": str(e)}
            ) from e

    def reload(self) -> bool:
        """Reload the policy from file, keeping the current one on failure."""
        if self._path is None:
            return False

        try:
            policy = self._load_from_file(self._path)
        except ConfigurationException as e:
            logger.error("Failed to reload TTL policy", extra={"error": e.message, **e.details})
            return False

        with self._lock:
            self._policy = policy
        logger.info("TTL policy reloaded", extra={"path": str(self._path)})
        return True

    def get_policy(self) -> TTLPolicy:
        with self._lock:
            if self._policy is None:
                raise RuntimeError("TTL policy not loaded. Call load() first.")
            return self._policy
