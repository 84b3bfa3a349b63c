# src/lambdas/function_deployer/registry.py
from typing import Iterable, Union

from src.models.deployment import TargetList
from .config import ConfigurationError


def parse_targets(raw: Union[str, Iterable[str], None], allow_empty: bool = False) -> TargetList:
    """
    "fnA, ,fnC" -> ("fnA", "fnC"). Entries that are blank after trimming are
    dropped silently; order and duplicates are kept.
    """
    if raw is None:
        raw = ""
    parts = raw.split(",") if isinstance(raw, str) else list(raw)
    targets = tuple(p.strip() for p in parts if p and p.strip())
    if not targets and not allow_empty:
        raise ConfigurationError("FUNCTIONS_TO_DEPLOY does not name any function")
    return targets
