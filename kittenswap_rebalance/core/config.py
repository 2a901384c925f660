import json
import os
from pathlib import Path
from typing import Any

from kittenswap_rebalance.core.constants.kittenswap import (
    DEFAULT_DEADLINE_SECONDS,
    DEFAULT_EDGE_BPS,
    DEFAULT_RPC_BASE_DELAY_S,
    DEFAULT_RPC_MAX_DELAY_S,
    DEFAULT_RPC_MAX_RETRIES,
    DEFAULT_RPC_TIMEOUT_S,
    DEFAULT_SLIPPAGE_BPS,
    MAX_DEADLINE_SECONDS,
    MIN_DEADLINE_SECONDS,
)

_CONFIG_ENV_KEYS = ("KITTENSWAP_CONFIG_PATH", "KITTENSWAP_CONFIG")
_DEFAULT_CONFIG_FILENAME = "config.json"
DEFAULT_POLICY_NAME = "default"


def _find_project_root(start: Path) -> Path | None:
    cur = start.resolve()
    for parent in [cur, *cur.parents]:
        if (parent / "pyproject.toml").exists():
            return parent
    return None


def _project_root() -> Path | None:
    return _find_project_root(Path.cwd()) or _find_project_root(Path(__file__).parent)


def resolve_config_path(path: str | Path | None = None) -> Path:
    if path is not None:
        return Path(path).expanduser()

    env_path = next(
        (os.getenv(k, "").strip() for k in _CONFIG_ENV_KEYS if os.getenv(k)), ""
    )
    if env_path:
        p = Path(env_path).expanduser()
        if p.is_absolute():
            return p
        root = _project_root()
        return (root / p) if root else p

    root = _project_root()
    return (root / _DEFAULT_CONFIG_FILENAME) if root else Path(_DEFAULT_CONFIG_FILENAME)


def load_config_json(
    path: str | Path | None = None, *, require_exists: bool = False
) -> dict[str, Any]:
    cfg_path = resolve_config_path(path)
    if not cfg_path.exists():
        if require_exists:
            raise FileNotFoundError(f"Config file not found: {cfg_path}")
        return {}
    try:
        return json.loads(cfg_path.read_text())
    except (OSError, json.JSONDecodeError):
        return {}


CONFIG: dict[str, Any] = load_config_json()


def set_config(config: dict[str, Any]) -> None:
    """Replace the global CONFIG dict in-place.

    This allows code that imported CONFIG at module import time to see updates.
    """
    CONFIG.clear()
    CONFIG.update(config)


def load_config(
    path: str | Path | None = None, *, require_exists: bool = False
) -> None:
    """Load config from disk into the global CONFIG dict."""
    set_config(load_config_json(path, require_exists=require_exists))


def get_rpc_urls() -> dict[str, Any]:
    return CONFIG.get("rpc", {}).get("urls", {})


def get_rpc_settings() -> dict[str, float | int]:
    rpc = CONFIG.get("rpc", {})
    return {
        "timeout_s": float(rpc.get("timeout_s", DEFAULT_RPC_TIMEOUT_S)),
        "max_retries": int(rpc.get("max_retries", DEFAULT_RPC_MAX_RETRIES)),
        "base_delay_s": float(rpc.get("base_delay_s", DEFAULT_RPC_BASE_DELAY_S)),
        "max_delay_s": float(rpc.get("max_delay_s", DEFAULT_RPC_MAX_DELAY_S)),
    }


def get_contract_overrides() -> dict[str, str]:
    return dict(CONFIG.get("contracts", {}))


def _clamp_int(value: Any, fallback: int, *, lo: int, hi: int) -> int:
    if value is None or isinstance(value, bool):
        return fallback
    try:
        n = int(float(value))
    except (TypeError, ValueError):
        return fallback
    return min(hi, max(lo, n))


def get_policy(
    name: str | None = None,
    *,
    edge_bps: Any = None,
    slippage_bps: Any = None,
    deadline_seconds: Any = None,
) -> tuple[str, dict[str, int]]:
    """Resolve policy fields: request value, then named policy, then defaults.

    Returns ``(policy_name, fields)``. bps values are clamped to 0..10000 and
    deadlines to 1..86400 seconds. An unknown explicit name is an error.
    """
    policies = CONFIG.get("policies", {})
    key = (name or CONFIG.get("default_policy") or DEFAULT_POLICY_NAME).strip()
    stored = policies.get(key)
    if stored is None:
        if name and key != DEFAULT_POLICY_NAME:
            raise KeyError(f"Unknown policy: {name}")
        stored = {}

    def pick(requested: Any, field: str, fallback: int, lo: int, hi: int) -> int:
        base = _clamp_int(stored.get(field), fallback, lo=lo, hi=hi)
        return _clamp_int(requested, base, lo=lo, hi=hi)

    return key, {
        "edge_bps": pick(edge_bps, "edge_bps", DEFAULT_EDGE_BPS, 0, 10_000),
        "slippage_bps": pick(
            slippage_bps, "slippage_bps", DEFAULT_SLIPPAGE_BPS, 0, 10_000
        ),
        "deadline_seconds": pick(
            deadline_seconds,
            "deadline_seconds",
            DEFAULT_DEADLINE_SECONDS,
            MIN_DEADLINE_SECONDS,
            MAX_DEADLINE_SECONDS,
        ),
    }


def get_accounts() -> dict[str, str]:
    return dict(CONFIG.get("accounts", {}))


def resolve_account(ref: str | None) -> str | None:
    """Map an account label (or the configured default) to its raw address.

    Values that are not known labels are returned unchanged so the caller can
    parse them as addresses.
    """
    accounts = get_accounts()
    text = (ref or "").strip()
    if not text:
        default = CONFIG.get("default_account")
        if not default:
            return None
        return accounts.get(default, default)
    return accounts.get(text, text)
