"""
Environment-driven settings with Solana CLI fallbacks.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv

load_dotenv()

DEFAULT_RPC_DEVNET = "https://api.devnet.solana.com"
DEFAULT_KEYPATH = "~/.config/solana/id.json"
DEFAULT_SOLANA_CONFIG = "~/.config/solana/cli/config.yml"
DEFAULT_PROGRAM_ID = "cndy3Z4yapfJBmL3ShUp5exZKqR3z33thTzeNMm2gRZ"
DEFAULT_CACHE = "cache.json"
DEFAULT_CONFIG = "config.json"


def env_bool(key: str, default: bool) -> bool:
    val = os.getenv(key)
    if val is None:
        return default
    return val.lower() in {"1", "true", "yes", "y"}


def parse_solana_config(path: Optional[str] = None) -> Optional[Dict[str, Any]]:
    """Read the Solana CLI config.yml (json_rpc_url, keypair_path), if present."""
    p = Path(path or os.getenv("CASE_SOLANA_CONFIG", DEFAULT_SOLANA_CONFIG)).expanduser()
    if not p.exists():
        return None
    try:
        with p.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except (OSError, yaml.YAMLError):
        return None
    return data if isinstance(data, dict) else None


@dataclass(frozen=True)
class Settings:
    rpc_url: str
    keypair_path: str
    program_id: str
    cache_path: str
    config_path: str
    upload_workers: int
    write_retries: int
    retry_base_delay_sec: float
    rpc_timeout_sec: float
    commitment: str
    verify_before_retry: bool
    log_level: str
    log_file: str | None

    def dump(self) -> dict:
        """Return a dict of settings for sanity checks/logging."""
        return self.__dict__.copy()

    def with_overrides(self, **overrides: Any) -> "Settings":
        """Apply CLI flags; None values leave the setting untouched."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

    @classmethod
    def load(cls) -> "Settings":
        def _int_env(key: str, default: int) -> int:
            raw = os.getenv(key)
            if raw is None or raw == "":
                return default
            return int(raw)

        def _float_env(key: str, default: float) -> float:
            raw = os.getenv(key)
            if raw is None or raw == "":
                return default
            return float(raw)

        sol_config = parse_solana_config() or {}
        log_file = os.getenv("CASE_LOG_FILE", "case.log")

        cfg = cls(
            rpc_url=os.getenv("CASE_RPC_URL") or sol_config.get("json_rpc_url") or DEFAULT_RPC_DEVNET,
            keypair_path=os.getenv("CASE_KEYPAIR") or sol_config.get("keypair_path") or DEFAULT_KEYPATH,
            program_id=os.getenv("CASE_PROGRAM_ID", DEFAULT_PROGRAM_ID),
            cache_path=os.getenv("CASE_CACHE", DEFAULT_CACHE),
            config_path=os.getenv("CASE_CONFIG", DEFAULT_CONFIG),
            upload_workers=_int_env("CASE_UPLOAD_WORKERS", 0),
            write_retries=_int_env("CASE_WRITE_RETRIES", 3),
            retry_base_delay_sec=_float_env("CASE_RETRY_BASE_DELAY_SEC", 0.5),
            rpc_timeout_sec=_float_env("CASE_RPC_TIMEOUT_SEC", 30.0),
            commitment=os.getenv("CASE_COMMITMENT", "confirmed"),
            verify_before_retry=env_bool("CASE_VERIFY_BEFORE_RETRY", True),
            log_level=os.getenv("CASE_LOG_LEVEL", "info"),
            log_file=log_file or None,
        )
        _sanity_check(cfg)
        return cfg


def _sanity_check(cfg: Settings) -> None:
    if cfg.upload_workers < 0:
        raise ValueError("CASE_UPLOAD_WORKERS must be >= 0")
    if cfg.write_retries < 1:
        raise ValueError("CASE_WRITE_RETRIES must be >= 1")
    if cfg.retry_base_delay_sec < 0:
        raise ValueError("CASE_RETRY_BASE_DELAY_SEC must be >= 0")
    if cfg.rpc_timeout_sec <= 0:
        raise ValueError("CASE_RPC_TIMEOUT_SEC must be > 0")
    if cfg.commitment not in {"processed", "confirmed", "finalized"}:
        raise ValueError(f"CASE_COMMITMENT must be processed/confirmed/finalized, got {cfg.commitment}")
