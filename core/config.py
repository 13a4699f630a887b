from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path

import streamlit as st

CONFIG_FILE_NAME = "settings.json"
ENV_DATA_DIR = "STALL_POS_DATA_DIR"
ENV_CURRENCY = "STALL_POS_CURRENCY"
ENV_LOW_STOCK = "STALL_POS_LOW_STOCK"
ENV_LOG_LEVEL = "STALL_POS_LOG_LEVEL"


@dataclass(frozen=True)
class Settings:
    data_dir: Path
    db_path: Path
    log_path: Path
    currency: str = "KES"
    low_stock_threshold: int = 5
    log_level: str = "INFO"


def _default_data_dir() -> Path:
    return Path.home() / ".stall_pos"


def _load_persisted_settings(data_dir: Path) -> dict:
    cfg = data_dir / CONFIG_FILE_NAME
    if cfg.exists():
        try:
            return json.loads(cfg.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return {}
    return {}


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}.")


def persist_data_dir(data_dir_str: str) -> None:
    data_dir = Path(data_dir_str).expanduser().resolve()
    data_dir.mkdir(parents=True, exist_ok=True)

    cfg = data_dir / CONFIG_FILE_NAME
    payload = {"data_dir": str(data_dir)}
    cfg.write_text(json.dumps(payload, indent=2), encoding="utf-8")

    # Also remember it in the default folder so a fresh process finds it
    default_dir = _default_data_dir()
    if default_dir != data_dir:
        default_dir.mkdir(parents=True, exist_ok=True)
        (default_dir / CONFIG_FILE_NAME).write_text(json.dumps(payload, indent=2), encoding="utf-8")

    st.session_state["stall_pos_data_dir"] = str(data_dir)


def build_settings(data_dir: Path) -> Settings:
    data_dir = Path(data_dir).expanduser().resolve()
    data_dir.mkdir(parents=True, exist_ok=True)
    return Settings(
        data_dir=data_dir,
        db_path=data_dir / "app.db",
        log_path=data_dir / "stall_pos.log",
        currency=os.getenv(ENV_CURRENCY, "").strip() or "KES",
        low_stock_threshold=max(0, _int_env(ENV_LOW_STOCK, 5)),
        log_level=(os.getenv(ENV_LOG_LEVEL, "").strip() or "INFO").upper(),
    )


@st.cache_resource
def get_settings() -> Settings:
    # Priority order:
    # 1) Session state (set via Settings page)
    # 2) Environment variable
    # 3) Persisted settings in default folder
    # 4) Default folder
    if "stall_pos_data_dir" in st.session_state:
        data_dir = Path(st.session_state["stall_pos_data_dir"])
    elif os.getenv(ENV_DATA_DIR):
        data_dir = Path(os.getenv(ENV_DATA_DIR, ""))
    else:
        default_dir = _default_data_dir()
        persisted = _load_persisted_settings(default_dir)
        data_dir = Path(persisted.get("data_dir", default_dir))

    return build_settings(data_dir)
