"""
Runtime configuration for the Alva dashboard builder.

Built once at start-up from the environment and injected into every component.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field

DEFAULT_CHAT_ENDPOINT = "https://api-llm2.prd.alva.xyz/chat"
DEFAULT_QUERY_ENDPOINT = "https://api-llm2.prd.alva.xyz/query"
DEFAULT_SKILL_ID = "1982927545146347011"

# Persisted query hashes
HASH_DASHBOARD_CONFIG = "095ea7520bde2d2f6c491cd4816708db8a85a9f639256e567b158a56098a36f2"
HASH_TIMESERIES_DATA = "790017e6116231f959b7169b1176fe0b07c9007f4a578d131e7a395bc32f302f"

ECHARTS_CDN_URL = "https://cdn.jsdelivr.net/npm/echarts@5.5.0/dist/echarts.min.js"


class AlvaSettings(BaseModel):
    """Process-wide, immutable configuration."""
    model_config = {"frozen": True}

    chat_endpoint: str = DEFAULT_CHAT_ENDPOINT
    query_endpoint: str = DEFAULT_QUERY_ENDPOINT
    skill_id: str = DEFAULT_SKILL_ID
    dashboard_config_hash: str = HASH_DASHBOARD_CONFIG
    timeseries_data_hash: str = HASH_TIMESERIES_DATA
    apollo_client_name: str = "@apollo/client"
    apollo_client_version: str = "4.0.9"
    timezone: str = "Asia/Shanghai"
    timezone_offset_min: int = 480
    fetch_batch_size: int = Field(default=5, ge=1)
    query_timeout_seconds: float = 60.0
    create_timeout_seconds: float = 600.0
    echarts_url: str = ECHARTS_CDN_URL
    credential_paths: tuple[Path, ...] = ()


def _default_credential_paths() -> tuple[Path, ...]:
    paths: list[Path] = []
    explicit = os.getenv("ALVA_CREDENTIALS_FILE", "").strip()
    if explicit:
        paths.append(Path(explicit).expanduser())
    paths.append(Path.cwd() / "secrets" / "alva.json")
    paths.append(Path.home() / ".config" / "alva" / "credentials.json")
    return tuple(paths)


def load_settings(**overrides) -> AlvaSettings:
    """Build settings from env vars (after loading a local .env)."""
    load_dotenv(override=False)

    values = {
        "chat_endpoint": os.getenv("ALVA_CHAT_ENDPOINT", DEFAULT_CHAT_ENDPOINT).strip(),
        "query_endpoint": os.getenv("ALVA_QUERY_ENDPOINT", DEFAULT_QUERY_ENDPOINT).strip(),
        "skill_id": os.getenv("ALVA_SKILL_ID", DEFAULT_SKILL_ID).strip(),
        "timezone": os.getenv("ALVA_TIMEZONE", "Asia/Shanghai").strip(),
        "timezone_offset_min": int(os.getenv("ALVA_TIMEZONE_OFFSET_MIN", "480")),
        "fetch_batch_size": int(os.getenv("ALVA_FETCH_BATCH_SIZE", "5")),
        "query_timeout_seconds": float(os.getenv("ALVA_QUERY_TIMEOUT_SECONDS", "60")),
        "credential_paths": _default_credential_paths(),
    }
    values.update({k: v for k, v in overrides.items() if v is not None})
    return AlvaSettings(**values)
