"""
Credential discovery.

Responsibility:
- Find the Alva bearer token (env var first, then credential files)
- Raise CredentialsError when none is available
"""

import json
import logging
import os
from pathlib import Path
from typing import Iterable

from shared.models import Credentials

logger = logging.getLogger(__name__)

TOKEN_ENV_VAR = "ALVA_JWT_TOKEN"


class CredentialsError(RuntimeError):
    """No usable Alva credentials were found."""


def _read_token_file(path: Path) -> str | None:
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return None
    except (OSError, json.JSONDecodeError) as e:
        logger.warning("Ignoring unreadable credentials file %s: %s", path, e)
        return None
    if not isinstance(payload, dict):
        return None
    token = str(payload.get("token") or "").strip()
    return token or None


def load_credentials(paths: Iterable[Path]) -> Credentials:
    token = os.getenv(TOKEN_ENV_VAR, "").strip()
    if token:
        return Credentials(token=token, source=TOKEN_ENV_VAR)

    searched: list[str] = []
    for path in paths:
        searched.append(str(path))
        token = _read_token_file(path)
        if token:
            logger.debug("Loaded Alva credentials from %s", path)
            return Credentials(token=token, source=str(path))

    where = ", ".join(searched) if searched else "no credential files configured"
    raise CredentialsError(f"No Alva credentials. Set {TOKEN_ENV_VAR} or provide a token file ({where}).")
