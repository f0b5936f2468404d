from __future__ import annotations

from typing import Optional

# Paths served by the proxy routes; auth, body limits and the SPA fallback all key off these
API_PREFIXES = ("/tts", "/explain")


def api_prefix_for(path: str) -> Optional[str]:
    """The API prefix owning ``path``: the prefix itself or anything below it."""
    for prefix in API_PREFIXES:
        if path == prefix or path.startswith(prefix + "/"):
            return prefix
    return None


def is_api_path(path: str) -> bool:
    return api_prefix_for(path) is not None
