"""
Liveness route for deployment / monitoring.
"""
from __future__ import annotations

from typing import Any, Dict

import music21  # type: ignore
from fastapi import APIRouter

from core.config import get_settings

router = APIRouter(prefix="/api/v1", tags=["Health"])


@router.get("/health")
def health() -> Dict[str, Any]:
    """
    - ok=True whenever the API answers
    - settings: the limits requests are served with
    - checks: MusicXML import backend
    """
    s = get_settings()

    return {
        "ok": True,
        "env": s.app_env,
        "settings": {
            "log_level": s.log_level,
            "max_playback_steps": s.max_playback_steps,
            "default_repeat_count": s.default_repeat_count,
            "measures_per_system": s.measures_per_system,
        },
        "checks": {
            "music21": music21.__version__,
        },
    }
