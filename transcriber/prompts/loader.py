"""
Versioned prompt hints for transcription: reads transcriber/prompts/{version}/{component}.yaml.
Use PROMPT_VERSION (default v1) to select version.
"""
from pathlib import Path
from typing import Optional

import yaml

# Base path: transcriber/prompts/ (next to this file)
_PROMPTS_DIR = Path(__file__).resolve().parent


def load_prompts(component: str, version: str | None = None) -> dict[str, str]:
    """Load prompt fields for a component. Returns {} when the version has no file for it.
    Why available: Lets the transcription vocabulary hint change without a code change."""
    if version is None:
        from transcriber.core.config import settings
        version = settings.prompt_version

    path = _PROMPTS_DIR / version / f"{component}.yaml"
    if not path.exists():
        return {}

    with path.open(encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    out: dict[str, str] = {}
    for key in ("prompt", "language"):
        val = data.get(key)
        if val is not None and str(val).strip():
            out[key] = str(val).strip()
    return out


def get_transcription_prompt(version: str | None = None) -> Optional[str]:
    """Return the optional 'prompt' hint sent with each transcription request, or None."""
    return load_prompts("transcribe", version=version).get("prompt")
