from __future__ import annotations

from typing import Dict


class StaticTranslationProvider:
    """Built-in fallback until a translation service is wired in."""

    async def language_pack(self, language: str) -> Dict[str, str]:
        return {"welcome_message": f"Welcome ({language})"}

    async def translate(self, text: str, target_language: str) -> str:
        return text
