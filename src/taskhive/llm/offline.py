# src/taskhive/llm/offline.py

from __future__ import annotations

import json


class OfflineAIProvider:
    """
    Offline deterministic AI provider used for demos when no external API is configured.

    Behavior:
    - JSON planning prompts -> an empty, valid task plan
    - Time estimation prompts -> "2-3 hours"
    - Anything else (assignee recommendation, title suggestions) -> "" so the
      callers take their deterministic fallbacks
    """

    def complete(self, prompt: str, *, timeout: float, json_output: bool = False) -> str:
        if json_output:
            return json.dumps(
                {
                    "explanation": "Offline mode: no AI provider is configured.",
                    "tasks": [],
                }
            )

        if "estimate the time required" in (prompt or "").lower():
            return "2-3 hours"

        return ""
