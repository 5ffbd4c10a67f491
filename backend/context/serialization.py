"""
Prompt serialization for LLM consumption.

Responsibilities:
- Convert system prompt + current transcript into LLM-ready messages.

Non-responsibilities:
- No conversation memory: one connection carries exactly one utterance
"""

from __future__ import annotations


def serialize_for_llm(
    *,
    system_prompt: str,
    user_text: str,
) -> list[dict[str, str]]:
    """
    Serialize a single-turn request.

    Output format:
    [
        {"role": "system", "content": "..."},
        {"role": "user", "content": "<current transcript>"},
    ]
    """
    return [
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": user_text},
    ]
