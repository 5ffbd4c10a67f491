"""
System prompt for the voice relay reply service.

The prompt text is versioned; the short hash is logged with every reply so
transcripts can be tied back to the exact prompt that produced them.
"""

from __future__ import annotations

import hashlib

from spec import PROMPT_HASH_HEX_LEN, SYSTEM_PROMPT_VERSION

SYSTEM_PROMPT_V1: str = """
You are a voice assistant answering through a small speaker device.

Speak naturally and briefly, as if talking face to face.

Voice Rules

- Keep responses to 1-2 sentences unless the user asks for detail.
- Do not use markdown, lists, emoji or special characters.
- Spell out numbers and symbols the way they should be spoken.
- If the transcript is unclear or empty of meaning, ask the user to repeat.

Output plain conversational speech only.
"""

SYSTEM_PROMPTS: dict[str, str] = {
    "v1": SYSTEM_PROMPT_V1,
}


def resolve_system_prompt(version: str = SYSTEM_PROMPT_VERSION) -> str:
    """Return the prompt text for `version` (KeyError if unknown)."""
    return SYSTEM_PROMPTS[version].strip()


def prompt_hash(prompt: str) -> str:
    """Short, stable fingerprint of a prompt for logging."""
    return hashlib.sha256(prompt.encode()).hexdigest()[:PROMPT_HASH_HEX_LEN]
