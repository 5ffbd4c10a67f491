"""
Reply-generation adapter contract.

Rules:
- This file contains NO logic.
- No retries.
- No knowledge of audio, transport or delivery.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class ReplyAdapter(ABC):
    """
    Abstract base class for reply-generation collaborators.

    The adapter is a *dumb pipe*:
    transcript -> vendor -> reply text.

    Caller responsibilities (NOT here):
    - Deciding when a reply is needed
    - Failure policy
    - Timing / metrics
    """

    @abstractmethod
    async def generate_reply(
        self,
        *,
        transcript: str,
    ) -> str:
        """
        Produce the assistant's reply to `transcript`.

        Args:
            transcript:
                The user's latest utterance.

        Returns:
            Reply text (plain speech, no markup).

        Raises:
            Any provider exception; fatal for the reply.
        """
        raise NotImplementedError
