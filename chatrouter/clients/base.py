from __future__ import annotations

from typing import Protocol, runtime_checkable

from chatrouter.schemas.inbound import ConversationContext


@runtime_checkable
class Classifier(Protocol):
    """A language-model-backed classifier in the provider chain.

    ``classify`` returns the provider's raw text, expected to be a JSON object
    shaped like a decision. Implementations raise ``ProviderTransportError``
    for transport failures and ``ParseError`` when no text came back at all.
    """

    provider_id: str

    async def classify(
        self,
        system_prompt: str,
        user_text: str,
        context: ConversationContext,
    ) -> str:
        ...
