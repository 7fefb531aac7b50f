"""Provider adapters behind the generation gateway.

Every adapter exposes the same capability: ``await provider.generate(prompt)``
returns text or raises ``ProviderError``. The local template provider never
fails, which guarantees the gateway's fallback chain terminates.
"""

import asyncio
import logging
import random
from abc import ABC, abstractmethod
from typing import Dict, List, Optional
from uuid import uuid4

from anthropic import AsyncAnthropic, AnthropicError
from openai import AsyncOpenAI, OpenAIError

from ..models.actions import IntentType
from ..models.generation import GenerationPrompt, ProviderConfig, ProviderKind

logger = logging.getLogger(__name__)


class ProviderError(Exception):
    '''Network, timeout or malformed-response failure from a generation provider.'''
    pass


class GenerationProvider(ABC):
    """Single capability shared by every provider kind."""

    supports_session = False

    def __init__(self, config: ProviderConfig):
        self.config = config

    @property
    def name(self) -> str:
        return self.config.name

    @abstractmethod
    async def generate(self, prompt: GenerationPrompt) -> str:
        ...

    async def close(self) -> None:
        return None


class OpenAIChatProvider(GenerationProvider):
    """Request/response chat completions against OpenAI or any compatible endpoint."""

    def __init__(self, config: ProviderConfig, client: Optional[AsyncOpenAI] = None):
        super().__init__(config)
        # Retries are owned by the gateway, so the SDK's own retries are off
        self.client = client or AsyncOpenAI(
            api_key=config.api_key,
            base_url=config.endpoint,
            timeout=config.timeout,
            max_retries=0,
        )

    async def generate(self, prompt: GenerationPrompt) -> str:
        try:
            response = await self.client.chat.completions.create(
                model=self.config.model,
                messages=[
                    {"role": "system", "content": prompt.system},
                    {"role": "user", "content": prompt.user}
                ],
                temperature=self.config.temperature,
                max_tokens=prompt.max_tokens or self.config.max_tokens,
            )
        except OpenAIError as e:
            raise ProviderError(f"{self.name}: {e}") from e

        if not response.choices:
            raise ProviderError(f"{self.name}: response has no choices")
        content = response.choices[0].message.content
        logger.debug(f"{self.name} raw response: {content!r}")
        if not content or not content.strip():
            raise ProviderError(f"{self.name}: empty content")
        return content.strip()


class AnthropicProvider(GenerationProvider):
    """Request/response calls to the Anthropic messages API."""

    def __init__(self, config: ProviderConfig, client: Optional[AsyncAnthropic] = None):
        super().__init__(config)
        self.client = client or AsyncAnthropic(
            api_key=config.api_key,
            base_url=config.endpoint,
            timeout=config.timeout,
            max_retries=0,
        )

    async def generate(self, prompt: GenerationPrompt) -> str:
        try:
            response = await self.client.messages.create(
                model=self.config.model,
                max_tokens=prompt.max_tokens or self.config.max_tokens,
                temperature=min(self.config.temperature, 1.0),
                system=prompt.system,
                messages=[{"role": "user", "content": prompt.user}],
            )
        except AnthropicError as e:
            raise ProviderError(f"{self.name}: {e}") from e

        text = "".join(block.text for block in response.content if getattr(block, "type", None) == "text")
        logger.debug(f"{self.name} raw response: {text!r}")
        if not text.strip():
            raise ProviderError(f"{self.name}: empty content")
        return text.strip()


class OpenAIRealtimeProvider(GenerationProvider):
    """Persistent bidirectional session over the OpenAI realtime API.

    Control messages map onto the session as: session-configure
    (``session.update``), append-input (``conversation.item.create``),
    trigger-response (``response.create``), response-chunk
    (``response.text.delta``) and response-done (``response.done``).
    Each exchange deletes its input and output items once the response is
    done, so the session conversation never grows across calls.
    One response is in flight at a time; a broken or cancelled exchange
    drops the connection and the next call reconnects.
    """

    supports_session = True

    def __init__(self, config: ProviderConfig, client: Optional[AsyncOpenAI] = None):
        super().__init__(config)
        self.client = client or AsyncOpenAI(api_key=config.api_key, base_url=config.endpoint, max_retries=0)
        self._manager = None
        self._connection = None
        self._lock = asyncio.Lock()

    async def _connect(self):
        if self._connection is None:
            self._manager = self.client.beta.realtime.connect(model=self.config.model)
            self._connection = await self._manager.enter()
            logger.info(f"{self.name}: realtime session opened")
        return self._connection

    async def _reset(self) -> None:
        connection, self._connection, self._manager = self._connection, None, None
        if connection is not None:
            try:
                await connection.close()
            except Exception as e:
                logger.debug(f"{self.name}: error closing realtime session: {e}")

    async def _forget(self, connection, item_ids: List[str]) -> None:
        """Delete finished items from the session conversation."""
        try:
            for item_id in item_ids:
                await connection.conversation.item.delete(item_id=item_id)
        except Exception as e:
            # The text is already in hand; a fresh session starts with an empty conversation
            logger.warning(f"{self.name}: could not delete conversation items, reopening session: {e}")
            await self._reset()

    async def generate(self, prompt: GenerationPrompt) -> str:
        async with self._lock:
            try:
                connection = await self._connect()
                await connection.session.update(session={
                    "modalities": ["text"],
                    "instructions": prompt.system,
                    "max_response_output_tokens": prompt.max_tokens or self.config.max_tokens,
                })
                item_id = f"mw_{uuid4().hex[:24]}"
                await connection.conversation.item.create(item={
                    "id": item_id,
                    "type": "message",
                    "role": "user",
                    "content": [{"type": "input_text", "text": prompt.user}],
                })
                await connection.response.create()

                chunks: List[str] = []
                created = [item_id]
                async for event in connection:
                    if event.type == "response.text.delta":
                        chunks.append(event.delta)
                    elif event.type == "response.done":
                        response = getattr(event, "response", None)
                        created.extend(item.id for item in getattr(response, "output", None) or [])
                        break
                    elif event.type == "error":
                        raise ProviderError(f"{self.name}: {event.error.message}")
                await self._forget(connection, created)
            except asyncio.CancelledError:
                await self._reset()
                raise
            except ProviderError:
                await self._reset()
                raise
            except Exception as e:
                await self._reset()
                raise ProviderError(f"{self.name}: {e}") from e

        text = "".join(chunks).strip()
        if not text:
            raise ProviderError(f"{self.name}: session returned no text")
        return text

    async def close(self) -> None:
        await self._reset()


FALLBACK_TEMPLATES: Dict[IntentType, List[str]] = {
    IntentType.ACCUSATION: [
        "I have a bad feeling about {target}. The story doesn't add up.",
        "{target}, your reasoning keeps shifting. I think you're a wolf.",
        "Look at how {target} has been voting. That's where I'm putting my vote.",
    ],
    IntentType.DEFENSE: [
        "I'm on the village side. Pushing me out only helps the wolves.",
        "Check my votes, they have been consistent. I'm not your wolf.",
        "I understand the suspicion, but you're looking at the wrong person.",
    ],
    IntentType.INFORMATION: [
        "I have some information worth sharing: keep an eye on {target}.",
        "Let's go through the votes from yesterday before we decide anything.",
        "Nothing conclusive from me yet. I want to hear everyone out first.",
    ],
    IntentType.STRATEGY_COMMENT: [
        "Whatever happens, don't split the vote. The wolves win on confusion.",
        "Trust the voting record more than the speeches.",
        "Think about who benefited from last night. That's our lead.",
    ],
    IntentType.VOTE: [
        "My vote goes to {target}.",
    ],
    IntentType.NIGHT_ABILITY: [
        "I'll keep my choices to myself for now.",
    ],
}


class LocalTemplateProvider(GenerationProvider):
    """Offline canned responses keyed by intent. Never raises."""

    def __init__(self, config: Optional[ProviderConfig] = None, rng: Optional[random.Random] = None):
        super().__init__(config or ProviderConfig(name="local", kind=ProviderKind.LOCAL, model="templates"))
        self.rng = rng or random.Random()

    async def generate(self, prompt: GenerationPrompt) -> str:
        templates = FALLBACK_TEMPLATES.get(prompt.intent_type) or FALLBACK_TEMPLATES[IntentType.INFORMATION]
        if prompt.target_name is None:
            # Templates that need a target are unusable without one
            templates = [t for t in templates if "{target}" not in t] or FALLBACK_TEMPLATES[IntentType.STRATEGY_COMMENT]
        template = self.rng.choice(templates)
        return template.format(target=prompt.target_name or "")


def build_provider(config: ProviderConfig) -> GenerationProvider:
    """Create the adapter for a provider config."""
    if config.kind == ProviderKind.LOCAL:
        return LocalTemplateProvider(config)
    if config.kind == ProviderKind.ANTHROPIC:
        return AnthropicProvider(config)
    if config.realtime:
        return OpenAIRealtimeProvider(config)
    return OpenAIChatProvider(config)
