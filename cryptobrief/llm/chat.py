from __future__ import annotations

"""
Caller-owned chat sessions over the provider chat streams.

Design intent:
- Each session owns its system instruction and history; nothing is global.
- A turn is committed to history only after the stream completes.
- Reset means building a new session, never mutating an old one.
"""

import logging
import time
import uuid
import weakref
from typing import Any, AsyncIterator

from cryptobrief.internal_core.config import AppConfig
from cryptobrief.internal_core.contracts import ChatTurn

from . import router
from .base import LLMError

logger = logging.getLogger(__name__)

BASE_SYSTEM_INSTRUCTION = "You are a helpful expert research assistant."
CONTEXT_GREETING = (
    "I have reviewed your active research prompt and analysis. "
    "How can I help you refine it or answer follow-up questions?"
)
DEFAULT_GREETING = "Hello! How can I help you today?"
RESET_GREETING = "Chat reset. How can I help?"
ERROR_REPLY = "Sorry, something went wrong. Please try again."


class ChatSessionBusyError(RuntimeError):
    """Raised when a turn is already streaming for the session."""


class ChatSessionClosedError(RuntimeError):
    """Raised when sending to a session that has been closed."""


def build_chat_system_instruction(
    prompt: str = "",
    response: str = "",
    *,
    context_chars: int = 5000,
) -> str:
    instruction = BASE_SYSTEM_INSTRUCTION
    if prompt:
        instruction += f"\n\nYou are helping the user with the following research task:\n{prompt}"
    if response:
        instruction += (
            "\n\nHere is the analysis output you have already generated for them:\n"
            f"{response[:context_chars]}... [truncated for context window]"
        )
    return instruction


def chat_greeting(prompt: str = "") -> str:
    return CONTEXT_GREETING if prompt else DEFAULT_GREETING


class ChatSession:
    def __init__(
        self,
        *,
        provider: str,
        config: AppConfig,
        system_instruction: str = BASE_SYSTEM_INSTRUCTION,
        greeting: str = DEFAULT_GREETING,
        has_context: bool = False,
        client: Any = None,
    ):
        self.session_id = uuid.uuid4().hex
        self.provider = router.resolve_provider(provider, config)
        self.system_instruction = system_instruction
        self.greeting = greeting
        self.has_context = has_context
        self.created_at = time.time()
        self._ttl_seconds = config.CRYPTOBRIEF_CHAT_TTL_SECONDS
        self.expires_at = self.created_at + self._ttl_seconds
        self._config = config
        self._client = client
        self._history: list[ChatTurn] = []
        self._active_turn: int | None = None
        self._turn_counter = 0
        self._closed = False

    @classmethod
    def with_context(
        cls,
        *,
        provider: str,
        config: AppConfig,
        prompt: str = "",
        response: str = "",
        client: Any = None,
    ) -> "ChatSession":
        return cls(
            provider=provider,
            config=config,
            system_instruction=build_chat_system_instruction(
                prompt,
                response,
                context_chars=config.CRYPTOBRIEF_CHAT_CONTEXT_CHARS,
            ),
            greeting=chat_greeting(prompt),
            has_context=bool(prompt),
            client=client,
        )

    @property
    def history(self) -> list[ChatTurn]:
        return list(self._history)

    @property
    def messages(self) -> list[ChatTurn]:
        """Transcript as shown to the user, opening greeting included."""
        return [ChatTurn(role="model", text=self.greeting)] + self.history

    @property
    def in_flight(self) -> bool:
        return self._active_turn is not None

    @property
    def closed(self) -> bool:
        return self._closed

    def touch(self) -> None:
        self.expires_at = time.time() + self._ttl_seconds

    def is_expired(self, now: float | None = None) -> bool:
        if self.in_flight:
            return False
        return self.expires_at <= (time.time() if now is None else now)

    def stream_reply(self, message: str) -> AsyncIterator[str]:
        text = str(message or "").strip()
        if not text:
            raise ValueError("Message must not be empty.")
        if self._closed:
            raise ChatSessionClosedError("Chat session is closed.")
        if self.in_flight:
            raise ChatSessionBusyError("A reply is already streaming for this chat session.")
        self._turn_counter += 1
        turn_id = self._turn_counter
        self._active_turn = turn_id
        self.touch()
        stream = self._run_turn(text, turn_id)
        # A stream dropped before its first iteration never reaches its finally block.
        weakref.finalize(stream, self._release_turn, turn_id)
        return stream

    def _release_turn(self, turn_id: int) -> None:
        if self._active_turn == turn_id:
            self._active_turn = None

    async def _run_turn(self, message: str, turn_id: int) -> AsyncIterator[str]:
        fragments: list[str] = []
        completed = False
        try:
            stream = router.stream_chat(
                provider=self.provider,
                system_instruction=self.system_instruction,
                history=self.history,
                message=message,
                config=self._config,
                client=self._client,
            )
            async for fragment in stream:
                if self._closed:
                    logger.info("chat session closed mid-stream session_id=%s", self.session_id)
                    return
                fragments.append(fragment)
                yield fragment
            completed = True
        except LLMError as exc:
            logger.warning("chat turn failed session_id=%s error=%s", self.session_id, exc)
            yield f"\n[error] {ERROR_REPLY} ({exc})"
        finally:
            self._release_turn(turn_id)
            self.touch()

        if completed and not self._closed:
            self._history.append(ChatTurn(role="user", text=message))
            self._history.append(ChatTurn(role="model", text="".join(fragments)))

    def reset(self) -> "ChatSession":
        self.close()
        return ChatSession(
            provider=self.provider,
            config=self._config,
            system_instruction=BASE_SYSTEM_INSTRUCTION,
            greeting=RESET_GREETING,
            client=self._client,
        )

    def close(self) -> None:
        self._closed = True
