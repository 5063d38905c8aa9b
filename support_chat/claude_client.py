"""
Completion provider: Claude SDK wrapper for support replies.

``generate_reply`` is the boundary the coordinator calls. It bounds the
provider call with a timeout and turns every outcome into a
``CompletionResult`` so provider failures never propagate as exceptions.
"""
import asyncio
import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Protocol

from claude_agent_sdk import (
    AssistantMessage,
    ClaudeAgentOptions,
    ClaudeSDKClient,
    ResultMessage,
    TextBlock,
)

from support_chat.models import ContextTurn

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """
You are a helpful customer support agent for "Spur Generic Store", a fictional e-commerce shop.
Your tone is professional, friendly, and concise.

Domain Knowledge:
- Shipping: We ship worldwide. India shipping is free over $50. International is flat $20.
- Returns: 30-day no-questions-asked return policy. Customer pays return shipping unless item is defective.
- Support Hours: Mon-Fri 9am-5pm IST.
- Products: generic widgets, gadgets, and other likely products.

If you don't know the answer, politely say you don't know and ask them to email support@spur.store.
Do not invent policies.
""".strip()

ACKNOWLEDGMENT = (
    "Understood. I am ready to assist customers with their inquiries "
    "about Spur Generic Store."
)

CONNECTION_FALLBACK = "I'm having trouble connecting to my brain right now. Please try again later."
EMPTY_FALLBACK = "Sorry, I couldn't generate a response."

TRANSCRIPT_INSTRUCTIONS = (
    "You will receive a support conversation transcript. Stay in the role "
    "established at the start of the transcript and write only the "
    "Assistant's next reply to the final Customer message. Do not prefix "
    "the reply with a speaker label."
)

SPEAKER_LABELS = {"user": "Customer", "model": "Assistant"}


class CompletionError(Exception):
    """The provider answered with an error instead of a reply."""


class CompletionProvider(Protocol):
    async def complete(
        self,
        system_preamble: str,
        prior_turns: List[ContextTurn],
        new_message: str,
    ) -> Optional[str]: ...


def build_conversation(system_preamble: str, prior_turns: List[ContextTurn]) -> List[ContextTurn]:
    """Prefix the history with the instruction and acknowledgment turns."""
    return [
        ContextTurn(role="user", text=system_preamble),
        ContextTurn(role="model", text=ACKNOWLEDGMENT),
        *prior_turns,
    ]


def render_transcript(turns: List[ContextTurn], new_message: str) -> str:
    lines = [f"{SPEAKER_LABELS[turn.role]}: {turn.text}" for turn in turns]
    lines.append(f"{SPEAKER_LABELS['user']}: {new_message}")
    return "\n\n".join(lines)


class ClaudeChat:
    """Stateless Claude completion provider.

    Each call opens a fresh SDK client, sends the whole rendered conversation
    and collects the text of a single tool-less turn.
    """

    def __init__(self, oauth_token: Optional[str] = None, model: Optional[str] = None):
        if oauth_token:
            os.environ["CLAUDE_CODE_OAUTH_TOKEN"] = oauth_token

        self.options = ClaudeAgentOptions(
            allowed_tools=[],
            disallowed_tools=[
                "Task",
                "Bash",
                "Glob",
                "Grep",
                "Read",
                "Edit",
                "Write",
                "WebFetch",
                "WebSearch",
                "NotebookEdit",
                "Skill",
                "TodoWrite",
            ],
            max_turns=1,
            model=model,
            system_prompt=TRANSCRIPT_INSTRUCTIONS,
        )

    async def complete(
        self,
        system_preamble: str,
        prior_turns: List[ContextTurn],
        new_message: str,
    ) -> Optional[str]:
        prompt = render_transcript(
            build_conversation(system_preamble, prior_turns), new_message
        )
        reply = ""

        async with ClaudeSDKClient(options=self.options) as client:
            await client.query(prompt)

            async for msg in client.receive_response():
                if isinstance(msg, AssistantMessage):
                    for block in msg.content:
                        if isinstance(block, TextBlock):
                            reply += block.text

                elif isinstance(msg, ResultMessage):
                    logger.debug(
                        "ResultMessage subtype=%s is_error=%s",
                        getattr(msg, "subtype", None),
                        msg.is_error,
                    )
                    if msg.is_error:
                        raise CompletionError(msg.result or "Unknown error")

        return reply


class CompletionOutcome(str, Enum):
    REPLY = "reply"
    EMPTY = "empty"
    FAILED = "failed"


@dataclass(frozen=True)
class CompletionResult:
    outcome: CompletionOutcome
    text: str

    @property
    def is_fallback(self) -> bool:
        return self.outcome is not CompletionOutcome.REPLY


async def generate_reply(
    provider: CompletionProvider,
    history: List[ContextTurn],
    new_message: str,
    timeout_seconds: float,
    system_preamble: str = SYSTEM_PROMPT,
) -> CompletionResult:
    """Ask the provider for a reply, substituting a fallback on any failure."""
    try:
        text = await asyncio.wait_for(
            provider.complete(system_preamble, history, new_message),
            timeout=timeout_seconds,
        )
    except asyncio.TimeoutError:
        logger.error("Completion provider timed out after %.1f seconds", timeout_seconds)
        return CompletionResult(CompletionOutcome.FAILED, CONNECTION_FALLBACK)
    except Exception:
        logger.exception("Completion provider failed")
        return CompletionResult(CompletionOutcome.FAILED, CONNECTION_FALLBACK)

    if not text or not text.strip():
        logger.warning("Completion provider returned an empty reply")
        return CompletionResult(CompletionOutcome.EMPTY, EMPTY_FALLBACK)

    return CompletionResult(CompletionOutcome.REPLY, text)
