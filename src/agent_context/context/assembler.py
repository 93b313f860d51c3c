"""Context assembler.

Gathers memories, conversation history and emojis for an interaction and
renders them into a system/user message pair within a strict token budget.
"""

from __future__ import annotations

from collections.abc import Sequence

from loguru import logger

from ..config import ContextConfig
from ..interfaces import EmojiFetcher, MessageFetcher, RelatedMessageSearcher, TokenEstimator
from ..memory.store import MemoryLogStore
from ..models import (
    AssembledContext,
    AssembledSpontaneousContext,
    Attachment,
    FormattedContext,
    NormalizedEvent,
    PlatformEmoji,
    PlatformMessage,
    ResolvedMemory,
    WorkspaceInfo,
)
from ..token_counter import TokenCounter
from .budget import select_newest_within_budget
from .prompt_cache import PromptCache

CLEAR_COMMAND = "/clear"
MAX_EMOJIS = 200

MEMORIES_HEADER = "## Important Memories\n\n"
RECENT_HEADER = "## Recent Conversation\n\n"
RELATED_HEADER = "## Related Messages from this Server\n\n"
EMOJI_HEADER = (
    "## Available Custom Emojis\n\n"
    "You can use these custom emojis in your replies (embed in text) or as "
    "reactions. Format: <e> = emoji, <t> = text embed, <r> = reaction, "
    "<a> = alias.\n\n"
)
CURRENT_MESSAGE_HEADER = "## Current Message\n\n"
SECTION_END = "\n"


def apply_clear_command(messages: list[PlatformMessage]) -> list[PlatformMessage]:
    """Drop everything up to and including the most recent ``/clear`` message.

    Only a message that starts with the command (ignoring leading whitespace)
    counts. Without one, the input list itself is returned.
    """
    for i in range(len(messages) - 1, -1, -1):
        if messages[i].content.lstrip().startswith(CLEAR_COMMAND):
            return messages[i + 1 :]
    return messages


def _format_message_line(message: PlatformMessage) -> str:
    prefix = "[Bot]" if message.is_bot else "[User]"
    return f"{prefix} {message.username}: {message.content}\n"


def _format_attachment_line(attachment: Attachment) -> str:
    details = attachment.mime_type
    if attachment.size is not None:
        details += f", {attachment.size} bytes"
    return f"[Attachment] {attachment.filename} ({details}): {attachment.url}\n"


def _format_emoji_line(emoji: PlatformEmoji) -> str:
    aliases = "".join(f"<a>{alias}</a>" for alias in emoji.aliases or [])
    return f"<e><t>{emoji.use_in_text}</t><r>{emoji.use_as_reaction}</r>{aliases}</e>\n"


def _group_emojis(emojis: Sequence[PlatformEmoji]) -> dict[str, list[PlatformEmoji]]:
    grouped: dict[str, list[PlatformEmoji]] = {}
    for emoji in emojis:
        grouped.setdefault(emoji.category or "Uncategorized", []).append(emoji)
    return grouped


class ContextAssembler:
    """Assembles agent context from memories, messages and emojis.

    Sections of the user message, in budget priority order:

    - Important memories (always rendered in full)
    - Current message (always rendered in full)
    - Conversation history (recent, then related; newest kept first)
    - Custom emojis (whatever budget is left)

    The system prompt is paid for before any section.
    """

    def __init__(
        self,
        memory_store: MemoryLogStore,
        config: ContextConfig,
        token_counter: TokenEstimator | None = None,
        prompt_cache: PromptCache | None = None,
    ):
        """Initialize context assembler.

        Args:
            memory_store: Source of important memories
            config: Message limits, token limit and system prompt path
            token_counter: Text cost estimator (defaults to :class:`TokenCounter`)
            prompt_cache: System prompt cache (defaults to one reading
                ``config.system_prompt_path``)
        """
        self.memory_store = memory_store
        self.config = config
        self.token_counter = token_counter or TokenCounter()
        self.prompt_cache = prompt_cache or PromptCache(config.system_prompt_path)

        logger.debug(
            f"ContextAssembler initialized with {config.token_limit} tokens, "
            f"recent message limit {config.recent_message_limit}"
        )

    def invalidate_system_prompt_cache(self) -> None:
        """Reload the system prompt on the next assembly (for hot reload)."""
        self.prompt_cache.invalidate()

    # ------------------------------------------------------------------
    # Gathering
    # ------------------------------------------------------------------

    async def _fetch_recent(
        self, fetcher: MessageFetcher, channel_id: str
    ) -> list[PlatformMessage]:
        try:
            return await fetcher.fetch_recent_messages(
                channel_id, self.config.recent_message_limit
            )
        except Exception as e:
            logger.warning(f"Failed to fetch recent messages for {channel_id}: {e}")
            return []

    async def _fetch_emojis(self, fetcher: MessageFetcher) -> list[PlatformEmoji] | None:
        if not isinstance(fetcher, EmojiFetcher):
            return None
        try:
            emojis = await fetcher.fetch_emojis()
        except Exception as e:
            logger.warning(f"Failed to fetch emojis: {e}")
            return None
        if not emojis:
            return None
        logger.debug(f"Fetched {len(emojis)} available emojis")
        return emojis

    async def _fetch_related(
        self, fetcher: MessageFetcher, event: NormalizedEvent
    ) -> list[PlatformMessage] | None:
        if not event.guild_id or event.is_dm:
            return None
        if not isinstance(fetcher, RelatedMessageSearcher):
            return None
        try:
            related = await fetcher.search_related_messages(
                event.guild_id,
                event.channel_id,
                event.content,
                self.config.related_message_limit,
            )
        except Exception as e:
            logger.warning(f"Failed to fetch related messages: {e}")
            return None
        logger.debug(f"Fetched {len(related)} related messages")
        return related

    def _count_many(self, *texts: str) -> int:
        return sum(self.token_counter.count(text) for text in texts)

    def _estimate(
        self,
        system_prompt: str,
        memories: Sequence[ResolvedMemory],
        messages: Sequence[PlatformMessage],
        emojis: Sequence[PlatformEmoji] | None,
        *extra: str,
    ) -> int:
        memories_text = "\n".join(m.content for m in memories)
        messages_text = "\n".join(f"{m.username}: {m.content}" for m in messages)
        emoji_text = ", ".join(e.name for e in emojis or [])
        return self._count_many(
            system_prompt, memories_text, messages_text, emoji_text, *extra
        )

    async def assemble_context(
        self,
        event: NormalizedEvent,
        workspace: WorkspaceInfo,
        fetcher: MessageFetcher,
    ) -> AssembledContext:
        """Gather everything an interaction needs, without budgeting.

        Args:
            event: The triggering message
            workspace: Workspace of the message author
            fetcher: Platform adapter; related search and emoji listing are
                used when it implements them

        Returns:
            AssembledContext with a coarse token estimate

        Raises:
            PromptLoadError: The system prompt cannot be loaded. Fetch failures
                never raise; the affected part is left empty.
        """
        logger.info(f"Assembling context for {workspace.key} in channel {event.channel_id}")

        system_prompt = await self.prompt_cache.get()

        important_memories = await self.memory_store.get_important_memories(workspace)
        logger.debug(f"Loaded {len(important_memories)} important memories")

        raw_recent = await self._fetch_recent(fetcher, event.channel_id)
        recent_messages = apply_clear_command(raw_recent)
        if len(recent_messages) != len(raw_recent):
            logger.info(
                f"Applied {CLEAR_COMMAND} to recent messages: "
                f"{len(raw_recent)} -> {len(recent_messages)}"
            )

        related_messages = await self._fetch_related(fetcher, event)
        available_emojis = await self._fetch_emojis(fetcher)

        trigger_message = PlatformMessage(
            message_id=event.message_id,
            user_id=event.user_id,
            username=event.username or event.user_id,
            content=event.content,
            timestamp=event.timestamp,
            is_bot=False,
            attachments=event.attachments,
        )

        estimated_tokens = self._estimate(
            system_prompt,
            important_memories,
            [*recent_messages, *(related_messages or [])],
            available_emojis,
            f"{trigger_message.username}: {trigger_message.content}",
        )

        context = AssembledContext(
            system_prompt=system_prompt,
            important_memories=important_memories,
            recent_messages=recent_messages,
            related_messages=related_messages,
            available_emojis=available_emojis,
            trigger_message=trigger_message,
            estimated_tokens=estimated_tokens,
        )

        logger.info(
            f"Context assembled for {workspace.key}: "
            f"memories={len(important_memories)}, "
            f"recent={len(recent_messages)}, "
            f"related={len(related_messages or [])}, "
            f"emojis={len(available_emojis or [])}, "
            f"~{estimated_tokens}tok"
        )
        return context

    async def assemble_spontaneous_context(
        self,
        platform: str,
        channel_id: str,
        workspace: WorkspaceInfo,
        fetcher: MessageFetcher,
        fetch_recent_messages: bool = True,
    ) -> AssembledSpontaneousContext:
        """Gather context for an unprompted post; there is no trigger message.

        Raises ``PromptLoadError`` like :meth:`assemble_context`.
        """
        logger.info(
            f"Assembling spontaneous context for {platform}:{channel_id} "
            f"(fetch_recent_messages={fetch_recent_messages})"
        )

        system_prompt = await self.prompt_cache.get()
        important_memories = await self.memory_store.get_important_memories(workspace)

        recent_messages: list[PlatformMessage] = []
        if fetch_recent_messages:
            recent_messages = apply_clear_command(
                await self._fetch_recent(fetcher, channel_id)
            )

        available_emojis = await self._fetch_emojis(fetcher)

        return AssembledSpontaneousContext(
            system_prompt=system_prompt,
            important_memories=important_memories,
            recent_messages=recent_messages,
            available_emojis=available_emojis,
            recent_messages_fetched=fetch_recent_messages,
            estimated_tokens=self._estimate(
                system_prompt, important_memories, recent_messages, available_emojis
            ),
        )

    # ------------------------------------------------------------------
    # Formatting
    # ------------------------------------------------------------------

    def format_context(self, context: AssembledContext) -> FormattedContext:
        """Render the assembled context within the configured token limit."""
        trigger_section = self._format_trigger_section(context.trigger_message)
        return self._format_with_budget(
            system_prompt=context.system_prompt,
            memories=context.important_memories,
            recent_messages=context.recent_messages,
            related_messages=context.related_messages,
            emojis=context.available_emojis,
            closing_section=trigger_section,
        )

    def format_spontaneous_context(
        self, context: AssembledSpontaneousContext
    ) -> FormattedContext:
        """Render a spontaneous context; the post instructions replace the current message."""
        instructions = self._build_spontaneous_instructions(context.recent_messages_fetched)
        return self._format_with_budget(
            system_prompt=context.system_prompt,
            memories=context.important_memories,
            recent_messages=context.recent_messages,
            related_messages=None,
            emojis=context.available_emojis,
            closing_section=instructions,
        )

    def _format_with_budget(
        self,
        system_prompt: str,
        memories: Sequence[ResolvedMemory],
        recent_messages: Sequence[PlatformMessage],
        related_messages: Sequence[PlatformMessage] | None,
        emojis: Sequence[PlatformEmoji] | None,
        closing_section: str,
    ) -> FormattedContext:
        count = self.token_counter.count
        available = self.config.token_limit - count(system_prompt)

        # 1. Memories and 2. the closing section are paid unconditionally
        memories_section = self._format_memories_section(memories) if memories else ""
        remaining = available - count(memories_section) - count(closing_section)

        # 3. Conversation
        conversation_section, conversation_tokens = self._format_conversation_section(
            recent_messages, related_messages or [], remaining
        )

        # 4. Emojis get what is left
        emoji_section = ""
        if emojis:
            emoji_section = self._format_emoji_section(
                emojis, max(remaining, 0) - conversation_tokens
            )

        user_message = "".join(
            [memories_section, conversation_section, emoji_section, closing_section]
        )
        estimated_tokens = self._count_many(system_prompt, user_message)

        logger.info(
            f"Context formatted: ~{estimated_tokens}/{self.config.token_limit}tok "
            f"(memories={len(memories)}, "
            f"conversation={'yes' if conversation_section else 'no'}, "
            f"emojis={'yes' if emoji_section else 'no'})"
        )

        return FormattedContext(
            system_message=system_prompt,
            user_message=user_message,
            estimated_tokens=estimated_tokens,
        )

    def _format_memories_section(self, memories: Sequence[ResolvedMemory]) -> str:
        lines = [f"{i}. {m.content}\n" for i, m in enumerate(memories, 1)]
        return MEMORIES_HEADER + "".join(lines) + SECTION_END

    def _format_trigger_section(self, trigger_message: PlatformMessage) -> str:
        lines = [f"{trigger_message.username}: {trigger_message.content}\n"]
        lines.extend(_format_attachment_line(a) for a in trigger_message.attachments or [])
        return CURRENT_MESSAGE_HEADER + "".join(lines)

    def _format_conversation_section(
        self,
        recent_messages: Sequence[PlatformMessage],
        related_messages: Sequence[PlatformMessage],
        token_budget: int,
    ) -> tuple[str, int]:
        """Format conversation history, dropping the oldest messages first.

        Returns:
            The section text and the tokens charged for it
        """
        if token_budget <= 0:
            logger.warning(
                f"No token budget for conversation history ({token_budget} tokens left)"
            )
            return "", 0

        count = self.token_counter.count

        recent_lines = [_format_message_line(m) for m in recent_messages]
        recent_costs = [count(line) for line in recent_lines]
        recent_overhead = count(RECENT_HEADER) + count(SECTION_END)

        related_lines = [_format_message_line(m) for m in related_messages]
        related_costs = [count(line) for line in related_lines]
        related_overhead = count(RELATED_HEADER) + count(SECTION_END)

        total = 0
        if recent_lines:
            total += recent_overhead + sum(recent_costs)
        if related_lines:
            total += related_overhead + sum(related_costs)

        if total <= token_budget:
            return self._render_conversation(recent_lines, related_lines), total

        recent = select_newest_within_budget(
            recent_lines, recent_costs, token_budget, overhead=recent_overhead
        )
        if recent.count < len(recent_lines):
            logger.info(
                f"Truncated recent messages to fit token budget: "
                f"{recent.count}/{len(recent_lines)} kept, "
                f"{recent.tokens_used}/{token_budget} tokens"
            )

        remaining = token_budget - recent.tokens_used
        related = select_newest_within_budget(
            related_lines, related_costs, remaining, overhead=related_overhead
        )
        if related.count < len(related_lines):
            logger.info(
                f"Truncated related messages to fit token budget: "
                f"{related.count}/{len(related_lines)} kept, "
                f"{related.tokens_used}/{remaining} tokens"
            )

        section = self._render_conversation(recent.items, related.items)
        return section, recent.tokens_used + related.tokens_used

    @staticmethod
    def _render_conversation(recent_lines: list[str], related_lines: list[str]) -> str:
        parts = []
        if recent_lines:
            parts.append(RECENT_HEADER + "".join(recent_lines) + SECTION_END)
        if related_lines:
            parts.append(RELATED_HEADER + "".join(related_lines) + SECTION_END)
        return "".join(parts)

    def _format_emoji_section(
        self, emojis: Sequence[PlatformEmoji], token_budget: int
    ) -> str:
        """Format emojis grouped by category within the remaining budget.

        Categories and entries are emitted in catalog order until MAX_EMOJIS
        is reached or the next category header or entry would not fit. A
        category is only opened when its first entry fits too.
        """
        count = self.token_counter.count

        used = count(EMOJI_HEADER)
        if used > token_budget:
            logger.info(
                f"Omitting emoji section: header needs {used} tokens, "
                f"{token_budget} available"
            )
            return ""

        parts: list[str] = []
        emitted = 0
        stopped = False
        for category, category_emojis in _group_emojis(emojis).items():
            category_header = f"### {category}\n"
            category_overhead = count(category_header) + count(SECTION_END)
            entries: list[str] = []
            for emoji in category_emojis:
                line = _format_emoji_line(emoji)
                line_cost = count(line)
                overhead = 0 if entries else category_overhead
                if emitted >= MAX_EMOJIS or used + overhead + line_cost > token_budget:
                    stopped = True
                    break
                entries.append(line)
                used += overhead + line_cost
                emitted += 1
            if entries:
                parts.append(category_header + "".join(entries) + SECTION_END)
            if stopped:
                break

        if not parts:
            logger.info(f"Omitting emoji section: no emoji fits in {token_budget} tokens")
            return ""

        if emitted < len(emojis):
            note = f"... and {len(emojis) - emitted} more emojis\n\n"
            if used + count(note) <= token_budget:
                parts.append(note)
            logger.info(f"Truncated emoji list: {emitted}/{len(emojis)} emitted")

        return EMOJI_HEADER + "".join(parts)

    @staticmethod
    def _build_spontaneous_instructions(has_recent_messages: bool) -> str:
        lines = [
            "## Spontaneous Post Mode",
            "",
            "You are creating a spontaneous post. This is NOT a response to any user message.",
            "There is no current message to reply to or react to.",
            "",
            "Guidelines:",
            "- Create original content that fits your character and personality",
            "- Publish your content as a new post",
            "- Do NOT add reactions (there is no message to react to)",
            "- Do NOT address or respond to any specific user",
        ]
        if has_recent_messages:
            lines.append(
                "- You may reference recent conversation topics for inspiration, "
                "but do not reply to them directly"
            )
        else:
            lines.append(
                "- Create something entirely original: share a thought, "
                "observation, or topic you find interesting"
            )
        return "\n".join(lines) + "\n"
