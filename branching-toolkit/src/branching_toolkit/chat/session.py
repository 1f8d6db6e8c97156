"""
Conversation session: drives turns against one conversation tree.

A session owns the tree of a single conversation for mutation. It keeps two
copies of the tree:

    confirmed   the state last written to the store.
    working     the state being built by the current turn, or changes that
                could not be persisted yet ('pending_sync').

A turn copies the working (or confirmed) tree, attaches the user node, streams
the assistant reply into a node that exists from the first chunk on, and then
writes the whole delta through 'TreeSync' in one call. Only a successful write
promotes the working copy to confirmed; a transport failure keeps it pending
for 'retry_sync' (or 'discard_pending'), and the next turn resends it.

Turn states: IDLE -> SENDING -> STREAMING -> COMMITTED | FAILED -> IDLE.
At most one turn is in flight; 'send_message' while one is running is a no-op.
Reads ('view') are allowed at any time, including while a reply streams.

Failure policy: a provider or transport error after the assistant node exists
replaces its content with the locale's apology and still commits the pair. An
error before that point discards the turn's user node; no assistant node is
created only to report the error.
"""

from collections.abc import AsyncGenerator
from enum import StrEnum
from typing import Any

from loguru import logger
from pydantic import BaseModel

from branching_toolkit.chat.prompts import (
    TITLE_MAX_LENGTH,
    QuotedMessage,
    build_quoted_prompt,
    fallback_message_for,
    is_placeholder_title,
    system_prompt_for,
)
from branching_toolkit.conversation_database.data_models.message import Message
from branching_toolkit.conversation_database.sync import TreeSync
from branching_toolkit.errors import BranchingChatError, ProviderError, TransportError, ValidationError
from branching_toolkit.llms.base import LLM, Roles, Usage
from branching_toolkit.settings import AppSettings
from branching_toolkit.tree.branching import BranchEngine, BranchPlan
from branching_toolkit.tree.paths import is_contiguous_path, messages_along_path
from branching_toolkit.tree.store import MessageStore
from branching_toolkit.utils.text import truncate_text


class TurnState(StrEnum):
    IDLE = "idle"
    SENDING = "sending"
    STREAMING = "streaming"
    COMMITTED = "committed"
    FAILED = "failed"


class SessionView(BaseModel):
    """What a UI renders: the messages along the active path plus the whole tree."""

    current_messages: list[Message]
    all_messages: dict[str, Message]
    current_path: list[str]
    state: TurnState
    pending_sync: bool


class TurnResult(BaseModel):
    """
    Outcome of one 'send_message' call.

    'accepted' is False when the call was rejected because another turn was in
    flight. 'error' holds the provider or transport failure of a FAILED turn
    and 'display_message' the apology to show for it. 'sync_error' is set when
    the turn completed locally but could not be persisted.
    """

    accepted: bool
    state: TurnState
    user_message: Message | None = None
    assistant_message: Message | None = None
    error: str | None = None
    display_message: str | None = None
    sync_error: str | None = None
    view: SessionView | None = None


class TurnEvent(BaseModel):
    """A streaming update; the final event of a turn carries 'result'."""

    state: TurnState
    assistant_message: Message | None = None
    result: TurnResult | None = None


class ConversationSession:
    def __init__(self, conversation_id: str, sync: TreeSync, llm: LLM, settings: AppSettings):
        self.conversation_id = conversation_id
        self.sync = sync
        self.llm = llm
        self.settings = settings
        self.state = TurnState.IDLE
        self._confirmed = MessageStore()
        self._confirmed_path: list[str] = []
        self._working: MessageStore | None = None
        self._working_path: list[str] = []
        self._pending_ids: list[str] = []

    @property
    def pending_sync(self) -> bool:
        return self._working is not None and self.state is TurnState.IDLE

    @property
    def current_path(self) -> list[str]:
        return list(self._working_path if self._working is not None else self._confirmed_path)

    async def load(self) -> SessionView:
        """Replace local state with the persisted tree.

        Refused while a turn is in flight: the turn owns the working copy.
        """
        if self.state is not TurnState.IDLE:
            raise ValidationError(f"Cannot reload conversation {self.conversation_id} while a turn is in flight")
        tree = await self.sync.load_conversation_tree(self.conversation_id)
        store = MessageStore.from_messages(tree.messages.values())
        path = tree.current_path
        if not is_contiguous_path(path, store.view()):
            logger.warning(f"Stored path of conversation {self.conversation_id} is broken, re-resolving it")
            path = store.resolve_path(path[-1])
        self._confirmed, self._confirmed_path = store, path
        self._working, self._working_path = None, []
        self._pending_ids = []
        logger.debug(f"Loaded conversation {self.conversation_id} with {len(store)} messages")
        return self.view()

    def view(self) -> SessionView:
        store = self._working if self._working is not None else self._confirmed
        path = self.current_path
        nodes = store.messages()
        return SessionView(
            current_messages=messages_along_path(path, nodes),
            all_messages=nodes,
            current_path=path,
            state=self.state,
            pending_sync=self.pending_sync,
        )

    async def send_message(
        self,
        content: str,
        branch_parent_id: str | None = None,
        quoted_message: QuotedMessage | None = None,
        quoted_text: str | None = None,
    ) -> TurnResult:
        result = None
        async for event in self.send_message_stream(content, branch_parent_id, quoted_message, quoted_text):
            if event.result is not None:
                result = event.result
        if result is None:
            raise BranchingChatError("No result was produced by the turn")
        return result

    async def send_message_stream(
        self,
        content: str,
        branch_parent_id: str | None = None,
        quoted_message: QuotedMessage | None = None,
        quoted_text: str | None = None,
    ) -> AsyncGenerator[TurnEvent, Any]:
        """Run one turn, yielding a snapshot of the assistant node per chunk.

        The last event carries the 'TurnResult'. Consumers should exhaust the
        generator (or close it) so an abandoned turn is rolled back.
        """
        if self.state is not TurnState.IDLE:
            logger.warning(f"Ignoring message for conversation {self.conversation_id}: a turn is in flight")
            yield TurnEvent(
                state=self.state,
                result=TurnResult(accepted=False, state=self.state, view=self.view()),
            )
            return
        if not content.strip():
            raise ValidationError("Message content is required")

        self.state = TurnState.SENDING
        previous_working, previous_path = self._working, list(self._working_path)
        previous_pending = list(self._pending_ids)
        finished = False
        try:
            working = (self._working if self._working is not None else self._confirmed).copy()
            engine = BranchEngine(working)
            plan = engine.plan(self.current_path, branch_parent_id)
            first_turn = len(self._confirmed) == 0
            user_message, path = engine.attach(plan, Roles.USER, content, self.conversation_id)
            self._working, self._working_path = working, path

            if quoted_message is not None and quoted_text:
                prompt = build_quoted_prompt(content, quoted_text, quoted_message, self.settings.locale)
            else:
                prompt = content

            assistant_id: str | None = None
            usage: Usage | None = None
            try:
                async for chunk in self.llm.complete(
                    system_prompt_for(self.settings.locale), prompt, streaming=self.settings.streaming
                ):
                    if assistant_id is None:
                        self.state = TurnState.STREAMING
                        assistant, self._working_path = engine.attach(
                            BranchPlan(parent_id=user_message.id, base_path=path),
                            Roles.ASSISTANT,
                            "",
                            self.conversation_id,
                        )
                        assistant_id = assistant.id
                    if chunk.content:
                        working.append_content(assistant_id, chunk.content)
                    if chunk.usage is not None:
                        usage = chunk.usage
                    yield TurnEvent(state=self.state, assistant_message=working.get(assistant_id))
                if assistant_id is None:
                    raise ProviderError("Completion service returned no content")
                if not working.view()[assistant_id].content:
                    raise ProviderError("Completion service returned an empty response")
            except (ProviderError, TransportError) as exc:
                logger.warning(f"Turn failed in conversation {self.conversation_id}: {exc}")
                apology = fallback_message_for(self.settings.locale)
                if assistant_id is None:
                    self._working, self._working_path = previous_working, previous_path
                    result = TurnResult(
                        accepted=True, state=TurnState.FAILED, error=str(exc), display_message=apology
                    )
                else:
                    working.set_content(assistant_id, apology)
                    working.set_metadata(assistant_id, {"model": self.llm.model_name, "error": str(exc)})
                    result = await self._commit(
                        working, [user_message.id, assistant_id], TurnState.FAILED, error=str(exc), display_message=apology
                    )
            else:
                working.set_metadata(
                    assistant_id,
                    {"model": self.llm.model_name, "usage": usage.model_dump() if usage is not None else None},
                )
                result = await self._commit(working, [user_message.id, assistant_id], TurnState.COMMITTED)
                if result.sync_error is None:
                    await self._maybe_update_title(content, first_turn)

            finished = True
            self.state = TurnState.IDLE
            result.view = self.view()
            yield TurnEvent(state=result.state, assistant_message=result.assistant_message, result=result)
        finally:
            if not finished:
                self._working, self._working_path = previous_working, previous_path
                self._pending_ids = previous_pending
            self.state = TurnState.IDLE

    async def select_message(self, message_id: str) -> SessionView:
        """Make the path to 'message_id' the active path."""
        return await self._move_path(message_id)

    async def create_branch(self, message_id: str) -> SessionView:
        """Set 'message_id' as the fork point: the next message in continue mode attaches to it."""
        view = await self._move_path(message_id)
        logger.info(f"Branch point in conversation {self.conversation_id} set to {message_id}")
        return view

    async def retry_sync(self) -> SessionView:
        """Resend changes that could not be persisted.

        Errors propagate so the caller can decide whether to retry again.
        """
        if self.pending_sync:
            await self.sync.upsert_messages(self.conversation_id, self._pending_batch(), self._working_path)
            self._promote()
        return self.view()

    def discard_pending(self) -> SessionView:
        """Drop unpersisted changes and return to the confirmed state."""
        if self.pending_sync:
            logger.info(f"Discarding {len(self._pending_ids)} unsynced messages of conversation {self.conversation_id}")
            self._working, self._working_path = None, []
            self._pending_ids = []
        return self.view()

    async def _move_path(self, message_id: str) -> SessionView:
        if self.state is not TurnState.IDLE:
            logger.warning(f"Ignoring path change in conversation {self.conversation_id}: a turn is in flight")
            return self.view()
        source = self._working if self._working is not None else self._confirmed
        path = BranchEngine(source).path_to(message_id)
        previous_working, previous_path = self._working, list(self._working_path)
        self._working, self._working_path = source, path
        try:
            await self._persist()
        except Exception:
            self._working, self._working_path = previous_working, previous_path
            raise
        return self.view()

    async def _commit(
        self,
        store: MessageStore,
        turn_ids: list[str],
        state: TurnState,
        error: str | None = None,
        display_message: str | None = None,
    ) -> TurnResult:
        self._pending_ids.extend(turn_ids)
        sync_error = await self._persist()
        if state is TurnState.COMMITTED and sync_error is None:
            logger.info(f"Committed turn {turn_ids[0]} -> {turn_ids[1]} in conversation {self.conversation_id}")
        return TurnResult(
            accepted=True,
            state=state,
            user_message=store.get(turn_ids[0]),
            assistant_message=store.get(turn_ids[1]),
            error=error,
            display_message=display_message,
            sync_error=sync_error,
        )

    async def _persist(self) -> str | None:
        """Write pending messages and the working path; promote on success.

        Returns the error text of a transport or storage failure, which leaves
        the changes pending. Validation, dependency and not-found errors
        propagate unmodified.
        """
        try:
            await self.sync.upsert_messages(self.conversation_id, self._pending_batch(), self._working_path)
        except TransportError as exc:
            logger.warning(f"Could not persist conversation {self.conversation_id}, keeping changes pending: {exc}")
            return str(exc)
        except BranchingChatError:
            raise
        except Exception as exc:
            logger.exception(f"Store failure in conversation {self.conversation_id}, keeping changes pending: {exc}")
            return str(exc)
        self._promote()
        return None

    def _pending_batch(self) -> list[Message]:
        if self._working is None:
            return []
        nodes = self._working.view()
        return [nodes[message_id] for message_id in self._pending_ids]

    def _promote(self) -> None:
        if self._working is None:
            return
        self._confirmed, self._confirmed_path = self._working, list(self._working_path)
        self._working, self._working_path = None, []
        self._pending_ids = []

    async def _maybe_update_title(self, content: str, first_turn: bool) -> None:
        try:
            conversation = await self.sync.get_conversation(self.conversation_id)
            if first_turn or is_placeholder_title(conversation.title):
                title = truncate_text(content, TITLE_MAX_LENGTH)
                await self.sync.update_title(self.conversation_id, title)
                logger.info(f"Titled conversation {self.conversation_id}: {title!r}")
        except Exception as exc:
            logger.warning(f"Failed to update title of conversation {self.conversation_id}: {exc}")
