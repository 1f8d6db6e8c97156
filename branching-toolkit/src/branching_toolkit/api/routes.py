"""
HTTP surface for the branching chat controller.

'build_router' returns an 'APIRouter' bound to one controller instance. Library
errors are translated to HTTP status codes in one place ('to_http_exception'):

    NotFoundError                   404
    ValidationError                 400
    DependencyError                 409 (the response names the missing parent)
    ProviderError, TransportError   502
"""

from collections.abc import Awaitable
from typing import TypeVar

from fastapi import APIRouter, HTTPException
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from branching_toolkit.chat.session import SessionView, TurnResult
from branching_toolkit.conversation_database.controller import (
    BranchingChatController,
    ConversationInput,
    MessageInput,
)
from branching_toolkit.conversation_database.data_models.conversation import Conversation
from branching_toolkit.conversation_database.data_models.message import Message
from branching_toolkit.conversation_database.sync import ConversationTree
from branching_toolkit.errors import (
    BranchingChatError,
    DependencyError,
    NotFoundError,
    ProviderError,
    TransportError,
    ValidationError,
)

T = TypeVar("T")


class ConversationTreeResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    messages: list[Message]
    current_path: list[str] = Field(alias="currentPath")

    @classmethod
    def from_tree(cls, tree: ConversationTree) -> "ConversationTreeResponse":
        messages = sorted(tree.messages.values(), key=lambda message: message.create_timestamp)
        return cls(messages=messages, current_path=tree.current_path)


class SyncRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    messages: list[Message] = Field(default_factory=list)
    current_path: list[str] = Field(default_factory=list, alias="currentPath")


class SelectRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message_id: str = Field(alias="messageId")


class DeleteResponse(BaseModel):
    deleted: bool


def to_http_exception(exc: BranchingChatError) -> HTTPException:
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, DependencyError):
        return HTTPException(status_code=409, detail={"message": str(exc), "missingId": exc.missing_id})
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, (ProviderError, TransportError)):
        return HTTPException(status_code=502, detail=str(exc))
    return HTTPException(status_code=500, detail=str(exc))


async def _call(operation: Awaitable[T]) -> T:
    try:
        return await operation
    except BranchingChatError as exc:
        http_exc = to_http_exception(exc)
        if http_exc.status_code >= 500:
            logger.error(f"Request failed: {exc}")
        raise http_exc from exc


def build_router(controller: BranchingChatController) -> APIRouter:
    router = APIRouter()

    @router.get("/conversations", response_model=list[Conversation])
    async def list_conversations() -> list[Conversation]:
        return await _call(controller.list_conversations())

    @router.post("/conversations", response_model=Conversation, status_code=201)
    async def create_conversation(conversation_input: ConversationInput | None = None) -> Conversation:
        return await _call(controller.create_conversation(conversation_input))

    @router.patch("/conversations/{conversation_id}", response_model=Conversation)
    async def update_conversation(conversation_id: str, conversation_input: ConversationInput) -> Conversation:
        return await _call(controller.update_conversation(conversation_id, conversation_input))

    @router.delete("/conversations/{conversation_id}", response_model=DeleteResponse)
    async def delete_conversation(conversation_id: str) -> DeleteResponse:
        return DeleteResponse(deleted=await _call(controller.delete_conversation(conversation_id)))

    @router.get("/conversations/{conversation_id}/messages", response_model=ConversationTreeResponse)
    async def get_messages(conversation_id: str) -> ConversationTreeResponse:
        tree = await _call(controller.get_conversation_tree(conversation_id))
        return ConversationTreeResponse.from_tree(tree)

    @router.post("/conversations/{conversation_id}/messages", response_model=ConversationTreeResponse)
    async def sync_messages(conversation_id: str, request: SyncRequest) -> ConversationTreeResponse:
        tree = await _call(controller.sync_messages(conversation_id, request.messages, request.current_path))
        return ConversationTreeResponse.from_tree(tree)

    @router.post("/conversations/{conversation_id}/chat", response_model=TurnResult)
    async def chat(conversation_id: str, message_input: MessageInput) -> TurnResult:
        return await _call(controller.send_message(conversation_id, message_input))

    @router.post("/conversations/{conversation_id}/select", response_model=SessionView)
    async def select_message(conversation_id: str, request: SelectRequest) -> SessionView:
        return await _call(controller.select_message(conversation_id, request.message_id))

    @router.post("/conversations/{conversation_id}/branch", response_model=SessionView)
    async def create_branch(conversation_id: str, request: SelectRequest) -> SessionView:
        return await _call(controller.create_branch(conversation_id, request.message_id))

    return router
