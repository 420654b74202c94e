from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any

from anyio.abc import TaskGroup

from .telegram.updates import (
    MESSAGE_TYPES,
    Update,
    classify,
    get_entities,
    get_text,
    primary_payload,
)

if TYPE_CHECKING:
    from .telegram.client import BotApi, ResponseSink

__all__ = ["Context"]


class _UpdateField:
    def __set_name__(self, owner: type, name: str) -> None:
        self.name = name

    def __get__(self, ctx: Context | None, owner: type | None = None) -> Any:
        if ctx is None:
            return self
        return ctx.update.get(self.name)


class Context:
    """Per-update state handed to every middleware of one pipeline run."""

    message = _UpdateField()
    edited_message = _UpdateField()
    channel_post = _UpdateField()
    edited_channel_post = _UpdateField()
    inline_query = _UpdateField()
    chosen_inline_result = _UpdateField()
    callback_query = _UpdateField()
    shipping_query = _UpdateField()
    pre_checkout_query = _UpdateField()
    poll = _UpdateField()
    poll_answer = _UpdateField()
    my_chat_member = _UpdateField()
    chat_member = _UpdateField()
    chat_join_request = _UpdateField()

    def __init__(
        self,
        update: Update,
        api: BotApi | None = None,
        *,
        bot_info: Mapping[str, Any] | None = None,
        me: str | None = None,
        response: ResponseSink | None = None,
    ) -> None:
        self.update = update
        self.api = api
        self.bot_info = bot_info
        self.me = me
        self.response = response
        self.update_type, self.update_sub_types = classify(update)
        self.state: dict[str, Any] = {}
        self.match: Any = None
        self.start_payload: str | None = None
        self.task_group: TaskGroup | None = None

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(update_id={self.update_id!r}, "
            f"update_type={self.update_type!r}, sub_types={self.update_sub_types!r})"
        )

    @property
    def update_id(self) -> int | None:
        return self.update.get("update_id")

    @property
    def payload(self) -> Mapping[str, Any] | None:
        return primary_payload(self.update)

    @property
    def message_payload(self) -> Mapping[str, Any] | None:
        if self.update_type not in MESSAGE_TYPES:
            return None
        return self.payload

    @property
    def text(self) -> str | None:
        return get_text(self.payload)

    @property
    def entities(self) -> list[Mapping[str, Any]]:
        return get_entities(self.message_payload)

    @property
    def chat(self) -> Mapping[str, Any] | None:
        payload = self.payload
        if payload is None:
            return None
        if self.update_type == "callback_query":
            message = payload.get("message")
            return message.get("chat") if message else None
        return payload.get("chat")

    @property
    def from_user(self) -> Mapping[str, Any] | None:
        payload = self.payload
        if payload is None:
            return None
        if self.update_type == "poll_answer":
            return payload.get("user")
        return payload.get("from")

    def _require_api(self) -> BotApi:
        if self.api is None:
            raise RuntimeError("context has no api client")
        return self.api

    def _chat_id(self) -> int | str:
        chat = self.chat
        if chat is None:
            raise RuntimeError(f"{self.update_type} update has no chat")
        return chat["id"]

    async def reply(self, text: str, **extra: Any) -> Any:
        return await self._require_api().call(
            "sendMessage", chat_id=self._chat_id(), text=text, **extra
        )

    async def answer_callback_query(self, text: str | None = None, **extra: Any) -> Any:
        query = self.callback_query
        if query is None:
            raise RuntimeError(f"{self.update_type} update is not a callback query")
        if text is not None:
            extra["text"] = text
        return await self._require_api().call(
            "answerCallbackQuery", callback_query_id=query["id"], **extra
        )

    async def answer_inline_query(
        self, results: Sequence[Mapping[str, Any]], **extra: Any
    ) -> Any:
        query = self.inline_query
        if query is None:
            raise RuntimeError(f"{self.update_type} update is not an inline query")
        return await self._require_api().call(
            "answerInlineQuery", inline_query_id=query["id"], results=results, **extra
        )

    async def get_chat_member(self, user_id: int) -> Any:
        return await self._require_api().call(
            "getChatMember", chat_id=self._chat_id(), user_id=user_id
        )
