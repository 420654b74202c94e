from __future__ import annotations

import re
from collections.abc import Callable, Iterable, Mapping
from typing import Any

from .combinators import lazy, optional, tap
from .context import Context
from .errors import InvalidArgument
from .pipeline import Handler
from .telegram.updates import entity_text, get_entities, get_text, remap_subtypes

__all__ = [
    "acl",
    "action",
    "admin",
    "cashtag",
    "chat_type",
    "command",
    "creator",
    "email",
    "entity",
    "entity_text_matcher",
    "game_query",
    "group_chat",
    "hashtag",
    "hears",
    "inline_query",
    "match",
    "member_status",
    "mention",
    "mount",
    "normalize_text_arguments",
    "normalize_triggers",
    "phone",
    "private_chat",
    "set_start_payload",
    "spoiler",
    "start",
    "text_link",
    "text_mention",
    "url",
]

Trigger = Callable[[str | None, Context], Any]
EntityPredicate = Callable[[Mapping[str, Any], str, Context], Any]

_GROUP_CHAT_TYPES = frozenset({"group", "supergroup"})


def _as_list(value: Any) -> list[Any]:
    if isinstance(value, str | bytes | Mapping) or not isinstance(value, Iterable):
        return [value]
    return list(value)


def normalize_triggers(triggers: Any) -> list[Trigger]:
    normalized: list[Trigger] = []
    for trigger in _as_list(triggers):
        if trigger is None or trigger == "":
            raise InvalidArgument("invalid trigger")
        if callable(trigger):
            normalized.append(trigger)
        elif isinstance(trigger, re.Pattern):
            normalized.append(_pattern_trigger(trigger))
        else:
            normalized.append(_literal_trigger(trigger))
    return normalized


def _pattern_trigger(pattern: re.Pattern[str]) -> Trigger:
    def trigger(value: str | None, ctx: Context) -> re.Match[str] | None:
        return pattern.search(value or "")

    return trigger


def _literal_trigger(expected: Any) -> Trigger:
    def trigger(value: str | None, ctx: Context) -> Any:
        return value if value == expected else None

    return trigger


def normalize_text_arguments(argument: Any, prefix: str | None = None) -> list[Any]:
    normalized = []
    for arg in _as_list(argument):
        if not arg:
            continue
        if prefix and isinstance(arg, str) and not arg.startswith(prefix):
            arg = f"{prefix}{arg}"
        normalized.append(arg)
    return normalized


def _first_match(triggers: Iterable[Trigger], value: str | None, ctx: Context) -> bool:
    for trigger in triggers:
        ctx.match = trigger(value, ctx)
        if ctx.match:
            return True
    return False


def match(triggers: Any, *fns: Handler) -> Handler | None:
    normalized = normalize_triggers(triggers)

    def predicate(ctx: Context) -> bool:
        text = ctx.text
        if text is None:
            return False
        return _first_match(normalized, text, ctx)

    return optional(predicate, *fns)


def mount(update_types: str | Iterable[str], *fns: Handler) -> Handler | None:
    wanted = frozenset(remap_subtypes(normalize_text_arguments(update_types)))

    def predicate(ctx: Context) -> bool:
        if ctx.update_type in wanted:
            return True
        return any(sub_type in wanted for sub_type in ctx.update_sub_types)

    return optional(predicate, *fns)


def hears(triggers: Any, *fns: Handler) -> Handler | None:
    return mount("text", match(triggers, *fns))


def action(triggers: Any, *fns: Handler) -> Handler | None:
    return mount("callback_query", match(triggers, *fns))


def inline_query(triggers: Any, *fns: Handler) -> Handler | None:
    return mount("inline_query", match(triggers, *fns))


def game_query(*fns: Handler) -> Handler | None:
    def has_game(ctx: Context) -> bool:
        return bool(ctx.callback_query.get("game_short_name"))

    return mount("callback_query", optional(has_game, *fns))


def entity(predicate: EntityPredicate | Any, *fns: Handler) -> Handler | None:
    if not callable(predicate):
        entity_types = frozenset(normalize_text_arguments(predicate))

        def has_type(item: Mapping[str, Any], value: str, ctx: Context) -> bool:
            return item.get("type") in entity_types

        return entity(has_type, *fns)

    def any_entity(ctx: Context) -> bool:
        message = ctx.message_payload
        entities = get_entities(message)
        if not entities:
            return False
        text = get_text(message) or ""
        return any(
            predicate(item, entity_text(text, item["offset"], item["length"]), ctx)
            for item in entities
        )

    return optional(any_entity, *fns)


def entity_text_matcher(entity_type: str, triggers: Any, *fns: Handler) -> Handler | None:
    """Match entities of one type, optionally against their text.

    Called without middleware, ``triggers`` is taken as the middleware and
    any entity of ``entity_type`` matches.
    """
    if not fns:
        return entity(entity_type, *_as_list(triggers))
    normalized = normalize_triggers(triggers)

    def predicate(item: Mapping[str, Any], value: str, ctx: Context) -> bool:
        if item.get("type") != entity_type:
            return False
        return _first_match(normalized, value, ctx)

    return entity(predicate, *fns)


def email(triggers: Any, *fns: Handler) -> Handler | None:
    return entity_text_matcher("email", triggers, *fns)


def phone(triggers: Any, *fns: Handler) -> Handler | None:
    return entity_text_matcher("phone_number", triggers, *fns)


def url(triggers: Any, *fns: Handler) -> Handler | None:
    return entity_text_matcher("url", triggers, *fns)


def text_link(triggers: Any, *fns: Handler) -> Handler | None:
    return entity_text_matcher("text_link", triggers, *fns)


def text_mention(triggers: Any, *fns: Handler) -> Handler | None:
    return entity_text_matcher("text_mention", triggers, *fns)


def mention(triggers: Any, *fns: Handler) -> Handler | None:
    return entity_text_matcher("mention", normalize_text_arguments(triggers, "@"), *fns)


def hashtag(triggers: Any, *fns: Handler) -> Handler | None:
    return entity_text_matcher("hashtag", normalize_text_arguments(triggers, "#"), *fns)


def cashtag(triggers: Any, *fns: Handler) -> Handler | None:
    return entity_text_matcher("cashtag", normalize_text_arguments(triggers, "$"), *fns)


def spoiler(triggers: Any, *fns: Handler) -> Handler | None:
    return entity_text_matcher("spoiler", triggers, *fns)


def command(commands: str | Iterable[str], *fns: Handler) -> Handler | None:
    """Match ``/command`` when it opens the message.

    In groups, ``/command@botname`` is accepted too once the bot username is
    known.
    """
    wanted = normalize_text_arguments(commands, "/")

    def build(ctx: Context) -> Handler | None:
        chat = ctx.chat or {}
        accepted = set(wanted)
        if ctx.me and chat.get("type") in _GROUP_CHAT_TYPES:
            accepted.update(f"{item}@{ctx.me}" for item in wanted)

        def is_command(item: Mapping[str, Any], value: str, _ctx: Context) -> bool:
            return (
                item.get("offset") == 0
                and item.get("type") == "bot_command"
                and value in accepted
            )

        return entity(is_command, *fns)

    return mount(["message", "channel_post"], lazy(build))


def set_start_payload(ctx: Context, call_next: Any = None) -> None:
    message = ctx.message_payload
    entities = get_entities(message)
    text = get_text(message) or ""
    if not entities:
        ctx.start_payload = ""
        return
    ctx.start_payload = entity_text(text, entities[0]["length"] + 1)


def start(*fns: Handler) -> Handler | None:
    return command("start", tap(set_start_payload), *fns)


def acl(user_ids: Any, *fns: Handler) -> Handler | None:
    if callable(user_ids):
        return optional(user_ids, *fns)
    allowed = frozenset(_as_list(user_ids))

    def is_allowed(ctx: Context) -> bool:
        user = ctx.from_user
        return user is None or user.get("id") in allowed

    return optional(is_allowed, *fns)


def chat_type(types: str | Iterable[str], *fns: Handler) -> Handler | None:
    wanted = frozenset(_as_list(types))

    def predicate(ctx: Context) -> bool:
        chat = ctx.chat
        return chat is not None and chat.get("type") in wanted

    return optional(predicate, *fns)


def private_chat(*fns: Handler) -> Handler | None:
    return chat_type("private", *fns)


def group_chat(*fns: Handler) -> Handler | None:
    return chat_type(["group", "supergroup"], *fns)


def member_status(statuses: str | Iterable[str], *fns: Handler) -> Handler | None:
    wanted = frozenset(_as_list(statuses))

    async def predicate(ctx: Context) -> bool:
        user = ctx.from_user
        if ctx.message is None or user is None:
            return False
        member = await ctx.get_chat_member(user["id"])
        return bool(member) and member.get("status") in wanted

    return optional(predicate, *fns)


def admin(*fns: Handler) -> Handler | None:
    return member_status(["administrator", "creator"], *fns)


def creator(*fns: Handler) -> Handler | None:
    return member_status("creator", *fns)
