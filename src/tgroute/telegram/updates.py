"""Classification of raw Bot API updates.

An update carries exactly one payload field (``message``, ``callback_query``,
...).  :func:`classify` picks that field from :data:`UPDATE_TYPES`, whose order
is the tie-break when a malformed update carries several, and derives subtype
tags for message-shaped payloads.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, NamedTuple

__all__ = [
    "Classification",
    "FORWARD_FIELDS",
    "MESSAGE_SUBTYPES",
    "MESSAGE_TYPES",
    "SUBTYPE_ALIASES",
    "UPDATE_TYPES",
    "Update",
    "classify",
    "entity_text",
    "get_entities",
    "get_text",
    "primary_payload",
    "remap_subtypes",
]

Update = Mapping[str, Any]

UPDATE_TYPES: tuple[str, ...] = (
    "message",
    "edited_message",
    "channel_post",
    "edited_channel_post",
    "inline_query",
    "chosen_inline_result",
    "callback_query",
    "shipping_query",
    "pre_checkout_query",
    "poll",
    "poll_answer",
    "my_chat_member",
    "chat_member",
    "chat_join_request",
)

MESSAGE_TYPES: frozenset[str] = frozenset(
    {"message", "edited_message", "channel_post", "edited_channel_post"}
)

MESSAGE_SUBTYPES: frozenset[str] = frozenset(
    {
        "animation",
        "audio",
        "caption",
        "channel_chat_created",
        "chat_shared",
        "connected_website",
        "contact",
        "delete_chat_photo",
        "dice",
        "document",
        "forum_topic_closed",
        "forum_topic_created",
        "forum_topic_reopened",
        "game",
        "group_chat_created",
        "invoice",
        "left_chat_member",
        "location",
        "message_auto_delete_timer_changed",
        "migrate_from_chat_id",
        "migrate_to_chat_id",
        "new_chat_members",
        "new_chat_photo",
        "new_chat_title",
        "passport_data",
        "photo",
        "pinned_message",
        "poll",
        "sticker",
        "successful_payment",
        "supergroup_chat_created",
        "text",
        "users_shared",
        "venue",
        "video",
        "video_chat_ended",
        "video_chat_participants_invited",
        "video_chat_scheduled",
        "video_chat_started",
        "video_note",
        "voice",
        "voice_chat_ended",
        "voice_chat_participants_invited",
        "voice_chat_scheduled",
        "voice_chat_started",
        "web_app_data",
        "write_access_allowed",
    }
)

SUBTYPE_ALIASES: Mapping[str, str] = {
    "caption": "text",
    "forward_date": "forward",
    "voice_chat_started": "video_chat_started",
    "voice_chat_ended": "video_chat_ended",
    "voice_chat_participants_invited": "video_chat_participants_invited",
    "voice_chat_scheduled": "video_chat_scheduled",
}

FORWARD_FIELDS: tuple[str, ...] = (
    "forward_origin",
    "forward_from",
    "forward_from_chat",
    "forward_from_message_id",
    "forward_sender_name",
    "forward_signature",
    "forward_date",
    "is_automatic_forward",
)

_TEXT_FIELDS = ("caption", "text", "data", "query", "game_short_name")


class Classification(NamedTuple):
    update_type: str | None
    sub_types: tuple[str, ...]


def _primary_type(update: Update) -> str | None:
    for update_type in UPDATE_TYPES:
        if update_type in update:
            return update_type
    return None


def _message_sub_types(payload: Mapping[str, Any]) -> tuple[str, ...]:
    tags: dict[str, None] = {}
    for key, value in payload.items():
        if key in FORWARD_FIELDS:
            if value is not None:
                tags.setdefault("forward")
        elif key in MESSAGE_SUBTYPES:
            tags.setdefault(SUBTYPE_ALIASES.get(key, key))
    return tuple(tags)


def classify(update: Update) -> Classification:
    update_type = _primary_type(update)
    if update_type not in MESSAGE_TYPES:
        return Classification(update_type, ())
    payload = update[update_type]
    if not isinstance(payload, Mapping):
        return Classification(update_type, ())
    return Classification(update_type, _message_sub_types(payload))


def remap_subtypes(types: Sequence[str]) -> list[str]:
    return [SUBTYPE_ALIASES.get(item, item) for item in types]


def primary_payload(update: Update) -> Mapping[str, Any] | None:
    update_type = _primary_type(update)
    if update_type is None:
        return None
    payload = update[update_type]
    return payload if isinstance(payload, Mapping) else None


def get_text(payload: Mapping[str, Any] | None) -> str | None:
    if payload is None:
        return None
    for key in _TEXT_FIELDS:
        if key in payload:
            return payload[key]
    return None


def get_entities(payload: Mapping[str, Any] | None) -> list[Mapping[str, Any]]:
    if payload is None:
        return []
    if "caption_entities" in payload:
        return list(payload["caption_entities"] or ())
    if "entities" in payload:
        return list(payload["entities"] or ())
    return []


def entity_text(text: str, offset: int, length: int | None = None) -> str:
    # entity offsets and lengths count UTF-16 code units
    encoded = text.encode("utf-16-le")
    end = None if length is None else (offset + length) * 2
    return encoded[offset * 2 : end].decode("utf-16-le", errors="replace")
