import re

import pytest

from tgroute import (
    Bot,
    Composer,
    InvalidArgument,
    acl,
    admin,
    chat_type,
    group_chat,
    private_chat,
)

from .telegram_fakes import (
    BASE_MESSAGE,
    GROUP_CHAT,
    FakeBotApi,
    command_update,
    make_bot,
    message_update,
)


def record(hits: list):
    async def handler(ctx, call_next):
        hits.append(ctx)

    return handler


async def dispatch(bot: Bot, *updates) -> None:
    for update in updates:
        await bot.handle_update(update)


@pytest.mark.anyio
@pytest.mark.parametrize(
    ("update_type", "payload"),
    [
        ("message", BASE_MESSAGE),
        ("edited_message", BASE_MESSAGE),
        ("callback_query", {"message": BASE_MESSAGE}),
        ("inline_query", {}),
        ("channel_post", {}),
        ("edited_channel_post", {}),
        ("chosen_inline_result", {}),
        ("poll", {}),
        ("poll_answer", {}),
        ("my_chat_member", {}),
        ("chat_member", {}),
        ("chat_join_request", {}),
    ],
)
async def test_on_routes_primary_types(update_type: str, payload: dict) -> None:
    hits: list = []
    bot = make_bot()
    bot.on(update_type, record(hits))

    await bot.handle_update({"update_id": 1, update_type: payload})

    assert len(hits) == 1


@pytest.mark.anyio
async def test_on_matches_any_of_several_types() -> None:
    hits: list = []
    bot = make_bot()
    bot.on(["chosen_inline_result", "message"], record(hits))

    await dispatch(bot, {"inline_query": {}}, message_update(text="x"))

    assert [ctx.update_type for ctx in hits] == ["message"]


@pytest.mark.anyio
async def test_on_routes_subtypes() -> None:
    hits: list = []
    bot = make_bot()
    bot.on("text", record(hits))

    await dispatch(bot, message_update(voice={}), message_update(text="hello"))

    assert [ctx.message.get("text") for ctx in hits] == ["hello"]


@pytest.mark.anyio
async def test_on_accepts_legacy_subtype_names() -> None:
    hits: list = []
    bot = make_bot()
    bot.on("voice_chat_started", record(hits))

    await dispatch(bot, message_update(video_chat_started={}))

    assert len(hits) == 1


@pytest.mark.anyio
async def test_on_forward() -> None:
    hits: list = []
    bot = make_bot()
    bot.on("forward", record(hits))

    await dispatch(bot, message_update(forward_date=1460829948, text="x"))

    assert "forward" in hits[0].update_sub_types


@pytest.mark.anyio
async def test_hears_literal_and_caption() -> None:
    hits: list = []
    bot = make_bot()
    bot.hears("hello world", record(hits))

    await dispatch(
        bot,
        message_update(text="hello world"),
        message_update(caption="hello world", photo=[]),
        message_update(text="hello"),
    )

    assert len(hits) == 2


@pytest.mark.anyio
async def test_hears_regex_sets_match() -> None:
    hits: list = []
    bot = make_bot()
    bot.hears(re.compile(r"hello (.+)"), record(hits))

    await dispatch(bot, message_update(text="Ola!"), message_update(text="hello world"))

    assert len(hits) == 1
    assert hits[0].match[1] == "world"


@pytest.mark.anyio
async def test_hears_function_trigger() -> None:
    hits: list = []
    bot = make_bot()
    bot.hears(lambda text, ctx: text.startswith("Hi"), record(hits))

    await dispatch(bot, message_update(text="Hi there!"), message_update(photo=[]))

    assert len(hits) == 1


def test_hears_rejects_missing_trigger() -> None:
    bot = make_bot()

    with pytest.raises(InvalidArgument):
        bot.hears(["foo", None], record([]))


@pytest.mark.anyio
async def test_command_only_matches_at_start_of_text() -> None:
    hits: list = []
    bot = make_bot()
    bot.command("start", record(hits))
    mid_text = message_update(
        text="hi /start",
        entities=[{"type": "bot_command", "offset": 3, "length": 6}],
    )

    await dispatch(bot, mid_text, command_update("/start"))

    assert len(hits) == 1
    assert hits[0].message["text"] == "/start"


@pytest.mark.anyio
async def test_command_with_username_in_group() -> None:
    hits: list = []
    bot = make_bot(username="bot")
    bot.command("start", record(hits))

    await dispatch(
        bot,
        command_update("/start@otherbot", chat=GROUP_CHAT),
        command_update("/start@bot", chat=GROUP_CHAT),
        command_update("/start@bot", chat={"id": 3, "type": "supergroup"}),
    )

    assert len(hits) == 2


@pytest.mark.anyio
async def test_command_learns_username_from_bot_info() -> None:
    hits: list = []
    bot = make_bot(FakeBotApi())
    bot.command(["help", "/about"], record(hits))

    await dispatch(
        bot,
        command_update("/about@bot", chat=GROUP_CHAT),
        command_update("/help"),
    )

    assert len(hits) == 2


@pytest.mark.anyio
async def test_start_exposes_payload() -> None:
    hits: list = []
    bot = make_bot()
    bot.start(record(hits))

    await dispatch(bot, command_update("/start deep-link"), command_update("/start"))

    assert [ctx.start_payload for ctx in hits] == ["deep-link", ""]


@pytest.mark.anyio
@pytest.mark.parametrize("name", ["help", "settings"])
async def test_help_and_settings_commands(name: str) -> None:
    hits: list = []
    bot = make_bot()
    getattr(bot, name)(record(hits))

    await dispatch(bot, command_update(f"/{name}"))

    assert len(hits) == 1


@pytest.mark.anyio
async def test_action_with_regex() -> None:
    hits: list = []
    bot = make_bot()
    bot.action(re.compile(r"foo (\d+)"), record(hits))

    await dispatch(bot, {"callback_query": {"data": "foo 42"}})

    assert hits[0].match[1] == "42"


@pytest.mark.anyio
async def test_inline_query_literal() -> None:
    hits: list = []
    bot = make_bot()
    bot.inline_query("foo", record(hits))

    await dispatch(
        bot, {"inline_query": {"query": "bar"}}, {"inline_query": {"query": "foo"}}
    )

    assert len(hits) == 1


@pytest.mark.anyio
async def test_game_query() -> None:
    hits: list = []
    bot = make_bot()
    bot.game_query(record(hits))

    await dispatch(
        bot,
        {"callback_query": {"data": "x"}},
        {"callback_query": {"game_short_name": "foo"}},
    )

    assert len(hits) == 1


@pytest.mark.anyio
async def test_unmatched_action_falls_through() -> None:
    hits: list = []
    fallback: list = []
    bot = make_bot()
    bot.action("bar", record(hits))
    bot.use(record(fallback))

    await dispatch(bot, {"callback_query": {"data": "foo"}})

    assert hits == []
    assert len(fallback) == 1


HASHTAG = message_update(
    text="#foo", entities=[{"type": "hashtag", "offset": 0, "length": 4}]
)
MENTION = message_update(
    text="bar @foo", entities=[{"type": "mention", "offset": 4, "length": 4}]
)


@pytest.mark.anyio
@pytest.mark.parametrize(
    "predicate",
    [
        "hashtag",
        ["bot_command", "hashtag"],
        lambda entity, value, ctx: entity["type"] == "hashtag" and value == "#foo",
    ],
)
async def test_entity_predicates(predicate) -> None:
    hits: list = []
    bot = make_bot()
    bot.entity(predicate, record(hits))

    await dispatch(bot, HASHTAG)

    assert len(hits) == 1


@pytest.mark.anyio
async def test_entity_does_not_match_other_types() -> None:
    hits: list = []
    fallback: list = []
    bot = make_bot()
    bot.entity("bot_command", record(hits))
    bot.use(record(fallback))

    await dispatch(bot, HASHTAG)

    assert hits == []
    assert len(fallback) == 1


@pytest.mark.anyio
@pytest.mark.parametrize(
    ("register", "expected"),
    [
        (lambda bot, handler: bot.mention(handler), 1),
        (lambda bot, handler: bot.mention("foo", handler), 1),
        (lambda bot, handler: bot.mention(["@baz", "foo"], handler), 1),
        (lambda bot, handler: bot.mention("baz", handler), 0),
    ],
)
async def test_mention_with_and_without_pattern(register, expected: int) -> None:
    hits: list = []
    bot = make_bot()
    register(bot, record(hits))

    await dispatch(bot, MENTION)

    assert len(hits) == expected


@pytest.mark.anyio
@pytest.mark.parametrize("pattern", ["foo", "#foo", ["news", "foo"]])
async def test_hashtag_patterns(pattern) -> None:
    hits: list = []
    bot = make_bot()
    bot.hashtag(pattern, record(hits))

    await dispatch(
        bot,
        message_update(text="bar #foo", entities=[{"type": "hashtag", "offset": 4, "length": 4}]),
    )

    assert len(hits) == 1
    assert hits[0].match == "#foo"


@pytest.mark.anyio
async def test_url_entity_in_caption() -> None:
    hits: list = []
    bot = make_bot()
    bot.url(re.compile(r"example\.com"), record(hits))
    update = message_update(
        photo=[],
        caption="see https://example.com",
        caption_entities=[{"type": "url", "offset": 4, "length": 19}],
    )

    await dispatch(bot, update)

    assert hits[0].match.group(0) == "example.com"


@pytest.mark.anyio
async def test_composer_instance_as_middleware_shares_state() -> None:
    hits: list = []
    bot = make_bot()
    router = Composer()
    router.on("text", record(hits))

    async def set_state(ctx, call_next):
        ctx.state["foo"] = "bar"
        await call_next()

    bot.use(set_state, router)

    await dispatch(bot, message_update(text="hello"))

    assert hits[0].state == {"foo": "bar"}


@pytest.mark.anyio
async def test_composer_instance_as_handler() -> None:
    hits: list = []
    bot = make_bot()
    router = Composer().on("text", record(hits))
    bot.on("text", router)

    await dispatch(bot, message_update(text="hello"))

    assert len(hits) == 1


def test_registration_methods_chain() -> None:
    bot = make_bot()
    handler = record([])

    assert bot.use(handler).on("text", handler).hears("x", handler) is bot
    assert bot.command("x", handler).action("x", handler).start(handler) is bot


@pytest.mark.anyio
@pytest.mark.parametrize(("allowed", "expected"), [(42, 1), ([7, 8], 0)])
async def test_acl_by_user_id(allowed, expected: int) -> None:
    hits: list = []
    bot = make_bot()
    bot.use(acl(allowed, record(hits)))

    await dispatch(bot, message_update(text="hi"))

    assert len(hits) == expected


@pytest.mark.anyio
async def test_chat_type_matchers() -> None:
    private: list = []
    groups: list = []
    bot = make_bot()
    bot.use(group_chat(record(groups)), private_chat(record(private)))

    await dispatch(
        bot,
        message_update(text="a"),
        message_update(text="b", chat=GROUP_CHAT),
        message_update(text="c", chat={"id": 3, "type": "channel"}),
    )

    assert [ctx.text for ctx in private] == ["a"]
    assert [ctx.text for ctx in groups] == ["b"]


@pytest.mark.anyio
@pytest.mark.parametrize(("status", "expected"), [("administrator", 1), ("member", 0)])
async def test_admin_checks_chat_member_status(status: str, expected: int) -> None:
    hits: list = []
    api = FakeBotApi(results={"getChatMember": {"status": status}})
    bot = make_bot(api)
    bot.use(admin(record(hits)))

    await dispatch(bot, message_update(text="hi", chat=GROUP_CHAT))

    assert len(hits) == expected
    assert api.calls == [("getChatMember", {"chat_id": 2, "user_id": 42})]


@pytest.mark.anyio
async def test_router_mounted_with_on_sees_later_registrations() -> None:
    hits: list = []
    bot = make_bot()
    router = Composer()
    bot.on("text", router)

    router.use(record(hits))
    await dispatch(bot, message_update(text="hello"))

    assert len(hits) == 1


@pytest.mark.anyio
@pytest.mark.parametrize(
    ("method", "entity_type", "text", "pattern"),
    [
        ("email", "email", "me@example.com", "me@example.com"),
        ("phone", "phone_number", "+15550100", "+15550100"),
        ("url", "url", "https://example.com", "https://example.com"),
        ("text_link", "text_link", "docs", "docs"),
        ("text_mention", "text_mention", "Alice", "Alice"),
        ("cashtag", "cashtag", "$USD", "USD"),
        ("spoiler", "spoiler", "secret", "secret"),
    ],
)
async def test_entity_wrappers_match_their_entity_type(
    method: str, entity_type: str, text: str, pattern: str
) -> None:
    any_hits: list = []
    pattern_hits: list = []
    entities = [{"type": entity_type, "offset": 0, "length": len(text)}]
    bold = [{"type": "bold", "offset": 0, "length": len(text)}]
    any_bot = make_bot()
    getattr(any_bot, method)(record(any_hits))
    pattern_bot = make_bot()
    getattr(pattern_bot, method)(pattern, record(pattern_hits))

    for bot in (any_bot, pattern_bot):
        await dispatch(
            bot,
            message_update(1, text=text, entities=entities),
            message_update(2, text=text, entities=bold),
        )

    assert [ctx.update_id for ctx in any_hits] == [1]
    assert [ctx.update_id for ctx in pattern_hits] == [1]
    assert pattern_hits[0].match == text


@pytest.mark.anyio
async def test_type_sets_are_accepted_like_lists() -> None:
    hits: list = []
    commands: list = []
    bot = make_bot()
    bot.command({"ping"}, record(commands))
    bot.on({"text"}, chat_type({"private"}, record(hits)))

    await dispatch(bot, message_update(text="hello"), command_update("/ping"))

    assert [ctx.text for ctx in commands] == ["/ping"]
    assert [ctx.text for ctx in hits] == ["hello"]
