from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from . import combinators, matchers
from .pipeline import Handler, MiddlewareFn, compose

__all__ = ["Composer"]


class Composer:
    """Ordered middleware registry.

    Every registration method appends to the chain and returns ``self`` so
    calls can be chained.  A composer is itself middleware: register it on
    another composer (or a :class:`~tgroute.bot.Bot`) to mount it as a unit::

        router = Composer()
        router.command("help", send_help).hears(re.compile(r"hi (.+)"), greet)
        bot.use(router)
    """

    def __init__(self, *fns: Handler) -> None:
        self.handler: MiddlewareFn = compose(fns)

    def middleware(self) -> MiddlewareFn:
        return self.handler

    def use(self, *fns: Handler) -> Composer:
        self.handler = compose([self.handler, *fns])
        return self

    def on(self, update_types: str | Iterable[str], *fns: Handler) -> Composer:
        return self.use(matchers.mount(update_types, *fns))

    def hears(self, triggers: Any, *fns: Handler) -> Composer:
        return self.use(matchers.hears(triggers, *fns))

    def command(self, commands: str | Iterable[str], *fns: Handler) -> Composer:
        return self.use(matchers.command(commands, *fns))

    def action(self, triggers: Any, *fns: Handler) -> Composer:
        return self.use(matchers.action(triggers, *fns))

    def inline_query(self, triggers: Any, *fns: Handler) -> Composer:
        return self.use(matchers.inline_query(triggers, *fns))

    def game_query(self, *fns: Handler) -> Composer:
        return self.use(matchers.game_query(*fns))

    def drop(self, predicate: Any) -> Composer:
        return self.use(combinators.drop(predicate))

    def filter(self, predicate: Any) -> Composer:
        return self.use(combinators.filter(predicate))

    def entity(self, predicate: Any, *fns: Handler) -> Composer:
        return self.use(matchers.entity(predicate, *fns))

    def email(self, triggers: Any, *fns: Handler) -> Composer:
        return self.use(matchers.email(triggers, *fns))

    def phone(self, triggers: Any, *fns: Handler) -> Composer:
        return self.use(matchers.phone(triggers, *fns))

    def url(self, triggers: Any, *fns: Handler) -> Composer:
        return self.use(matchers.url(triggers, *fns))

    def text_link(self, triggers: Any, *fns: Handler) -> Composer:
        return self.use(matchers.text_link(triggers, *fns))

    def text_mention(self, triggers: Any, *fns: Handler) -> Composer:
        return self.use(matchers.text_mention(triggers, *fns))

    def mention(self, triggers: Any, *fns: Handler) -> Composer:
        return self.use(matchers.mention(triggers, *fns))

    def hashtag(self, triggers: Any, *fns: Handler) -> Composer:
        return self.use(matchers.hashtag(triggers, *fns))

    def cashtag(self, triggers: Any, *fns: Handler) -> Composer:
        return self.use(matchers.cashtag(triggers, *fns))

    def spoiler(self, triggers: Any, *fns: Handler) -> Composer:
        return self.use(matchers.spoiler(triggers, *fns))

    def start(self, *fns: Handler) -> Composer:
        return self.use(matchers.start(*fns))

    def help(self, *fns: Handler) -> Composer:
        return self.command("help", *fns)

    def settings(self, *fns: Handler) -> Composer:
        return self.command("settings", *fns)
