from .bot import Bot
from .combinators import (
    branch,
    catch,
    catch_all,
    dispatch,
    drop,
    filter,
    fork,
    lazy,
    log,
    optional,
    reply,
    tap,
)
from .composer import Composer
from .context import Context
from .errors import (
    HandlerTimeout,
    InvalidArgument,
    ProtocolViolation,
    TgRouteError,
    UpstreamFatal,
)
from .matchers import (
    acl,
    action,
    admin,
    cashtag,
    chat_type,
    command,
    creator,
    email,
    entity,
    game_query,
    group_chat,
    hashtag,
    hears,
    inline_query,
    match,
    member_status,
    mention,
    mount,
    phone,
    private_chat,
    spoiler,
    start,
    text_link,
    text_mention,
    url,
)
from .pipeline import MiddlewareProvider, compose, pass_thru, safe_pass_thru, unwrap
from .settings import BotSettings
from .telegram import BotApi, TelegramError

__version__ = "0.1.0"
