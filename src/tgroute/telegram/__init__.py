from .client import BotApi, ResponseSink, TelegramError
from .loop import Poller, PollingCursor
from .updates import Classification, Update, classify

__all__ = [
    "BotApi",
    "Classification",
    "Poller",
    "PollingCursor",
    "ResponseSink",
    "TelegramError",
    "Update",
    "classify",
]
