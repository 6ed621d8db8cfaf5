"""Activity domain exports."""

from .badges import BadgeAggregator
from .feed import FeedReader
from .poller import BadgePoller
from .preferences import PreferenceRegistry
from .push import PushRegistrationManager
from .session import ActivitySession, SessionRegistry

__all__ = [
	"ActivitySession",
	"BadgeAggregator",
	"BadgePoller",
	"FeedReader",
	"PreferenceRegistry",
	"PushRegistrationManager",
	"SessionRegistry",
]
