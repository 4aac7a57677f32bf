"""Process-wide registry and fan-out used by the HTTP layer."""

from modules.realtime.fanout import NotificationFanOut
from modules.realtime.registry import ChannelRegistry

channel_registry = ChannelRegistry()
notification_fanout = NotificationFanOut(channel_registry)
