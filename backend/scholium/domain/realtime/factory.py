"""Build the configured change notifier."""

from __future__ import annotations

import logging

from scholium.domain.realtime.change_feed import ChangeFeedNotifier
from scholium.domain.realtime.notifier import ChangeNotifier, InMemoryNotifier
from scholium.domain.realtime.redis_bus import RedisNotifier
from scholium.settings import Settings

logger = logging.getLogger(__name__)


def build_notifier(config: Settings) -> ChangeNotifier:
	transport = config.realtime_transport
	if transport == "redis":
		notifier: ChangeNotifier = RedisNotifier(prefix=config.realtime_redis_channel_prefix)
	elif transport == "postgres":
		notifier = ChangeFeedNotifier(channel=config.realtime_pg_channel)
	else:
		notifier = InMemoryNotifier()
	logger.info("realtime.notifier_selected", extra={"transport": notifier.transport})
	return notifier
