"""
Usage notification triggers.

Decides when enough usage has accumulated to tell the user about it.
"""

import time
from typing import Callable, Optional

from usage_tracker.config.loader import NotificationConfig, TriggerMode


class NotificationTrigger:
    """Counters since the last notification, checked against a policy.

    The counters are messages, cost and elapsed time since the last reset.
    Only the policy's trigger mode decides whether to fire, but a reset
    always clears all three.
    """

    def __init__(
        self,
        config: NotificationConfig,
        clock: Callable[[], float] = time.monotonic
    ):
        """Initialize the trigger.

        Args:
            config: Notification policy
            clock: Seconds source used for the time trigger
        """
        self.config = config
        self._clock = clock
        self.messages_since_reset = 0
        self.cost_since_reset = 0.0
        self._last_reset = clock()

    @property
    def seconds_since_reset(self) -> float:
        return self._clock() - self._last_reset

    def record(self, cost: Optional[float]) -> None:
        """Count one ingested message; unknown cost adds nothing."""
        self.messages_since_reset += 1
        if cost is not None:
            self.cost_since_reset += cost

    def should_fire(self) -> bool:
        """Check whether the active threshold has been reached."""
        if not self.config.enabled:
            return False

        trigger = self.config.trigger
        if trigger is TriggerMode.MESSAGES:
            return self.messages_since_reset >= self.config.messages_interval
        if trigger is TriggerMode.COST:
            return self.cost_since_reset >= self.config.cost_threshold
        if trigger is TriggerMode.TIME:
            return self.seconds_since_reset >= self.config.time_interval_minutes * 60
        return False

    def reset(self) -> None:
        """Start counting from zero again."""
        self.messages_since_reset = 0
        self.cost_since_reset = 0.0
        self._last_reset = self._clock()
