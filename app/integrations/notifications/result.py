"""Outcome of a single notification channel delivery attempt."""

from dataclasses import dataclass


@dataclass(frozen=True)
class ChannelResult:
    """Result of dispatching one notification on one channel."""

    channel: str
    success: bool
    message_id: str | None = None
    error: str | None = None
    skipped: bool = False

    @classmethod
    def sent(cls, channel: str, message_id: str | None = None) -> "ChannelResult":
        return cls(channel=channel, success=True, message_id=message_id)

    @classmethod
    def skip(cls, channel: str, reason: str) -> "ChannelResult":
        # Unconfigured channels are not failures; the message is simply not sent
        return cls(channel=channel, success=True, error=reason, skipped=True)

    @classmethod
    def failure(cls, channel: str, error: str) -> "ChannelResult":
        return cls(channel=channel, success=False, error=error)
