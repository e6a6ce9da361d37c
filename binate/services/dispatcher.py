"""Notification dispatcher.

Sends a composed message through the best available channel:

1. The caller's channel hint, if that channel is available.
2. Otherwise chat, when the user has it enabled, connected and healthy.
3. Otherwise email.

A failure on the first channel triggers exactly one fallback attempt on the
next candidate. No channel is tried twice within one dispatch, and nothing
is retried within the same cycle.
"""

import asyncio
import logging

from binate.core.circuit_breaker import CircuitBreakerRegistry
from binate.core.exceptions import DispatchError, NoChannelAvailableError
from binate.models.entities import ActiveUser
from binate.models.notification import ChannelType, DispatchResult, OutboundMessage
from binate.models.preferences import UserPreferences
from binate.services.collaborators import ChatChannel, EmailChannel

logger = logging.getLogger(__name__)

DEFAULT_SEND_TIMEOUT_SECONDS = 30.0


class NotificationDispatcher:
    """Chooses a channel and delivers one message with a single fallback."""

    def __init__(
        self,
        chat: ChatChannel | None = None,
        email: EmailChannel | None = None,
        breakers: CircuitBreakerRegistry | None = None,
        send_timeout: float = DEFAULT_SEND_TIMEOUT_SECONDS,
    ) -> None:
        self._chat = chat
        self._email = email
        self._breakers = breakers or CircuitBreakerRegistry()
        self._send_timeout = send_timeout

    async def dispatch(
        self,
        user: ActiveUser,
        message: OutboundMessage,
        channel_hint: ChannelType | None = None,
        *,
        preferences: UserPreferences | None = None,
        chat_channel_id: str | None = None,
    ) -> DispatchResult:
        """Deliver ``message`` to ``user``.

        Args:
            user: Recipient.
            message: Message with chat text and email HTML bodies.
            channel_hint: Preferred channel, honored when available.
            preferences: The user's parsed preferences (chat opt-out).
            chat_channel_id: Chat channel to post into, if routed.

        Returns:
            DispatchResult; never raises for channel failures.
        """
        prefs = preferences or UserPreferences()
        candidates = await self._select_channels(user, prefs, channel_hint)

        if not candidates:
            error = NoChannelAvailableError(user.id)
            logger.warning(
                "No delivery channel for %s notification",
                message.notification_type.value,
                extra={"user_id": user.id},
            )
            return DispatchResult(success=False, error=error.message, error_code=error.code)

        attempted: list[ChannelType] = []
        last_error: DispatchError | None = None

        # At most one fallback.
        for channel in candidates[:2]:
            attempted.append(channel)
            try:
                await self._send(channel, user, message, chat_channel_id)
            except DispatchError as e:
                last_error = e
                logger.warning(
                    "Dispatch via %s failed: %s",
                    channel.value,
                    e.message,
                    extra={"user_id": user.id, "channel": channel.value},
                )
                continue

            logger.info(
                "Dispatched %s notification via %s",
                message.notification_type.value,
                channel.value,
                extra={"user_id": user.id, "channel": channel.value},
            )
            return DispatchResult(success=True, channel_used=channel, attempted=attempted)

        assert last_error is not None
        return DispatchResult(
            success=False,
            attempted=attempted,
            error=last_error.message,
            error_code=last_error.code,
        )

    async def _select_channels(
        self,
        user: ActiveUser,
        prefs: UserPreferences,
        channel_hint: ChannelType | None,
    ) -> list[ChannelType]:
        available: list[ChannelType] = []
        if await self._chat_available(user, prefs):
            available.append(ChannelType.CHAT)
        if await self._email_available(user):
            available.append(ChannelType.EMAIL)

        if channel_hint in available:
            available.remove(channel_hint)
            available.insert(0, channel_hint)
        return available

    async def _chat_available(self, user: ActiveUser, prefs: UserPreferences) -> bool:
        if self._chat is None or not prefs.slack_enabled:
            return False
        if not self._breakers.get(self._chat_breaker_key(user.id)).is_healthy:
            logger.debug("Chat channel unhealthy, skipping", extra={"user_id": user.id})
            return False
        try:
            return bool(
                await asyncio.wait_for(self._chat.is_connected(user.id), self._send_timeout)
            )
        except Exception:
            logger.warning(
                "Chat connectivity check failed", exc_info=True, extra={"user_id": user.id}
            )
            return False

    async def _email_available(self, user: ActiveUser) -> bool:
        if self._email is None:
            return False
        try:
            return bool(
                await asyncio.wait_for(self._email.is_available(user.id), self._send_timeout)
            )
        except Exception:
            logger.warning(
                "Email availability check failed", exc_info=True, extra={"user_id": user.id}
            )
            return False

    async def _send(
        self,
        channel: ChannelType,
        user: ActiveUser,
        message: OutboundMessage,
        chat_channel_id: str | None,
    ) -> None:
        """Send on one channel, raising DispatchError on any failure."""
        if channel == ChannelType.CHAT:
            assert self._chat is not None
            breaker = self._breakers.get(self._chat_breaker_key(user.id))
            try:
                result = await asyncio.wait_for(
                    self._chat.send(user.id, message.text, chat_channel_id),
                    self._send_timeout,
                )
            except Exception as e:
                breaker.record_failure()
                raise DispatchError(channel.value, f"Chat send raised: {e}") from e
            if not result.success:
                breaker.record_failure()
                raise DispatchError(channel.value, result.error or "Chat send failed")
            breaker.record_success()
            return

        assert self._email is not None
        try:
            sent = await asyncio.wait_for(
                self._email.send(user.id, message.subject, message.html),
                self._send_timeout,
            )
        except Exception as e:
            raise DispatchError(channel.value, f"Email send raised: {e}") from e
        if not sent:
            raise DispatchError(channel.value, "Email send returned false")

    @staticmethod
    def _chat_breaker_key(user_id: str) -> str:
        return f"chat:{user_id}"
