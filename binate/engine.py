"""Engine wiring.

Builds a ready-to-start AdaptiveScheduler from the external collaborators
and the engine settings.
"""

import logging
from datetime import timedelta

from binate.core.circuit_breaker import CircuitBreakerRegistry
from binate.core.config import Settings, get_settings
from binate.services.collaborators import (
    CalendarCollaborator,
    ChatChannel,
    EmailChannel,
    LeadCollaborator,
    MailCollaborator,
    TaskCollaborator,
    UserDirectory,
)
from binate.services.deduplicator import NotificationDeduplicator
from binate.services.digest_composer import DigestComposer
from binate.services.digest_gate import DigestTimeGate
from binate.services.dispatcher import NotificationDispatcher
from binate.services.notification_checks import NotificationChecker
from binate.services.scheduler import AdaptiveScheduler
from binate.services.task_runner import PerUserTaskRunner

logger = logging.getLogger(__name__)


def build_engine(
    directory: UserDirectory,
    mail: MailCollaborator | None,
    tasks: TaskCollaborator,
    calendar: CalendarCollaborator,
    leads: LeadCollaborator,
    chat: ChatChannel | None,
    email: EmailChannel | None,
    settings: Settings | None = None,
) -> AdaptiveScheduler:
    """Compose every engine service from settings.

    Args:
        directory: Source of active users.
        mail: Inbox processing; None disables the email capability.
        tasks: Task maintenance and reads.
        calendar: Meeting detection and reads.
        leads: Lead reads.
        chat: Chat delivery channel, if connected.
        email: Email delivery channel, if configured.
        settings: Engine settings; defaults to ``get_settings()``.

    Returns:
        A stopped AdaptiveScheduler.

    Raises:
        ConfigError: If the interval bounds are invalid.
    """
    settings = settings or get_settings()
    timeout = settings.PROVIDER_CALL_TIMEOUT_SECONDS

    deduplicator = NotificationDeduplicator(
        retention=timedelta(hours=settings.DEDUP_RETENTION_HOURS),
        max_entries=settings.DEDUP_MAX_ENTRIES,
    )
    dispatcher = NotificationDispatcher(
        chat=chat,
        email=email,
        breakers=CircuitBreakerRegistry(
            failure_threshold=settings.CHANNEL_FAILURE_THRESHOLD,
            recovery_timeout=settings.CHANNEL_RECOVERY_SECONDS,
        ),
        send_timeout=timeout,
    )
    checker = NotificationChecker(
        directory=directory,
        tasks=tasks,
        calendar=calendar,
        leads=leads,
        dispatcher=dispatcher,
        deduplicator=deduplicator,
        gate=DigestTimeGate(settings.digest_anchors, settings.DIGEST_WINDOW_MINUTES),
        composer=DigestComposer(settings.DIGEST_MAX_TASKS, settings.DIGEST_MAX_MEETINGS),
        digest_window=timedelta(minutes=settings.DIGEST_SUPPRESS_MINUTES),
        urgent_task_window=timedelta(minutes=settings.URGENT_TASK_SUPPRESS_MINUTES),
        imminent_meeting_window=timedelta(minutes=settings.IMMINENT_MEETING_SUPPRESS_MINUTES),
        call_timeout=timeout,
    )
    runner = PerUserTaskRunner(
        mail=mail,
        tasks=tasks,
        calendar=calendar,
        checker=checker,
        call_timeout=timeout,
    )

    logger.info(
        "Engine built: interval %.1f min (bounds %.1f-%.1f), concurrency %d",
        settings.ENGINE_DEFAULT_INTERVAL_MINUTES,
        settings.ENGINE_MIN_INTERVAL_MINUTES,
        settings.ENGINE_MAX_INTERVAL_MINUTES,
        settings.ENGINE_MAX_CONCURRENT_USERS,
    )
    return AdaptiveScheduler(
        directory=directory,
        runner=runner,
        checker=checker,
        deduplicator=deduplicator,
        settings=settings,
    )
