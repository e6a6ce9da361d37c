"""Priority and urgency heuristics.

Pure functions: every time-dependent check takes ``now`` explicitly.
Email scores only order processing; they never filter anything out.
"""

from collections.abc import Iterable, Sequence
from datetime import datetime, timedelta

from binate.models.entities import Email, Lead, Meeting, Priority, Task
from binate.models.preferences import DEFAULT_IMPORTANT_KEYWORDS

LEAD_TERMS = ("project", "inquiry", "service", "quote", "proposal")
PAYMENT_TERMS = ("invoice", "payment", "bill", "receipt")

RECENCY_BASE = 50.0
RECENCY_DECAY_PER_HOUR = 10.0
IMPORTANT_CONTACT_BONUS = 40
IMPORTANT_KEYWORD_BONUS = 30
LEAD_TERM_BONUS = 25
PAYMENT_TERM_BONUS = 20

URGENT_TASK_MINUTES = 30
IMMINENT_MEETING_MINUTES = 15
HIGH_VALUE_LEAD_THRESHOLD = 10_000
NEW_LEAD_WINDOW = timedelta(hours=2)


def minutes_until(target: datetime, now: datetime) -> float:
    """Signed minutes from ``now`` to ``target`` (negative if in the past)."""
    return (target - now).total_seconds() / 60


def _contains_any(text: str, terms: Iterable[str]) -> bool:
    return any(term.lower() in text for term in terms)


def score_email(
    email: Email,
    now: datetime,
    important_contacts: Sequence[str] = (),
    important_keywords: Sequence[str] | None = None,
) -> float:
    """Score an email for processing order.

    Args:
        email: The email to score.
        now: Reference time for the recency component.
        important_contacts: Case-insensitive substrings matched against the sender.
        important_keywords: Subject keywords; defaults to DEFAULT_IMPORTANT_KEYWORDS.

    Returns:
        Non-negative score; higher means process sooner.
    """
    keywords = DEFAULT_IMPORTANT_KEYWORDS if important_keywords is None else important_keywords

    age_hours = (now - email.received_at).total_seconds() / 3600
    score = max(0.0, RECENCY_BASE - age_hours * RECENCY_DECAY_PER_HOUR)

    sender = email.sender.lower()
    if any(contact and contact.lower() in sender for contact in important_contacts):
        score += IMPORTANT_CONTACT_BONUS

    if email.subject and _contains_any(email.subject.lower(), keywords):
        score += IMPORTANT_KEYWORD_BONUS

    # Content bonuses need both a subject and a body to look at.
    if email.subject and email.body:
        combined = f"{email.subject} {email.body}".lower()
        if _contains_any(combined, LEAD_TERMS):
            score += LEAD_TERM_BONUS
        if _contains_any(combined, PAYMENT_TERMS):
            score += PAYMENT_TERM_BONUS

    return score


def prioritize_emails(
    emails: Sequence[Email],
    now: datetime,
    important_contacts: Sequence[str] = (),
    important_keywords: Sequence[str] | None = None,
) -> list[Email]:
    """Return emails sorted by descending score, stable on ties."""
    scored = [
        (score_email(email, now, important_contacts, important_keywords), email)
        for email in emails
    ]
    scored.sort(key=lambda pair: pair[0], reverse=True)
    return [email for _, email in scored]


def is_task_urgent(task: Task, now: datetime) -> bool:
    """Urgent if due within the next 30 minutes or marked high priority.

    Tasks without a due date are never urgent.
    """
    if task.due_date is None:
        return False
    remaining = minutes_until(task.due_date, now)
    if 0 <= remaining <= URGENT_TASK_MINUTES:
        return True
    return task.priority == Priority.HIGH


def is_task_urgent_by_time(task: Task, now: datetime) -> bool:
    if task.due_date is None:
        return False
    return 0 <= minutes_until(task.due_date, now) <= URGENT_TASK_MINUTES


def is_meeting_imminent(meeting: Meeting, now: datetime) -> bool:
    """Imminent if it starts within 15 minutes; started meetings never are."""
    remaining = minutes_until(meeting.start_time, now)
    return 0 <= remaining <= IMMINENT_MEETING_MINUTES


def is_high_priority_lead(lead: Lead, now: datetime) -> bool:
    """High priority or high value, and created within the trailing 2 hours.

    A lead without a creation time is treated as just created.
    """
    important = lead.priority == Priority.HIGH or (
        lead.value is not None and lead.value > HIGH_VALUE_LEAD_THRESHOLD
    )
    if not important:
        return False
    created_at = lead.created_at or now
    return now - created_at <= NEW_LEAD_WINDOW
