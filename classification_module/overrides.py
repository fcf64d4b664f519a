"""
Детерминированные поправки поверх ответа модели.

A: флаг записи из структурированных данных главнее модели.
B: неизвестная категория восстанавливается по причине завершения и длительности.
"""

import logging

from .categories import (
    BOOKING_COMPLETED,
    HANGUP_LOW_VALUE,
    HANGUP_MODERATE,
    UNKNOWN,
    BookingCompleted,
    Hangup,
    Spam,
    Transferred,
    Unknown,
)
from .features import ASSISTANT_FORWARDED, CUSTOMER_ENDED, SILENCE_TIMED_OUT

logger = logging.getLogger(__name__)

SHORT_CALL_SECONDS = 10
LOW_VALUE_SECONDS = 30

_HANGUP_REASONS = (CUSTOMER_ENDED, SILENCE_TIMED_OUT)

# Таблица для неизвестной категории: (условие, исход), первое совпадение
UNKNOWN_FALLBACK_RULES = [
    (
        lambda f: f.ended_reason == ASSISTANT_FORWARDED,
        lambda f: Transferred('other'),
    ),
    (
        lambda f: f.ended_reason in _HANGUP_REASONS and f.duration_seconds < SHORT_CALL_SECONDS,
        lambda f: Spam('short-call'),
    ),
    (
        lambda f: f.ended_reason in _HANGUP_REASONS,
        lambda f: Hangup(HANGUP_LOW_VALUE if f.duration_seconds < LOW_VALUE_SECONDS else HANGUP_MODERATE),
    ),
]


def apply_booking_override(classification, features):
    if features.appointment_booked and classification.category != BOOKING_COMPLETED:
        logger.info(
            'Override A: %s → booking-completed (appointmentBooked=true)',
            classification.category,
        )
        return BookingCompleted()
    return classification


def apply_unknown_fallback(classification, features):
    if classification.category != UNKNOWN:
        return classification
    for predicate, outcome in UNKNOWN_FALLBACK_RULES:
        if predicate(features):
            result = outcome(features)
            logger.info(
                'Override B: unknown → %s (endedReason=%s, duration=%.0fs)',
                result.category, features.ended_reason, features.duration_seconds,
            )
            return result
    return Unknown()


def apply_overrides(classification, features):
    """A, затем B. bookingStatus выводится из итоговой категории"""
    classification = apply_booking_override(classification, features)
    return apply_unknown_fallback(classification, features)
