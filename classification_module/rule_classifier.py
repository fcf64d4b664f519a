"""
Классификация звонков по правилам, без обращения к LLM.

Правила проверяются сверху вниз, срабатывает первое подходящее. Порядок
значим: подтверждённая запись стоит выше сброса, потому что клиенты часто
кладут трубку сразу после записи.
"""

import logging

from .categories import (
    BookingCompleted,
    Hangup,
    NeedsExternalJudgment,
    Spam,
    Transferred,
    Unknown,
)
from .features import (
    ASSISTANT_ENDED,
    ASSISTANT_FORWARDED,
    CUSTOMER_ENDED,
    extract_features,
    is_success_flag,
    message_text,
    parse_success_evaluation,
)

logger = logging.getLogger(__name__)

SHORT_ABANDONED_SECONDS = 5
UNKNOWN_DESTINATION = 'unknown-destination'

CONFIRMATION_PHRASES = (
    'appointment is confirmed for',
    'consultation is confirmed for',
    'your appointment is confirmed',
    'your consultation is confirmed',
)
BOOKED_OUTCOME_TERMS = ('booked', 'scheduled')
ASSISTANT_ROLES = ('assistant', 'bot')


def _assistant_text(call):
    messages = call.get('messages')
    if not isinstance(messages, list):
        return ''
    return ' '.join(
        message_text(msg) for msg in messages
        if isinstance(msg, dict) and msg.get('role') in ASSISTANT_ROLES
    )


def has_confirmation_phrase(call):
    """Фраза подтверждения записи в транскрипте или репликах ассистента"""
    transcript = call.get('transcript') if isinstance(call.get('transcript'), str) else ''
    text = f'{transcript} {_assistant_text(call)}'.lower()
    return any(phrase in text for phrase in CONFIRMATION_PHRASES)


def has_booking_success_evaluation(call):
    """
    Оценка успеха говорит о записи.

    Итог с упоминанием перевода не считается: успешный перевод тоже
    помечается как успех.
    """
    evaluation = parse_success_evaluation(call)
    outcome = str(evaluation.get('final_outcome') or '').lower()
    if 'transferred' in outcome:
        return False
    if any(term in outcome for term in BOOKED_OUTCOME_TERMS):
        return True
    return is_success_flag(evaluation.get('call_success'))


def resolve_destination(call, features):
    """Куда ушёл перевод: данные платформы, затем подсказка инструмента"""
    destination = call.get('destination')
    if isinstance(destination, dict):
        for key in ('description', 'number'):
            value = destination.get(key)
            if value is not None and str(value).strip():
                return str(value).strip()
    if features.transfer_destination_hint:
        return features.transfer_destination_hint
    return UNKNOWN_DESTINATION


# (имя, условие, исход); условие и исход получают (call, features)
RULES = [
    (
        'short-abandoned',
        lambda call, f: f.duration_seconds < SHORT_ABANDONED_SECONDS,
        lambda call, f: Spam('short-abandoned'),
    ),
    (
        'forwarded',
        lambda call, f: f.ended_reason == ASSISTANT_FORWARDED,
        lambda call, f: Transferred(resolve_destination(call, f)),
    ),
    (
        'appointment-booked',
        lambda call, f: f.appointment_booked,
        lambda call, f: BookingCompleted(),
    ),
    (
        'booking-confirmed',
        lambda call, f: has_booking_success_evaluation(call) or has_confirmation_phrase(call),
        lambda call, f: BookingCompleted(),
    ),
    (
        'hung-up-during-transfer',
        lambda call, f: f.transfer_attempted,
        lambda call, f: Hangup(None, f'hung-up-during-transfer-to-{f.transfer_destination_hint}'),
    ),
    (
        'customer-hung-up',
        lambda call, f: f.ended_reason == CUSTOMER_ENDED,
        lambda call, f: Hangup(None, 'customer-hung-up'),
    ),
    (
        'assistant-ended',
        lambda call, f: f.ended_reason == ASSISTANT_ENDED,
        lambda call, f: NeedsExternalJudgment('assistant-ended-call'),
    ),
]


def classify_call(call, features=None):
    """
    Классифицирует звонок по правилам.

    Возвращает вариант классификации или NeedsExternalJudgment, если правила
    не могут решить без модели.
    """
    if features is None:
        features = extract_features(call)
    if not isinstance(call, dict):
        call = {}

    for name, predicate, outcome in RULES:
        if predicate(call, features):
            result = outcome(call, features)
            logger.debug('Звонок %s: сработало правило %s', call.get('id'), name)
            return result

    return NeedsExternalJudgment(f'no-rule-matched:{features.ended_reason}')


def classify_or_unknown(call, features=None):
    """classify_call без внешней оценки: NeedsExternalJudgment → Unknown"""
    outcome = classify_call(call, features)
    if isinstance(outcome, NeedsExternalJudgment):
        logger.debug('Звонок %s требует внешней оценки (%s)', (call or {}).get('id'), outcome.reason)
        return Unknown()
    return outcome
