# call_analyzer/reports/metrics.py
"""
Метрики маршрутизации по набору звонков.

process_calls() превращает сырые звонки и их классификации в плоские
записи ProcessedCall, aggregate() сворачивает любой набор таких записей в
MetricsAggregate. Все проценты считаются из счётчиков самого набора.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import timezone
from typing import Dict, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from call_analyzer.utils import percent
from classification_module.categories import BOOKING_ATTEMPT, BOOKING_COMPLETED, UNKNOWN, booking_status_for
from classification_module.exceptions import ConfigurationError
from classification_module.features import extract_email, extract_features, parse_timestamp
from classification_module.overrides import apply_overrides
from classification_module.rule_classifier import classify_or_unknown

from .duration_stats import duration_buckets, duration_stats
from .routing_status import (
    HANGUP_BEFORE_ROUTE,
    NOT_ROUTED,
    ROUTED,
    ROUTING_STATUSES,
    SPAM,
    SPAM_LIKELY,
    resolve_routing_status,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = 'America/New_York'
DEFAULT_BUSINESS_HOURS = {'start': 8, 'end': 17, 'days': [1, 2, 3, 4, 5]}
UNSPECIFIED_REASON = 'unspecified'


@dataclass
class ProcessedCall:
    call_id: str
    created_at: Optional[str]
    ended_reason: Optional[str]
    category: str
    hangup_type: Optional[str]
    transfer_reason: Optional[str]
    spam_type: Optional[str]
    note: Optional[str]
    email: Optional[str]
    duration: float
    transfer_intent: Optional[str]
    routing_status: str
    transfer_attempted: bool
    intent_identified: bool
    after_hours: bool
    summary: str
    customer_number: Optional[str] = None
    customer_name: Optional[str] = None

    @property
    def routed(self):
        return self.routing_status == ROUTED

    @property
    def not_routed(self):
        return self.routing_status == NOT_ROUTED

    @property
    def booking_status(self):
        return booking_status_for(self.category)


def resolve_timezone(tz_name):
    try:
        return ZoneInfo(tz_name or DEFAULT_TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ConfigurationError(f'Неизвестный часовой пояс клиента: {tz_name}') from e


def is_after_hours(created_at, business_hours=None, tz=None):
    """
    Звонок вне рабочего времени клиента.

    business_hours: {start, end, days, schedule}; дни недели 0 = воскресенье.
    Расписание конкретного дня (schedule) главнее общих start/end и days.
    """
    moment = parse_timestamp(created_at)
    if moment is None:
        return False
    business_hours = business_hours or DEFAULT_BUSINESS_HOURS
    tz = tz or ZoneInfo(DEFAULT_TIMEZONE)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    local = moment.astimezone(tz)
    hour = local.hour
    day = local.isoweekday() % 7

    schedule = business_hours.get('schedule') or {}
    day_schedule = schedule.get(str(day)) or schedule.get(day)
    if isinstance(day_schedule, dict):
        start, end = day_schedule.get('start'), day_schedule.get('end')
        if isinstance(start, (int, float)) and isinstance(end, (int, float)):
            return hour < start or hour >= end

    days = business_hours.get('days')
    if days and day not in days:
        return True
    start = business_hours.get('start', DEFAULT_BUSINESS_HOURS['start'])
    end = business_hours.get('end', DEFAULT_BUSINESS_HOURS['end'])
    return hour < start or hour >= end


def _clean(value):
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def stored_or_rule_classification(call, enrichment, features):
    """
    Классификация из хранилища, а если её нет, то по правилам с поправками.

    Звонок, ещё не прошедший классификацию, получает ту же категорию, что
    дал бы прогон в режиме rules.
    """
    classification = (enrichment or {}).get('classification')
    if isinstance(classification, dict) and _clean(classification.get('category')):
        return classification
    logger.debug('Звонок %s не классифицирован, применяются правила', call.get('id'))
    return apply_overrides(classify_or_unknown(call, features), features).to_dict()


def process_call(call, enrichment, business_hours=None, tz=None):
    features = extract_features(call)
    classification = stored_or_rule_classification(call, enrichment, features)
    category = (_clean(classification.get('category')) or UNKNOWN).lower()
    transfer_reason = _clean(classification.get('transferReason'))
    transfer_intent = features.transfer_destination_hint
    customer = call.get('customer') if isinstance(call.get('customer'), dict) else {}

    return ProcessedCall(
        call_id=call.get('id'),
        created_at=call.get('createdAt'),
        ended_reason=call.get('endedReason'),
        category=category,
        hangup_type=_clean(classification.get('hangupType')),
        transfer_reason=transfer_reason,
        spam_type=_clean(classification.get('spamType')),
        note=_clean(classification.get('note')),
        email=extract_email(call),
        duration=features.duration_seconds,
        transfer_intent=transfer_intent,
        routing_status=resolve_routing_status(features, category, call.get('messages')),
        transfer_attempted=features.transfer_attempted,
        intent_identified=bool(transfer_intent or transfer_reason),
        after_hours=is_after_hours(call.get('createdAt'), business_hours, tz),
        summary=call.get('summary') or 'No summary',
        customer_number=_clean(customer.get('number')),
        customer_name=_clean(customer.get('name')),
    )


def process_calls(calls, enrichment_map, client_config=None):
    """Сырые звонки + хранилище классификаций → список ProcessedCall"""
    if client_config is not None:
        business_hours = client_config.business_hours
        tz = resolve_timezone(client_config.timezone)
    else:
        business_hours, tz = DEFAULT_BUSINESS_HOURS, resolve_timezone(DEFAULT_TIMEZONE)
    return [
        process_call(call, enrichment_map.get(str(call.get('id'))), business_hours, tz)
        for call in calls
    ]


@dataclass
class MetricsAggregate:
    total_calls: int = 0
    status_counts: Dict[str, int] = field(default_factory=lambda: {s: 0 for s in ROUTING_STATUSES})
    intent_identified: int = 0
    transfer_attempted: int = 0
    transfer_failed: int = 0
    after_hours_calls: int = 0
    eligible_leads: int = 0
    bookings_completed: int = 0
    total_minutes: float = 0.0
    routed_stats: Dict[str, float] = field(default_factory=lambda: duration_stats([]))
    not_routed_stats: Dict[str, float] = field(default_factory=lambda: duration_stats([]))
    not_routed_buckets: Dict[str, int] = field(default_factory=lambda: duration_buckets([]))
    transfer_reasons: Dict[str, int] = field(default_factory=dict)
    routed_durations: List[float] = field(default_factory=list)
    not_routed_durations: List[float] = field(default_factory=list)

    @property
    def routed(self):
        return self.status_counts[ROUTED]

    @property
    def not_routed(self):
        return self.status_counts[NOT_ROUTED]

    @property
    def hangup_before_route(self):
        return self.status_counts[HANGUP_BEFORE_ROUTE]

    @property
    def spam(self):
        return self.status_counts[SPAM]

    @property
    def spam_likely(self):
        return self.status_counts[SPAM_LIKELY]

    @property
    def accounted_for(self):
        return sum(self.status_counts.values())

    @property
    def routing_rate(self):
        return percent(self.routed, self.total_calls)

    @property
    def transfer_attempt_rate(self):
        return percent(self.transfer_attempted, self.total_calls)

    @property
    def transfer_failure_rate(self):
        return percent(self.transfer_failed, self.transfer_attempted)

    @property
    def spam_rate(self):
        return percent(self.spam, self.total_calls)

    @property
    def spam_likely_rate(self):
        return percent(self.spam_likely, self.total_calls)

    @property
    def intent_rate(self):
        return percent(self.intent_identified, self.total_calls)

    @property
    def after_hours_rate(self):
        return percent(self.after_hours_calls, self.total_calls)

    def to_row(self):
        """Плоская строка для таблиц отчёта"""
        return {
            'total_calls': self.total_calls,
            'routed': self.routed,
            'routing_rate': self.routing_rate,
            'not_routed': self.not_routed,
            'hangup_before_route': self.hangup_before_route,
            'spam': self.spam,
            'spam_rate': self.spam_rate,
            'spam_likely': self.spam_likely,
            'spam_likely_rate': self.spam_likely_rate,
            'intent_identified': self.intent_identified,
            'intent_rate': self.intent_rate,
            'transfer_attempted': self.transfer_attempted,
            'transfer_attempt_rate': self.transfer_attempt_rate,
            'transfer_failure_rate': self.transfer_failure_rate,
            'after_hours_calls': self.after_hours_calls,
            'after_hours_rate': self.after_hours_rate,
            'eligible_leads': self.eligible_leads,
            'bookings_completed': self.bookings_completed,
            'total_minutes': round(self.total_minutes, 1),
            'routed_avg': self.routed_stats['avg'],
            'routed_median': self.routed_stats['median'],
            'routed_p90': self.routed_stats['p90'],
            'not_routed_avg': self.not_routed_stats['avg'],
            'not_routed_median': self.not_routed_stats['median'],
            'not_routed_p90': self.not_routed_stats['p90'],
        }


def transfer_reason_key(call):
    raw = call.transfer_reason or call.transfer_intent or UNSPECIFIED_REASON
    return str(raw).strip().lower() or UNSPECIFIED_REASON


def aggregate(processed_calls, label=None):
    """
    Сворачивает звонки в MetricsAggregate.

    Сумма пяти статусов обязана совпасть с числом звонков; расхождение
    пишется в лог как предупреждение, звонки не отбрасываются.
    """
    agg = MetricsAggregate(total_calls=len(processed_calls))
    reasons = Counter()
    unaccounted = 0

    for call in processed_calls:
        if call.routing_status in agg.status_counts:
            agg.status_counts[call.routing_status] += 1
        else:
            unaccounted += 1
        if call.intent_identified:
            agg.intent_identified += 1
        if call.transfer_attempted:
            agg.transfer_attempted += 1
            if not call.routed:
                agg.transfer_failed += 1
        if call.after_hours:
            agg.after_hours_calls += 1
        if call.booking_status == BOOKING_ATTEMPT:
            agg.eligible_leads += 1
        if call.category == BOOKING_COMPLETED:
            agg.bookings_completed += 1
        agg.total_minutes += (call.duration or 0) / 60

        if call.routed:
            reasons[transfer_reason_key(call)] += 1
            if call.duration > 0:
                agg.routed_durations.append(call.duration)
        elif call.not_routed and call.duration > 0:
            agg.not_routed_durations.append(call.duration)

    if agg.accounted_for != agg.total_calls:
        logger.warning(
            'WARNING: Routing categories (%d) != Total Calls (%d). %d calls uncategorized.%s',
            agg.accounted_for, agg.total_calls, agg.total_calls - agg.accounted_for,
            f' [{label}]' if label else '',
        )
    if unaccounted:
        logger.warning('Звонков с неизвестным статусом маршрутизации: %d', unaccounted)

    agg.routed_stats = duration_stats(agg.routed_durations)
    agg.not_routed_stats = duration_stats(agg.not_routed_durations)
    agg.not_routed_buckets = duration_buckets(agg.not_routed_durations)
    agg.transfer_reasons = dict(reasons.most_common())
    return agg


def compute_metrics(calls, enrichment_map, client_config=None, label=None):
    processed = process_calls(calls, enrichment_map, client_config)
    return processed, aggregate(processed, label)


def format_duration(seconds):
    """Секунды → 'м:сс'"""
    seconds = seconds or 0
    minutes = int(seconds // 60)
    secs = int(seconds % 60 + 0.5)
    if secs == 60:
        minutes, secs = minutes + 1, 0
    return f'{minutes}:{secs:02d}'
