from datetime import date
from zoneinfo import ZoneInfo

import pytest

from call_analyzer.reports.metrics import (
    ProcessedCall,
    aggregate,
    format_duration,
    is_after_hours,
    process_calls,
    resolve_timezone,
)
from call_analyzer.reports.windows import (
    compare_periods,
    day_of_week_baseline,
    iso_weeks,
    window_range,
    window_rolling_days,
    window_rolling_months,
)
from classification_module.exceptions import ConfigurationError

NEW_YORK = ZoneInfo('America/New_York')
HOURS = {'start': 8, 'end': 17, 'days': [1, 2, 3, 4, 5], 'schedule': {'6': {'start': 9, 'end': 13}}}


@pytest.fixture
def funnel_calls(make_call, make_enrichment):
    calls = [
        make_call('routed', ended_reason='assistant-forwarded-call', transfer_to='sales', duration=120),
        make_call('dropped', transfer_to='billing', duration=40),
        make_call('silent', duration=6, messages=[]),
        make_call('long', duration=200),
    ]
    enrichment = {
        'routed': make_enrichment('transferred', transferReason='New-Project'),
        'dropped': make_enrichment('hangup', note='hung-up-during-transfer-to-billing'),
        'silent': make_enrichment('spam', spamType='short-abandoned'),
        'long': make_enrichment('booking-abandoned'),
    }
    return process_calls(calls, enrichment)


def test_funnel_counts(funnel_calls):
    agg = aggregate(funnel_calls)
    assert agg.total_calls == agg.accounted_for == 4
    assert (agg.routed, agg.hangup_before_route, agg.spam_likely, agg.not_routed) == (1, 1, 1, 1)
    assert agg.routing_rate == 25
    assert agg.transfer_attempted == 2
    assert agg.transfer_attempt_rate == 50
    assert agg.transfer_failure_rate == 50
    assert agg.intent_identified == 2
    assert agg.eligible_leads == 1
    assert agg.bookings_completed == 0

    row = agg.to_row()
    assert row['intent_rate'] == 50
    assert row['after_hours_rate'] == 0
    assert agg.transfer_reasons == {'new-project': 1}
    assert agg.routed_stats['median'] == 120
    assert agg.not_routed_buckets['120s+'] == 1


def test_processed_call_fields(funnel_calls):
    dropped = funnel_calls[1]
    assert dropped.transfer_intent == 'billing'
    assert dropped.note == 'hung-up-during-transfer-to-billing'
    assert dropped.after_hours is False
    assert funnel_calls[3].booking_status == 'booking-attempt'


def test_call_without_enrichment_is_classified_by_rules(make_call):
    processed = process_calls([make_call('c1')], {})
    assert processed[0].category == 'hangup'
    assert processed[0].note == 'customer-hung-up'


def test_fresh_short_call_counts_as_spam_before_enrichment(make_call):
    fresh = make_call('fresh', duration=4, messages=[{'role': 'user', 'message': 'hello?'}])
    processed = process_calls([fresh], {})[0]
    assert processed.category == 'spam'
    assert processed.spam_type == 'short-abandoned'
    assert processed.routing_status == 'spam'


def test_unenriched_call_gets_override_fallback(make_call):
    # assistant-ended не решается правилами, дальше срабатывает Override B
    processed = process_calls([make_call('odd', duration=40, ended_reason='assistant-ended-call')], {})[0]
    assert processed.category == 'unknown'

    booked = make_call('booked', duration=40, ended_reason='assistant-ended-call', analysis={
        'artifact': {'structuredOutputs': {'Appointment Booked': {'result': True}}},
    })
    assert process_calls([booked], {})[0].category == 'booking-completed'


def test_stored_classification_wins_over_rules(make_call, make_enrichment):
    processed = process_calls([make_call('c1', duration=4)], {'c1': make_enrichment('hangup', hangupType='moderate')})
    assert processed[0].category == 'hangup'
    assert processed[0].hangup_type == 'moderate'


def test_empty_set_has_zero_rates():
    agg = aggregate([])
    assert agg.routing_rate == agg.transfer_failure_rate == agg.spam_rate == 0


def test_partition_mismatch_is_logged(funnel_calls, caplog):
    broken = funnel_calls[0]
    broken.routing_status = 'lost'
    aggregate([broken], 'day')
    assert 'Routing categories (0) != Total Calls (1). 1 calls uncategorized. [day]' in caplog.text


@pytest.mark.parametrize('created_at, expected', [
    ('2025-01-06T15:00:00Z', False),   # понедельник 10:00
    ('2025-01-06T12:00:00Z', True),    # понедельник 07:00
    ('2025-01-06T22:00:00Z', True),    # понедельник 17:00
    ('2025-01-11T15:00:00Z', False),   # суббота 10:00, своё расписание
    ('2025-01-11T19:00:00Z', True),    # суббота 14:00
    ('2025-01-12T15:00:00Z', True),    # воскресенье
    ('2025-01-06T10:00:00', True),     # без зоны считается UTC
    (None, False),
])
def test_after_hours(created_at, expected):
    assert is_after_hours(created_at, HOURS, NEW_YORK) is expected


def test_unknown_timezone_is_configuration_error():
    with pytest.raises(ConfigurationError):
        resolve_timezone('Mars/Olympus_Mons')


def test_format_duration():
    assert format_duration(0) == '0:00'
    assert format_duration(125.4) == '2:05'
    assert format_duration(59.6) == '1:00'


def _daily(make_call, spec):
    """{date: [(id, ended_reason), ...]} → {date: [ProcessedCall, ...]}"""
    return {
        day: process_calls(
            [make_call(call_id, created_at=f'{day.isoformat()}T15:00:00Z', ended_reason=reason)
             for call_id, reason in calls],
            {},
        )
        for day, calls in spec.items()
    }


def test_window_rates_come_from_pooled_counts(make_call):
    daily = _daily(make_call, {
        date(2025, 1, 6): [('a', 'assistant-forwarded-call')],
        date(2025, 1, 7): [('b', 'customer-ended-call'), ('c', 'customer-ended-call'), ('d', 'customer-ended-call')],
    })
    window = window_range(daily, '2025-01-06', '2025-01-07')
    assert window.aggregate.total_calls == 4
    # (100 + 0) / 2 было бы 50
    assert window.aggregate.routing_rate == 25
    assert window.days_with_data == 2


def test_rolling_windows(make_call):
    daily = _daily(make_call, {
        date(2025, 2, 28): [('a', 'customer-ended-call')],
        date(2025, 3, 1): [('b', 'customer-ended-call')],
        date(2025, 3, 25): [('c', 'customer-ended-call')],
        date(2025, 3, 31): [('d', 'assistant-forwarded-call')],
    })
    week = window_rolling_days(daily, '2025-03-31', 7)
    assert (week.start, week.label, week.aggregate.total_calls) == (date(2025, 3, 25), 'last-7-days', 2)

    month = window_rolling_months(daily, '2025-03-31', 1)
    assert month.start == date(2025, 3, 1)
    assert month.aggregate.total_calls == 3


def test_iso_weeks_group_monday_to_sunday(make_call):
    daily = _daily(make_call, {
        date(2024, 12, 30): [('a', 'customer-ended-call')],
        date(2025, 1, 5): [('b', 'customer-ended-call')],
        date(2025, 1, 6): [('c', 'customer-ended-call')],
    })
    weeks = iso_weeks(daily)
    assert [(w.label, w.aggregate.total_calls) for w in weeks] == [('2025-W01', 2), ('2025-W02', 1)]


def test_compare_periods(make_call):
    daily = _daily(make_call, {
        date(2025, 1, 1): [('a', 'customer-ended-call'), ('b', 'customer-ended-call')],
        date(2025, 1, 9): [('c', 'assistant-forwarded-call'), ('d', 'customer-ended-call'),
                           ('e', 'customer-ended-call')],
    })
    current, prior, changes = compare_periods(daily, '2025-01-10', 7)
    assert (current.start, prior.start, prior.end) == (date(2025, 1, 4), date(2024, 12, 28), date(2025, 1, 3))
    assert changes['total_calls'] == 1
    assert changes['total_calls_pct'] == 50
    assert changes['routing_rate'] == 33


def test_day_of_week_baseline_uses_last_four_prior_weeks(make_call):
    spec = {}
    for n, day in enumerate([date(2024, 12, 2), date(2024, 12, 9), date(2024, 12, 16),
                             date(2024, 12, 23), date(2024, 12, 30)], 1):
        spec[day] = [(f'{day}-{i}', 'customer-ended-call') for i in range(n)]
    spec[date(2024, 12, 31)] = [('tue', 'assistant-forwarded-call')]
    spec[date(2025, 1, 6)] = [('today', 'customer-ended-call')]
    daily = _daily(make_call, spec)

    baseline = day_of_week_baseline(daily, date(2025, 1, 6))
    assert baseline['days'] == ['2024-12-09', '2024-12-16', '2024-12-23', '2024-12-30']
    assert baseline['aggregate'].total_calls == 14
    assert baseline['avg_total_calls'] == 4
    assert baseline['weekday'] == 'Mon'

    assert day_of_week_baseline(daily, date(2025, 1, 8)) is None


def test_processed_call_is_plain_record():
    call = ProcessedCall(
        call_id='x', created_at=None, ended_reason=None, category='hangup', hangup_type='moderate',
        transfer_reason=None, spam_type=None, note=None, email=None, duration=0, transfer_intent=None,
        routing_status='not-routed', transfer_attempted=False, intent_identified=False,
        after_hours=False, summary='No summary',
    )
    assert call.not_routed and not call.routed
