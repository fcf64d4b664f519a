from zoneinfo import ZoneInfo

import pytest

from call_analyzer.reports.heatmap import build_heatmap, find_peak_slots
from call_analyzer.reports.metrics import aggregate, process_calls
from call_analyzer.reports.roi import (
    build_roi_table,
    calculate_roi,
    compare_ai_vs_human,
    estimate_revenue,
)
from call_analyzer.reports.scorecard import build_scorecard, calculate_grade
from classification_module.exceptions import ConfigurationError


def test_ai_vs_human_with_default_rates():
    costs = compare_ai_vs_human(120, 10)
    assert costs['total_hours'] == 2.0
    assert costs['ai_total_cost'] == 94.8
    assert costs['ai_cost_per_call'] == 9.48
    assert costs['human_fully_loaded_rate'] == 58.5
    assert costs['human_total_cost'] == 117.0
    assert costs['difference'] == -22.2
    assert costs['percent_difference'] == -19
    assert costs['savings'] == 22.2
    assert costs['additional_cost'] == 0


def test_ai_vs_human_reads_pricing():
    costs = compare_ai_vs_human(60, 0, {'aiCostPerMinute': 2, 'humanHourlyRate': 50, 'humanBenefitsMultiplier': 1})
    assert costs['ai_total_cost'] == 120.0
    assert costs['human_total_cost'] == 50.0
    assert costs['additional_cost'] == 70.0
    assert costs['ai_cost_per_call'] == 0


def test_bad_pricing_value_falls_back_to_default(caplog):
    costs = compare_ai_vs_human(60, 1, {'aiCostPerMinute': 'cheap'})
    assert costs['ai_cost_per_minute'] == 0.79
    assert 'aiCostPerMinute' in caplog.text


@pytest.mark.parametrize('pricing', [
    {'averageProjectValue': 12000, 'consultationCloseRate': 0.25, 'bookingToVisitRate': 0.5},
    {'averageProjectValue': 12000, 'consultationCloseRate': 25, 'bookingToVisitRate': 50},
])
def test_revenue_estimate(pricing):
    estimate = estimate_revenue(8, pricing)
    assert (estimate['estimated_visits'], estimate['estimated_projects']) == (4, 1)
    assert estimate['estimated_revenue'] == 12000
    assert estimate['has_data']


def test_revenue_needs_close_rate():
    estimate = estimate_revenue(8, {'averageProjectValue': 12000})
    assert estimate['estimated_revenue'] is None
    assert not estimate['has_data']


def test_roi():
    assert calculate_roi(12000, 94.8) == {
        'revenue': 12000, 'cost': 94.8, 'profit': 11905.2, 'roi_pct': 12558, 'has_data': True,
    }
    assert calculate_roi(500, 0)['has_data'] is False
    assert calculate_roi(None, 10)['has_data'] is False


def test_roi_table_counts_completed_bookings(make_call, make_enrichment):
    calls = [make_call('b1', duration=600), make_call('b2', duration=600), make_call('h', duration=600)]
    enrichment = {
        'b1': make_enrichment('booking-completed'),
        'b2': make_enrichment('booking-completed'),
        'h': make_enrichment('hangup', hangupType='moderate'),
    }
    agg = aggregate(process_calls(calls, enrichment))
    table = build_roi_table(agg, {'averageProjectValue': 10000, 'consultationCloseRate': 0.5})
    values = dict(zip(table['metric'], table['value']))

    assert values['Bookings completed'] == 2
    assert values['Estimated revenue'] == 10000
    assert values['AI total cost'] == 23.7
    assert values['ROI %'] == 42094


def test_heatmap_slots_and_weekdays():
    class _Call:
        def __init__(self, created_at):
            self.created_at = created_at

    calls = [
        _Call('2025-01-06T13:29:59Z'),   # понедельник 08:29 по Нью-Йорку
        _Call('2025-01-06T13:30:00Z'),   # понедельник 08:30
        _Call('2025-01-12T04:59:00Z'),   # суббота 23:59
        _Call('2025-01-07T14:00:00'),    # без зоны считается UTC
        _Call(None),
        _Call('garbage'),
    ]
    heatmap = build_heatmap(calls, ZoneInfo('America/New_York')).set_index('time')

    assert heatmap.loc['08:00', 'Mon'] == 1
    assert heatmap.loc['08:30', 'Mon'] == 1
    assert heatmap.loc['23:30', 'Sat'] == 1
    assert heatmap.loc['09:00', 'Tue'] == 1
    assert heatmap['Total'].sum() == 4
    assert list(heatmap.index[:3]) == ['00:00', '00:30', '01:00']


def test_heatmap_rejects_uneven_slots():
    with pytest.raises(ConfigurationError):
        build_heatmap([], interval_minutes=45)


def test_peak_slots_ignore_empty_and_keep_time_order_on_ties():
    class _Call:
        def __init__(self, created_at):
            self.created_at = created_at

    calls = [_Call(ts) for ts in (
        '2025-01-06T15:00:00Z', '2025-01-07T15:10:00Z', '2025-01-07T15:20:00Z',
        '2025-01-06T14:00:00Z', '2025-01-08T20:00:00Z',
    )]
    peaks = find_peak_slots(build_heatmap(calls, ZoneInfo('America/New_York')), top_n=2)

    assert list(peaks['time']) == ['10:00', '09:00']
    assert peaks.iloc[0]['peak_day'] == 'Tue'
    assert peaks.iloc[0]['peak_day_calls'] == 2
    assert find_peak_slots(build_heatmap([])).empty


@pytest.mark.parametrize('actual, target, higher, grade', [
    (60, 60, True, 'A'),
    (55, 60, True, 'A-'),
    (48, 60, True, 'B'),
    (30, 60, True, 'D'),
    (15, 15, False, 'A'),
    (17, 15, False, 'B+'),
    (25, 15, False, 'C'),
    (0, 0, False, 'A'),
    (5, None, True, None),
])
def test_calculate_grade(actual, target, higher, grade):
    assert calculate_grade(actual, target, higher) == grade


def test_scorecard_skips_kpis_without_targets(make_call):
    current = aggregate(process_calls([make_call('r', ended_reason='assistant-forwarded-call')], {}))
    previous = aggregate(process_calls([make_call('n')], {}))
    scorecard = build_scorecard(current, previous, {'routingRate': 60, 'maxTransferFailureRate': 'low'})

    assert scorecard.to_dict('records') == [{
        'kpi': 'Routing rate', 'value': 100, 'target': 60, 'direction': 'min',
        'change': 100, 'grade': 'A', 'met': True,
    }]
