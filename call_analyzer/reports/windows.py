# call_analyzer/reports/windows.py
"""
Окна агрегации: день, ISO-неделя, скользящие N дней и N месяцев, диапазон.

Каждое окно заново собирает звонки своих дней и прогоняет через aggregate(),
поэтому проценты окна всегда считаются из его собственных счётчиков, а не
усредняются по дневным значениям.
"""

from dataclasses import dataclass
from datetime import date, timedelta
from typing import List

import pandas as pd

from call_analyzer.utils import iso_week_bounds, iso_week_label, parse_date, round_half_up

from .metrics import MetricsAggregate, aggregate

DOW_BASELINE_OCCURRENCES = 4


@dataclass
class Window:
    label: str
    start: date
    end: date
    aggregate: MetricsAggregate
    days_with_data: int = 0

    def to_row(self):
        row = {
            'window': self.label,
            'start': self.start.isoformat(),
            'end': self.end.isoformat(),
            'days': self.days_with_data,
        }
        row.update(self.aggregate.to_row())
        return row


def calls_in_range(daily_calls, start, end):
    """Звонки всех дней диапазона [start, end]"""
    start, end = parse_date(start), parse_date(end)
    calls = []
    for day in sorted(daily_calls):
        if start <= day <= end:
            calls.extend(daily_calls[day])
    return calls


def _days_with_data(daily_calls, start, end):
    return sum(1 for day in daily_calls if start <= day <= end)


def window_range(daily_calls, start, end, label=None):
    start, end = parse_date(start), parse_date(end)
    label = label or f'{start.isoformat()}..{end.isoformat()}'
    return Window(
        label=label,
        start=start,
        end=end,
        aggregate=aggregate(calls_in_range(daily_calls, start, end), label),
        days_with_data=_days_with_data(daily_calls, start, end),
    )


def window_day(daily_calls, day):
    day = parse_date(day)
    return window_range(daily_calls, day, day, day.isoformat())


def window_iso_week(daily_calls, day):
    monday, sunday = iso_week_bounds(day)
    return window_range(daily_calls, monday, sunday, iso_week_label(monday))


def window_rolling_days(daily_calls, end, days):
    """Последние days дней, включая end"""
    end = parse_date(end)
    start = end - timedelta(days=days - 1)
    return window_range(daily_calls, start, end, f'last-{days}-days')


def window_rolling_months(daily_calls, end, months):
    """Последние months календарных месяцев, заканчивая днём end"""
    end = parse_date(end)
    start = (pd.Timestamp(end) - pd.DateOffset(months=months) + pd.Timedelta(days=1)).date()
    return window_range(daily_calls, start, end, f'last-{months}-months')


def iso_weeks(daily_calls) -> List[Window]:
    """Окна по всем ISO-неделям, в которых есть данные"""
    mondays = sorted({iso_week_bounds(day)[0] for day in daily_calls})
    return [window_iso_week(daily_calls, monday) for monday in mondays]


def compare_periods(daily_calls, end, days):
    """
    Последние days дней против предыдущих days дней.

    Возвращает (текущее окно, предыдущее окно, словарь изменений).
    """
    end = parse_date(end)
    current = window_rolling_days(daily_calls, end, days)
    prior_end = current.start - timedelta(days=1)
    prior = window_range(
        daily_calls, prior_end - timedelta(days=days - 1), prior_end, f'prior-{days}-days'
    )
    cur, prev = current.aggregate, prior.aggregate
    changes = {
        'total_calls': cur.total_calls - prev.total_calls,
        'total_calls_pct': (
            round_half_up((cur.total_calls - prev.total_calls) / prev.total_calls * 100)
            if prev.total_calls else 0
        ),
        'routing_rate': cur.routing_rate - prev.routing_rate,
        'transfer_attempt_rate': cur.transfer_attempt_rate - prev.transfer_attempt_rate,
        'transfer_failure_rate': cur.transfer_failure_rate - prev.transfer_failure_rate,
        'spam_rate': cur.spam_rate - prev.spam_rate,
    }
    return current, prior, changes


def day_of_week_baseline(daily_calls, day, occurrences=DOW_BASELINE_OCCURRENCES):
    """
    Базовая линия для дня недели: последние occurrences таких же дней недели
    с данными, раньше текущей ISO-недели. Проценты считаются по сумме
    звонков этих дней. None, если таких дней нет.
    """
    day = parse_date(day)
    week_start, _ = iso_week_bounds(day)
    same_weekday = sorted(
        d for d in daily_calls
        if d < week_start and d.isoweekday() == day.isoweekday()
    )[-occurrences:]
    if not same_weekday:
        return None

    calls = []
    for d in same_weekday:
        calls.extend(daily_calls[d])
    agg = aggregate(calls, f'dow-baseline-{day.strftime("%a")}')
    return {
        'weekday': day.strftime('%a'),
        'days': [d.isoformat() for d in same_weekday],
        'count': len(same_weekday),
        'avg_total_calls': round_half_up(agg.total_calls / len(same_weekday)),
        'aggregate': agg,
    }

