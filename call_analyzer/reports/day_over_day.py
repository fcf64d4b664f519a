# call_analyzer/reports/day_over_day.py
"""
Сводный отчёт «день к дню» по звонкам клиента.

Все таблицы отчёта — pandas DataFrame, дальше их выгружает excel_export.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import pandas as pd

from call_analyzer.utils import load_raw_calls_by_date, parse_date, percent, round_half_up
from classification_module.enrichment_store import load_all_enrichments

from .heatmap import build_heatmap, find_peak_slots
from .metrics import format_duration, process_calls, resolve_timezone
from .roi import build_roi_table
from .scorecard import build_scorecard
from .windows import (
    calls_in_range,
    compare_periods,
    day_of_week_baseline,
    iso_weeks,
    window_day,
    window_iso_week,
    window_rolling_days,
    window_rolling_months,
)

logger = logging.getLogger(__name__)

DEFAULT_ROLLING_DAYS = (7, 30)
DEFAULT_ROLLING_MONTHS = (1, 3)
COMPARISON_DAYS = (7, 30)
LONGEST_NOT_ROUTED_LIMIT = 10
SUMMARY_MAX_CHARS = 300


@dataclass
class DayOverDayReport:
    client_name: str
    target_date: Optional[str]
    generated_at: str
    tables: Dict[str, pd.DataFrame] = field(default_factory=dict)
    processed_calls: List = field(default_factory=list)


def clean_summary_text(summary):
    """Убирает служебные префиксы summary и обрезает по границе слова"""
    if not summary:
        return 'No summary'
    cleaned = re.sub(r'\s+', ' ', summary).strip()
    cleaned = re.sub(r"^\*{0,2}here'?s a summary[^:]*:\*{0,2}\s*", '', cleaned, flags=re.IGNORECASE)
    cleaned = re.sub(r'^\*{0,2}summary of (?:the )?interaction:?\*{0,2}\s*', '', cleaned, flags=re.IGNORECASE)
    cleaned = re.sub(r'^\*{0,2}summary:?\*{0,2}\s*', '', cleaned, flags=re.IGNORECASE)
    cleaned = re.sub(r'^\*{1,2}\s*', '', cleaned)
    if len(cleaned) <= SUMMARY_MAX_CHARS:
        return cleaned or 'No summary'
    truncated = re.sub(r'\s+\S*$', '', cleaned[:SUMMARY_MAX_CHARS])
    return (truncated or cleaned[:SUMMARY_MAX_CHARS]) + '...'


def _daily_table(daily_calls):
    rows = []
    for day in sorted(daily_calls):
        window = window_day(daily_calls, day)
        baseline = day_of_week_baseline(daily_calls, day)
        row = {'date': day.isoformat(), 'day': day.strftime('%a')}
        row.update(window.aggregate.to_row())
        if baseline:
            row['calls_vs_dow_avg'] = window.aggregate.total_calls - baseline['avg_total_calls']
            row['routing_vs_dow_avg'] = window.aggregate.routing_rate - baseline['aggregate'].routing_rate
        else:
            row['calls_vs_dow_avg'] = None
            row['routing_vs_dow_avg'] = None
        rows.append(row)
    return pd.DataFrame(rows)


def _weekly_table(daily_calls):
    rows = []
    previous = None
    for window in iso_weeks(daily_calls):
        agg = window.aggregate
        row = {'week': window.label, 'days': window.days_with_data}
        row.update(agg.to_row())
        if previous is not None:
            prev_total = previous.total_calls
            row['calls_change_pct'] = (
                round_half_up((agg.total_calls - prev_total) / prev_total * 100) if prev_total else 0
            )
            row['routing_rate_change'] = agg.routing_rate - previous.routing_rate
        else:
            row['calls_change_pct'] = None
            row['routing_rate_change'] = None
        rows.append(row)
        previous = agg
    return pd.DataFrame(rows)


def _comparison_table(daily_calls, target):
    rows = []
    for days in COMPARISON_DAYS:
        current, prior, changes = compare_periods(daily_calls, target, days)
        rows.append({
            'period': f'last {days} vs prior {days} days',
            'current_start': current.start.isoformat(),
            'current_end': current.end.isoformat(),
            'current_calls': current.aggregate.total_calls,
            'prior_calls': prior.aggregate.total_calls,
            'calls_change': changes['total_calls'],
            'calls_change_pct': changes['total_calls_pct'],
            'current_routing_rate': current.aggregate.routing_rate,
            'prior_routing_rate': prior.aggregate.routing_rate,
            'routing_rate_change': changes['routing_rate'],
            'transfer_failure_rate_change': changes['transfer_failure_rate'],
            'spam_rate_change': changes['spam_rate'],
        })
    return pd.DataFrame(rows)


def _transfer_reasons_table(aggregate, client_config):
    reason_notes = (client_config.client.get('transferReasons') or {}) if client_config else {}
    rows = []
    for reason, count in aggregate.transfer_reasons.items():
        note = reason_notes.get(reason)
        rows.append({
            'reason': reason.replace('-', ' ').replace('_', ' ').title(),
            'count': count,
            'share_pct': percent(count, aggregate.routed),
            'note': str(note).split('. ')[0] if note else '-',
        })
    return pd.DataFrame(rows, columns=['reason', 'count', 'share_pct', 'note'])


def _longest_not_routed_table(processed_calls):
    not_routed = sorted(
        (c for c in processed_calls if c.not_routed),
        key=lambda c: c.duration,
        reverse=True,
    )[:LONGEST_NOT_ROUTED_LIMIT]
    return pd.DataFrame(
        [
            {
                'call_id': c.call_id,
                'created_at': c.created_at,
                'duration': format_duration(c.duration),
                'ended_reason': c.ended_reason,
                'category': c.category,
                'summary': clean_summary_text(c.summary),
            }
            for c in not_routed
        ],
        columns=['call_id', 'created_at', 'duration', 'ended_reason', 'category', 'summary'],
    )


def build_day_over_day_report(client_config, target_date=None, rolling_days=DEFAULT_ROLLING_DAYS,
                              rolling_months=DEFAULT_ROLLING_MONTHS, daily_raw=None, enrichment_map=None):
    """
    Собирает все таблицы отчёта.

    daily_raw (date → звонки) и enrichment_map подставляются в тестах, по
    умолчанию читаются из папок клиента. Если target_date не задан или за
    него нет данных, берётся последний день с данными.
    """
    paths = client_config.paths
    if daily_raw is None:
        daily_raw = load_raw_calls_by_date(paths['raw_dir'])
    if enrichment_map is None:
        enrichment_map = load_all_enrichments(paths['enriched_dir'])

    daily_calls = {
        parse_date(day): process_calls(calls, enrichment_map, client_config)
        for day, calls in daily_raw.items()
    }
    report = DayOverDayReport(
        client_name=client_config.display_name,
        target_date=None,
        generated_at=datetime.now(timezone.utc).isoformat(timespec='seconds'),
    )
    if not daily_calls:
        logger.warning('Нет сырых звонков для отчёта клиента %s', client_config.name)
        return report

    target = parse_date(target_date) if target_date else None
    if target is None or target not in daily_calls:
        if target is not None:
            logger.warning('Нет данных за %s, отчёт строится по последнему дню', target)
        target = max(daily_calls)
    report.target_date = target.isoformat()
    logger.info('Отчёт %s за %s: дней с данными %d', client_config.name, target, len(daily_calls))

    latest = window_day(daily_calls, target)
    rolling = [window_rolling_days(daily_calls, target, n) for n in rolling_days]
    rolling += [window_rolling_months(daily_calls, target, n) for n in rolling_months]
    baseline = day_of_week_baseline(daily_calls, target)

    baseline_rows = []
    if baseline:
        row = {'weekday': baseline['weekday'], 'days': ', '.join(baseline['days']),
               'avg_total_calls': baseline['avg_total_calls']}
        row.update({k: v for k, v in baseline['aggregate'].to_row().items() if k.endswith('_rate')})
        baseline_rows.append(row)

    # ROI, нагрузка и оценки KPI считаются по ISO-неделе отчётного дня
    week = window_iso_week(daily_calls, target)
    previous_week = window_iso_week(daily_calls, week.start - timedelta(days=7))
    report_config = client_config.report or {}
    heatmap = build_heatmap(
        calls_in_range(daily_calls, week.start, week.end),
        resolve_timezone(client_config.timezone),
    )

    buckets = latest.aggregate.not_routed_buckets
    report.tables = {
        'daily': _daily_table(daily_calls),
        'weekly': _weekly_table(daily_calls),
        'rolling': pd.DataFrame([w.to_row() for w in rolling]),
        'comparisons': _comparison_table(daily_calls, target),
        'dow_baseline': pd.DataFrame(baseline_rows),
        'transfer_reasons': _transfer_reasons_table(latest.aggregate, client_config),
        'not_routed_buckets': pd.DataFrame({'bucket': list(buckets), 'calls': list(buckets.values())}),
        'longest_not_routed': _longest_not_routed_table(daily_calls[target]),
        'scorecard': build_scorecard(
            week.aggregate,
            previous_week.aggregate if previous_week.days_with_data else None,
            report_config.get('targets'),
        ),
        'roi': build_roi_table(week.aggregate, report_config.get('pricing')),
        'heatmap': heatmap,
        'peak_slots': find_peak_slots(heatmap),
    }
    report.processed_calls = [c for day in sorted(daily_calls) for c in daily_calls[day]]
    return report
