# call_analyzer/reports/heatmap.py
"""
Тепловая карта нагрузки: число звонков по получасовым слотам и дням недели
в часовом поясе клиента.
"""

import logging
from collections import Counter
from datetime import timezone

import pandas as pd

from classification_module.exceptions import ConfigurationError
from classification_module.features import parse_timestamp

from .metrics import DEFAULT_TIMEZONE, resolve_timezone

logger = logging.getLogger(__name__)

WEEKDAYS = ('Mon', 'Tue', 'Wed', 'Thu', 'Fri', 'Sat', 'Sun')
SLOT_MINUTES = 30
PEAK_SLOTS = 5
MINUTES_PER_DAY = 24 * 60


def slot_label(minutes):
    return f'{minutes // 60:02d}:{minutes % 60:02d}'


def build_heatmap(processed_calls, tz=None, interval_minutes=SLOT_MINUTES):
    """
    Строка на каждый слот от 00:00 до последнего слота суток, столбцы
    time, Mon..Sun, Total. Звонки без createdAt не учитываются.
    """
    if interval_minutes <= 0 or MINUTES_PER_DAY % interval_minutes:
        raise ConfigurationError(f'Слот должен делить сутки нацело: {interval_minutes} мин')
    tz = tz or resolve_timezone(DEFAULT_TIMEZONE)

    counts = Counter()
    skipped = 0
    for call in processed_calls:
        moment = parse_timestamp(call.created_at)
        if moment is None:
            skipped += 1
            continue
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        local = moment.astimezone(tz)
        slot = (local.hour * 60 + local.minute) // interval_minutes * interval_minutes
        counts[(slot, WEEKDAYS[local.weekday()])] += 1
    if skipped:
        logger.debug('В тепловую карту не попали %d звонков без createdAt', skipped)

    rows = []
    for slot in range(0, MINUTES_PER_DAY, interval_minutes):
        row = {'time': slot_label(slot)}
        row.update({day: counts[(slot, day)] for day in WEEKDAYS})
        row['Total'] = sum(row[day] for day in WEEKDAYS)
        rows.append(row)
    return pd.DataFrame(rows, columns=['time', *WEEKDAYS, 'Total'])


def find_peak_slots(heatmap, top_n=PEAK_SLOTS):
    """Самые загруженные слоты: по убыванию Total, при равенстве раньше по времени"""
    busy = heatmap[heatmap['Total'] > 0].sort_values('Total', ascending=False, kind='stable')
    rows = []
    for _, row in busy.head(top_n).iterrows():
        by_day = row[list(WEEKDAYS)].astype(int)
        peak_day = by_day.idxmax()
        rows.append({
            'time': row['time'],
            'total_calls': int(row['Total']),
            'peak_day': peak_day,
            'peak_day_calls': int(by_day[peak_day]),
        })
    return pd.DataFrame(rows, columns=['time', 'total_calls', 'peak_day', 'peak_day_calls'])
