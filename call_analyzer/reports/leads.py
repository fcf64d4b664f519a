# call_analyzer/reports/leads.py
"""
Лиды для ручного дозвона: брошенные записи, ценные сбросы и переводы
по новым проектам. Выгрузка в CSV через pandas.
"""

import csv
import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import List, Optional

import pandas as pd

from classification_module.categories import BOOKING_ABANDONED, HANGUP, HANGUP_HIGH_VALUE, TRANSFERRED
from classification_module.features import parse_timestamp

from .metrics import format_duration

logger = logging.getLogger(__name__)

PRIORITY_HIGH = 'HIGH'
PRIORITY_MEDIUM = 'MEDIUM'
PRIORITY_ORDER = {PRIORITY_HIGH: 0, PRIORITY_MEDIUM: 1}

NEW_PROJECT_REASON = 'new-project'

CSV_COLUMNS = [
    ('priority', 'Priority'),
    ('category', 'Category'),
    ('date', 'Date'),
    ('time', 'Time'),
    ('phone_number', 'Phone Number'),
    ('customer_name', 'Customer Name'),
    ('email', 'Email'),
    ('duration', 'Duration'),
    ('reason', 'Reason'),
    ('summary', 'Summary'),
    ('call_id', 'Call ID'),
]


@dataclass
class Lead:
    call_id: str
    date: str
    time: str
    phone_number: str
    customer_name: str
    email: str
    category: str
    subcategory: str
    duration: float
    summary: str
    priority: str
    reason: str


@dataclass
class LeadsReport:
    booking_abandoned: List[Lead] = field(default_factory=list)
    high_value_hangups: List[Lead] = field(default_factory=list)
    new_project_transfers: List[Lead] = field(default_factory=list)
    all: List[Lead] = field(default_factory=list)


def _date_and_time(created_at, tz=None):
    moment = parse_timestamp(created_at)
    if moment is None:
        return 'Unknown', 'Unknown'
    if tz is not None and moment.tzinfo is not None:
        moment = moment.astimezone(tz)
    return moment.strftime('%Y-%m-%d'), moment.strftime('%H:%M')


def _lead_rule(call) -> Optional[tuple]:
    """(список, приоритет, причина) или None, если звонок не лид"""
    if call.category == BOOKING_ABANDONED:
        return 'booking_abandoned', PRIORITY_HIGH, 'Customer started booking but did not complete'
    if call.category == HANGUP and call.hangup_type == HANGUP_HIGH_VALUE:
        return 'high_value_hangups', PRIORITY_MEDIUM, 'Customer showed strong intent but hung up'
    if call.category == TRANSFERRED and (call.transfer_reason or '').lower() == NEW_PROJECT_REASON:
        return 'new_project_transfers', PRIORITY_HIGH, 'New project inquiry transferred to team'
    return None


def extract_high_priority_leads(processed_calls, tz=None):
    """Лиды из обработанных звонков; report.all отсортирован: HIGH первыми"""
    report = LeadsReport()
    for call in processed_calls:
        rule = _lead_rule(call)
        if rule is None:
            continue
        bucket, priority, reason = rule
        day, time_of_day = _date_and_time(call.created_at, tz)
        lead = Lead(
            call_id=call.call_id,
            date=day,
            time=time_of_day,
            phone_number=call.customer_number or 'N/A',
            customer_name=call.customer_name or 'Unknown',
            email=call.email or 'N/A',
            category=call.category,
            subcategory=call.hangup_type or call.transfer_reason or call.spam_type or 'N/A',
            duration=call.duration or 0,
            summary=call.summary or 'No summary available',
            priority=priority,
            reason=reason,
        )
        getattr(report, bucket).append(lead)
        report.all.append(lead)

    report.all.sort(key=lambda lead: PRIORITY_ORDER[lead.priority])
    logger.info(
        'Лидов: %d (брошенные записи %d, ценные сбросы %d, новые проекты %d)',
        len(report.all), len(report.booking_abandoned),
        len(report.high_value_hangups), len(report.new_project_transfers),
    )
    return report


def leads_to_dataframe(leads):
    rows = []
    for lead in leads.all:
        row = asdict(lead)
        row['duration'] = format_duration(lead.duration)
        rows.append({title: row[key] for key, title in CSV_COLUMNS})
    return pd.DataFrame(rows, columns=[title for _, title in CSV_COLUMNS])


def export_leads_to_csv(leads, output_path):
    """Пишет лиды в CSV (все поля в кавычках) и возвращает путь"""
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    leads_to_dataframe(leads).to_csv(output_path, index=False, quoting=csv.QUOTE_ALL, encoding='utf-8')
    logger.info('Лиды сохранены: %s', output_path)
    return output_path
