# call_analyzer/utils.py

import json
import logging
import math
import re
from datetime import date, datetime, timedelta
from pathlib import Path

logger = logging.getLogger(__name__)

RAW_PREFIX = 'vapi_calls_'
RAW_FILE_RE = re.compile(r'^vapi_calls_(\d{4}-\d{2}-\d{2})\.json$')
DATE_FORMAT = '%Y-%m-%d'


def round_half_up(value):
    """Округление к ближайшему целому, .5 всегда вверх (как Math.round)"""
    return int(math.floor(value + 0.5))


def percent(part, whole):
    """Целый процент part от whole; 0, если whole == 0"""
    if not whole:
        return 0
    return round_half_up(part / whole * 100)


def parse_date(value):
    """'YYYY-MM-DD' | date | datetime → date"""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return datetime.strptime(str(value).strip(), DATE_FORMAT).date()


def format_date(value):
    return parse_date(value).strftime(DATE_FORMAT)


def iso_week_bounds(day):
    """Понедельник и воскресенье ISO-недели, в которую попадает day"""
    day = parse_date(day)
    monday = day - timedelta(days=day.isoweekday() - 1)
    return monday, monday + timedelta(days=6)


def iso_week_label(day):
    year, week, _ = parse_date(day).isocalendar()
    return f'{year}-W{week:02d}'


def raw_file_path(raw_dir, day):
    return Path(raw_dir) / f'{RAW_PREFIX}{format_date(day)}.json'


def list_raw_dates(raw_dir):
    """Дни, за которые есть файлы сырых звонков, по возрастанию"""
    raw_dir = Path(raw_dir)
    if not raw_dir.exists():
        return []
    days = []
    for file_path in raw_dir.iterdir():
        match = RAW_FILE_RE.match(file_path.name)
        if match:
            days.append(parse_date(match.group(1)))
    return sorted(days)


def load_raw_calls_for_date(raw_dir, day):
    """Звонки одного дня; отсутствующий или битый файл → пустой список"""
    file_path = raw_file_path(raw_dir, day)
    if not file_path.exists():
        return []
    try:
        with open(file_path, 'r', encoding='utf-8') as f:
            calls = json.load(f)
    except (OSError, ValueError) as e:
        logger.warning('Не удалось прочитать %s: %s', file_path, e)
        return []
    if not isinstance(calls, list):
        logger.warning('Файл %s должен содержать массив звонков', file_path)
        return []
    return [call for call in calls if isinstance(call, dict)]


def dedupe_calls(calls):
    """Убирает повторы по id; побеждает последнее вхождение, порядок первого"""
    by_id = {}
    for call in calls:
        call_id = call.get('id')
        if call_id is None:
            continue
        by_id[str(call_id)] = call
    return list(by_id.values())


def load_all_raw_calls(raw_dir):
    """Все сырые звонки клиента без повторов"""
    calls = []
    for day in list_raw_dates(raw_dir):
        calls.extend(load_raw_calls_for_date(raw_dir, day))
    unique = dedupe_calls(calls)
    if len(unique) != len(calls):
        logger.info('Удалено повторов звонков: %d', len(calls) - len(unique))
    return unique


def load_raw_calls_by_date(raw_dir, days=None):
    """date → список звонков (каждый день дедуплицирован отдельно)"""
    if days is None:
        days = list_raw_dates(raw_dir)
    return {parse_date(d): dedupe_calls(load_raw_calls_for_date(raw_dir, d)) for d in days}
