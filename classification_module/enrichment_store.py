"""
Хранилище классификаций: один JSON-файл на календарный день.

clients/<client>/data/enriched/vapi_enriched_YYYY-MM-DD.json — объект
callId → запись {callId, createdAt, enrichedAt, model, classification}.
Запись всегда дополняет файл (новые записи побеждают по callId) и
заменяет его атомарно через временный файл.
"""

import json
import logging
import os
import shutil
import tempfile
from datetime import datetime, timezone
from pathlib import Path

from .exceptions import StoreError
from .features import parse_timestamp

logger = logging.getLogger(__name__)

ENRICHED_PREFIX = 'vapi_enriched_'


def enrichment_file_path(enriched_dir, date_str):
    return Path(enriched_dir) / f'{ENRICHED_PREFIX}{date_str}.json'


def date_key_for(created_at):
    """Календарный день звонка (UTC) в формате YYYY-MM-DD"""
    moment = parse_timestamp(created_at)
    if moment is None:
        return None
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    return moment.strftime('%Y-%m-%d')


def _normalize_day_data(data):
    """Дневной файл — объект; старый формат-массив переводим в объект"""
    if isinstance(data, dict):
        return data
    if isinstance(data, list):
        return {
            str(item['callId']): item
            for item in data
            if isinstance(item, dict) and item.get('callId') is not None
        }
    raise ValueError(f'ожидался объект, получено {type(data).__name__}')


def _read_day_file(file_path):
    with open(file_path, 'r', encoding='utf-8') as f:
        return _normalize_day_data(json.load(f))


def load_enrichments_for_date(enriched_dir, date_str):
    """Записи за один день; отсутствующий или битый файл → пустой словарь"""
    file_path = enrichment_file_path(enriched_dir, date_str)
    if not file_path.exists():
        return {}
    try:
        return _read_day_file(file_path)
    except (OSError, ValueError) as e:
        logger.warning('Файл классификаций %s повреждён и пропущен: %s', file_path, e)
        return {}


def load_all_enrichments(enriched_dir):
    """Все записи хранилища: callId → запись"""
    enriched_dir = Path(enriched_dir)
    enrichment_map = {}
    if not enriched_dir.exists():
        return enrichment_map

    for file_path in sorted(enriched_dir.glob(f'{ENRICHED_PREFIX}*.json')):
        try:
            data = _read_day_file(file_path)
        except (OSError, ValueError) as e:
            logger.warning('Файл классификаций %s повреждён и пропущен: %s', file_path, e)
            continue
        enrichment_map.update(data)

    logger.info('Загружено классификаций: %d', len(enrichment_map))
    return enrichment_map


def _write_json_atomic(file_path, data):
    file_path = Path(file_path)
    temp_file_path = None
    try:
        with tempfile.NamedTemporaryFile(
            'w', encoding='utf-8', dir=file_path.parent, prefix='.tmp_', suffix='.json', delete=False
        ) as temp_file:
            temp_file_path = temp_file.name
            json.dump(data, temp_file, ensure_ascii=False, indent=2)
        shutil.move(temp_file_path, file_path)
        temp_file_path = None
    finally:
        if temp_file_path and os.path.exists(temp_file_path):
            os.remove(temp_file_path)


def save_enrichments(enrichments, enriched_dir):
    """
    Раскладывает записи по дневным файлам и дописывает их.

    Записи без createdAt пропускаются с предупреждением. Если существующий
    дневной файл не читается, он не перезаписывается: StoreError.
    Возвращает число сохранённых записей.
    """
    enriched_dir = Path(enriched_dir)
    enriched_dir.mkdir(parents=True, exist_ok=True)
    now = datetime.now(timezone.utc).isoformat()

    by_date = {}
    for enrichment in enrichments:
        call_id = enrichment.get('callId')
        date_key = date_key_for(enrichment.get('createdAt'))
        if call_id is None or date_key is None:
            logger.warning('Звонок %s без createdAt, классификация не сохранена', call_id)
            continue
        record = {'callId': call_id, 'enrichedAt': now}
        record.update(enrichment)
        by_date.setdefault(date_key, {})[str(call_id)] = record

    total_saved = 0
    for date_key, new_records in sorted(by_date.items()):
        file_path = enrichment_file_path(enriched_dir, date_key)
        existing = {}
        if file_path.exists():
            try:
                existing = _read_day_file(file_path)
            except (OSError, ValueError) as e:
                raise StoreError(f'Файл {file_path} повреждён, дописывание невозможно: {e}') from e

        merged = dict(existing)
        merged.update(new_records)
        _write_json_atomic(file_path, merged)
        logger.info(
            'Сохранено %d классификаций в %s (всего %d)',
            len(new_records), file_path.name, len(merged),
        )
        total_saved += len(new_records)

    return total_saved


def get_unenriched_calls(calls, enrichment_map):
    """
    Звонки, которых ещё нет в хранилище.

    Звонки без разбираемого createdAt не возвращаются: их классификацию
    некуда сохранить, и они уходили бы в модель при каждом прогоне.
    """
    pending = []
    undated = 0
    for call in calls:
        if str(call.get('id')) in enrichment_map:
            continue
        if date_key_for(call.get('createdAt')) is None:
            undated += 1
            continue
        pending.append(call)
    if undated:
        logger.warning('Звонков без createdAt: %d, они пропущены при классификации', undated)
    return pending
