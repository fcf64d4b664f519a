"""
Прогон классификации по всем ещё не размеченным звонкам клиента.

Пачки обрабатываются строго последовательно: классификация, поправки,
сохранение, пауза. Упавший прогон можно просто перезапустить: уже
сохранённые звонки пропускаются.
"""

import logging
import time
from collections import Counter
from datetime import datetime, timezone

from call_analyzer.utils import load_all_raw_calls

from .classification_engine import BatchResult, LLMClassifier
from .enrichment_store import get_unenriched_calls, load_all_enrichments, save_enrichments
from .exceptions import ConfigurationError
from .features import extract_features
from .overrides import apply_overrides
from .rule_classifier import classify_or_unknown

logger = logging.getLogger(__name__)

MODE_LLM = 'llm'
MODE_RULES = 'rules'
RULES_MODEL_NAME = 'rules'


def classify_with_rules(calls):
    """Та же форма результата, что у LLMClassifier.classify_batch"""
    results = []
    for call in calls:
        features = extract_features(call)
        results.append(BatchResult(call, features, classify_or_unknown(call, features)))
    return results


def build_store_record(call, classification, model):
    return {
        'callId': call.get('id'),
        'createdAt': call.get('createdAt'),
        'enrichedAt': datetime.now(timezone.utc).isoformat(),
        'model': model,
        'classification': classification.to_dict(),
    }


def _make_classifier(client_config, settings):
    if not settings.OPENAI_API_KEY:
        raise ConfigurationError('Не задан OPENAI_API_KEY: классификация через LLM невозможна')
    return LLMClassifier(
        client_config,
        api_key=settings.OPENAI_API_KEY,
        base_url=settings.LLM_URL,
        model=settings.LLM_MODEL,
        temperature=settings.LLM_TEMPERATURE,
        timeout=settings.LLM_TIMEOUT,
    )


def run_enrichment(client_config, settings, mode=MODE_LLM, batch_size=None, delay=None,
                   classifier=None, sleep=time.sleep):
    """
    Классифицирует новые звонки клиента и дописывает их в хранилище.

    mode='llm' — через модель (нужен OPENAI_API_KEY), mode='rules' — только
    правила. classifier и sleep подменяются в тестах.
    Возвращает сводку прогона.
    """
    if mode not in (MODE_LLM, MODE_RULES):
        raise ConfigurationError(f'Неизвестный режим классификации: {mode}')

    batch_size = batch_size or settings.ENRICH_BATCH_SIZE
    delay = settings.ENRICH_BATCH_DELAY if delay is None else delay
    if batch_size < 1:
        raise ConfigurationError(f'Размер пачки должен быть положительным: {batch_size}')

    if mode == MODE_LLM and classifier is None:
        # проверка ключа до начала любой работы
        classifier = _make_classifier(client_config, settings)
    model_name = classifier.model if mode == MODE_LLM else RULES_MODEL_NAME

    paths = client_config.paths
    logger.info('Загрузка сырых звонков клиента %s...', client_config.name)
    all_calls = load_all_raw_calls(paths['raw_dir'])
    existing = load_all_enrichments(paths['enriched_dir'])
    pending = get_unenriched_calls(all_calls, existing)
    already_enriched = sum(1 for call in all_calls if str(call.get('id')) in existing)

    summary = {
        'client': client_config.name,
        'mode': mode,
        'total_calls': len(all_calls),
        'already_enriched': already_enriched,
        'undated': len(all_calls) - already_enriched - len(pending),
        'to_enrich': len(pending),
        'processed': 0,
        'saved': 0,
        'batches': 0,
        'categories': Counter(),
    }
    logger.info(
        'Звонков всего: %d, уже классифицировано: %d, к классификации: %d',
        summary['total_calls'], summary['already_enriched'], summary['to_enrich'],
    )
    if not pending:
        logger.info('Все звонки уже классифицированы')
        return summary

    total_batches = (len(pending) + batch_size - 1) // batch_size
    for index in range(total_batches):
        batch = pending[index * batch_size:(index + 1) * batch_size]
        logger.info('Пачка %d/%d (%d звонков)...', index + 1, total_batches, len(batch))

        if mode == MODE_LLM:
            results = classifier.classify_batch(batch)
        else:
            results = classify_with_rules(batch)

        records = []
        for result in results:
            final = apply_overrides(result.classification, result.features)
            summary['categories'][final.category] += 1
            records.append(build_store_record(result.call, final, model_name))

        summary['saved'] += save_enrichments(records, paths['enriched_dir'])
        summary['processed'] += len(records)
        summary['batches'] += 1
        logger.info('Пачка готова: %d/%d', summary['processed'], summary['to_enrich'])

        if index < total_batches - 1 and delay > 0:
            sleep(delay)

    logger.info(
        'Классификация завершена: %d звонков (%s)',
        summary['processed'], client_config.client.get('industry') or client_config.display_name,
    )
    return summary
