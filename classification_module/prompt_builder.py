"""
Сборка промптов для классификации из конфигурации клиента.

Шаблоны хранятся в prompts.yaml клиента (prompts.enrichment.systemPrompt и
userPrompt). Поддерживаются плейсхолдеры {{client.*}}, {{pricing.*}},
{{targets.*}} и списки {{servicesList}}, {{callPurposesList}},
{{transferReasonsList}}, {{serviceKeywordsList}}, {{leadCriteriaList}}.
"""

import logging
import re

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = """You are a call analyst for {{client.name}}. {{client.aiAssistantName}} (AI assistant) answers inbound calls.
Classify every call into exactly one category and respond with a JSON object only."""

DEFAULT_USER_PROMPT = """**BUSINESS CONTEXT:**
{{client.name}} is {{client.description}}

**Services:**
{{servicesList}}

**Call purposes:**
{{callPurposesList}}

**CATEGORIES (choose exactly one per call):**
- booking-completed: an appointment or consultation was confirmed during the call
- booking-abandoned: the caller started booking but did not finish
- booking-transferred: the caller wanted to book and was transferred to staff
- transferred: the call was forwarded to a department; set transferReason
- spam: robocalls, wrong numbers, silence, sales pitches; set spamType
- hangup: the caller hung up without an outcome; set hangupType to high-value, moderate or low-value

**Transfer reasons:**
{{transferReasonsList}}

**Service keywords:** {{serviceKeywordsList}}

**High-value lead criteria:**
{{leadCriteriaList}}

Rules:
- If appointmentBooked is true the category is booking-completed.
- If endedReason is assistant-forwarded-call the call was transferred.
- Use the summary as the primary signal; the transcript is truncated.

Respond with:
{"calls": [{"callId": "...", "category": "...", "transferReason": null, "spamType": null, "hangupType": null}]}"""

_PLACEHOLDER_RE = r'\{\{%s\}\}'


def replace_placeholders(text, data, prefix):
    """
    Подставляет значения data в плейсхолдеры {{prefix.key}}.

    Строки и числа подставляются как есть, списки склеиваются переводом
    строки, вложенные словари обходятся рекурсивно ({{prefix.key.sub}}).
    """
    if not isinstance(data, dict):
        return text
    for key, value in data.items():
        pattern = _PLACEHOLDER_RE % re.escape(f'{prefix}.{key}')
        if isinstance(value, bool):
            text = re.sub(pattern, lambda _m, v=value: str(v).lower(), text)
        elif isinstance(value, (str, int, float)):
            text = re.sub(pattern, lambda _m, v=value: str(v), text)
        elif isinstance(value, list):
            joined = '\n'.join(str(item) for item in value)
            text = re.sub(pattern, lambda _m, v=joined: v, text)
        elif isinstance(value, dict):
            text = replace_placeholders(text, value, f'{prefix}.{key}')
    return text


def build_prompt(template, client_config):
    """Заполняет шаблон данными клиента и отчёта"""
    if not template:
        return ''
    if not isinstance(template, str):
        return str(template)

    client = dict(client_config.client)
    # имя клиента и ассистента подставляются всегда, даже если их нет в client.yaml
    client['name'] = client_config.display_name
    client['aiAssistantName'] = client_config.assistant_name
    result = replace_placeholders(template, client, 'client')
    report = client_config.report or {}
    result = replace_placeholders(result, report.get('pricing'), 'pricing')
    result = replace_placeholders(result, report.get('targets'), 'targets')
    return result


def _list_blocks(client):
    blocks = {}

    services = client.get('services') or []
    if services:
        blocks['servicesList'] = '\n'.join(f'- {s}' for s in services)

    purposes = client.get('callPurposes') or []
    if purposes:
        blocks['callPurposesList'] = '\n'.join(f'{i}. {p}' for i, p in enumerate(purposes, 1))

    reasons = client.get('transferReasons') or {}
    if isinstance(reasons, dict) and reasons:
        blocks['transferReasonsList'] = '\n'.join(f'  - **{k}**: {v}' for k, v in reasons.items())

    keywords = client.get('serviceKeywords') or []
    if keywords:
        blocks['serviceKeywordsList'] = ', '.join(f'"{k}"' for k in keywords)

    criteria = client.get('leadCriteria') or []
    if criteria:
        blocks['leadCriteriaList'] = '\n'.join(f'- {c}' for c in criteria)

    return blocks


def build_enrichment_prompt(client_config):
    """
    Системный и пользовательский промпты для классификации.

    Если клиент не задал prompts.enrichment, используется встроенный шаблон.
    Возвращает кортеж (system, user).
    """
    enrichment = (client_config.prompts or {}).get('enrichment') or {}
    if not enrichment:
        logger.info('У клиента %s нет prompts.enrichment, используется встроенный промпт', client_config.name)

    system_template = enrichment.get('systemPrompt') or DEFAULT_SYSTEM_PROMPT
    user_template = enrichment.get('userPrompt') or DEFAULT_USER_PROMPT

    system_prompt = build_prompt(system_template, client_config)
    user_prompt = build_prompt(user_template, client_config)

    for name, block in _list_blocks(client_config.client).items():
        user_prompt = user_prompt.replace('{{%s}}' % name, block)

    return system_prompt, user_prompt
