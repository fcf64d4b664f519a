"""
Классификация звонков через LLM (chat completions).

Звонки отправляются пачками: в промпт попадают признаки звонка, summary и
первые 500 символов транскрипта. Ответ модели не доверенный: всё, что не
удалось разобрать, становится Unknown. Повторов запроса нет, повтор всего
прогона остаётся на вызывающей стороне.
"""

import hashlib
import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

import requests

from .categories import MODEL_CATEGORIES, Unknown, classification_from_fields
from .exceptions import LLMRequestError
from .features import extract_features
from .prompt_builder import build_enrichment_prompt

logger = logging.getLogger(__name__)

DEFAULT_URL = 'https://api.openai.com/v1/chat/completions'
DEFAULT_MODEL = 'gpt-4o-mini'
TRANSCRIPT_PREVIEW_CHARS = 500


@dataclass
class BatchResult:
    """Ответ модели по одному звонку (до применения поправок)"""
    call: dict
    features: object
    classification: object
    parsed: bool = True

    @property
    def call_id(self):
        return self.call.get('id')


class LLMClassifier:
    """Классификатор звонков на основе chat completions API"""

    def __init__(
        self,
        client_config,
        api_key=None,
        base_url=None,
        model=None,
        temperature=0.3,
        timeout=90,
        session=None,
        debug_log_path=None,
    ):
        """
        Параметры:
        - client_config: ClientConfig, из него собираются промпты
        - api_key, base_url, model: доступ к LLM
        - session: объект с методом post (по умолчанию модуль requests)
        - debug_log_path: JSONL-журнал запросов и ответов
        """
        self.client_config = client_config
        self.api_key = api_key or ''
        self.base_url = base_url or DEFAULT_URL
        self.model = model or DEFAULT_MODEL
        self.temperature = temperature
        self.timeout = timeout
        self.http = session or requests

        if debug_log_path is None and client_config.paths:
            debug_log_path = client_config.paths['logs_dir'] / 'classification_llm_debug.log'
        self.debug_log_path = Path(debug_log_path) if debug_log_path else None

        self.system_prompt, self.user_prompt = build_enrichment_prompt(client_config)

    def _resolve_chat_completions_url(self):
        url = str(self.base_url or '').strip()
        if not url:
            return DEFAULT_URL
        lower_url = url.lower().rstrip('/')
        if lower_url.endswith('/chat/completions'):
            return url
        if lower_url.endswith('/v1'):
            return f"{url.rstrip('/')}/chat/completions"
        return url

    def _append_debug_log(self, event, payload):
        if self.debug_log_path is None:
            return
        try:
            entry = {
                'ts': datetime.now().isoformat(timespec='seconds'),
                'event': str(event),
                'payload': payload or {},
            }
            self.debug_log_path.parent.mkdir(parents=True, exist_ok=True)
            with self.debug_log_path.open('a', encoding='utf-8') as f:
                f.write(json.dumps(entry, ensure_ascii=False) + '\n')
        except (OSError, TypeError, ValueError):
            # журнал отладки не должен ронять классификацию
            pass

    @staticmethod
    def build_call_summary(call, features):
        """Данные одного звонка, которые видит модель"""
        return {
            'callId': call.get('id'),
            'duration': int(features.duration_seconds + 0.5),
            'endedReason': call.get('endedReason') or 'unknown',
            'transferDestinationHint': features.transfer_destination_hint,
            'appointmentBooked': features.appointment_booked,
            'summary': call.get('summary') or 'No summary available',
            'transcript': call.get('transcript') if isinstance(call.get('transcript'), str) else '',
        }

    def build_user_prompt(self, summaries):
        blocks = []
        for i, c in enumerate(summaries, 1):
            blocks.append(
                f'Call {i}:\n'
                f"- ID: {c['callId']}\n"
                f"- Duration: {c['duration']}s\n"
                f"- endedReason: {c['endedReason']}\n"
                f"- transferDestinationHint: {c['transferDestinationHint'] or 'none'}\n"
                f"- appointmentBooked: {str(c['appointmentBooked']).lower()}\n"
                f"- Summary: {c['summary']}\n"
                f"- Transcript: {c['transcript'][:TRANSCRIPT_PREVIEW_CHARS]}...\n"
            )
        return self.user_prompt + '\n\n**CALLS TO CLASSIFY:**\n\n' + '\n'.join(blocks)

    def _request_llm(self, payload):
        """Один запрос без повторов; любая неудача → LLMRequestError"""
        url = self._resolve_chat_completions_url()
        headers = {
            'Authorization': f'Bearer {self.api_key}',
            'Content-Type': 'application/json',
        }
        try:
            resp = self.http.post(url, headers=headers, json=payload, timeout=self.timeout)
        except requests.RequestException as exc:
            self._append_debug_log('llm_request_exception', {'url': url, 'error': str(exc)})
            raise LLMRequestError(f'Ошибка запроса к LLM: {exc}') from exc

        if resp.status_code != 200:
            self._append_debug_log(
                'llm_http_error',
                {
                    'url': url,
                    'status_code': resp.status_code,
                    'body_preview': (resp.text or '')[:1200],
                },
            )
            raise LLMRequestError(f'HTTP {resp.status_code}: {(resp.text or "")[:500]}')

        self._append_debug_log('llm_http_ok', {'url': url, 'status_code': resp.status_code})
        return resp

    @staticmethod
    def _clean_llm_text(text):
        cleaned = str(text or '').strip()
        if cleaned.startswith('```'):
            cleaned = re.sub(r'^```[a-zA-Z0-9_-]*\s*', '', cleaned)
            cleaned = re.sub(r'\s*```$', '', cleaned).strip()
        return cleaned

    def _parse_llm_result(self, response):
        """
        Разбирает ответ в словарь callId → элемент ответа.

        Любое отклонение от формы {"calls": [...]} даёт пустой словарь.
        """
        try:
            data = response.json()
            content = data['choices'][0]['message']['content']
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            logger.error('Не удалось разобрать ответ LLM: %s', exc)
            return {}

        try:
            parsed = json.loads(self._clean_llm_text(content))
        except ValueError as exc:
            logger.error('LLM вернула не JSON: %s', exc)
            return {}

        calls = parsed.get('calls') if isinstance(parsed, dict) else None
        if not isinstance(calls, list):
            logger.error('В ответе LLM нет массива calls')
            return {}

        by_id = {}
        for item in calls:
            if isinstance(item, dict) and item.get('callId') is not None:
                by_id.setdefault(str(item['callId']), item)
        return by_id

    @staticmethod
    def _classification_from_item(item):
        if not item or item.get('category') not in MODEL_CATEGORIES:
            return Unknown(), False
        return classification_from_fields(
            item.get('category'),
            hangup_type=item.get('hangupType'),
            transfer_reason=item.get('transferReason'),
            spam_type=item.get('spamType'),
        ), True

    def classify_batch(self, calls, features=None):
        """
        Классифицирует пачку звонков одним запросом.

        Возвращает BatchResult на каждый звонок в исходном порядке. При
        сбое запроса все звонки пачки получают Unknown.
        """
        if not calls:
            return []
        if features is None:
            features = [extract_features(call) for call in calls]

        summaries = [self.build_call_summary(c, f) for c, f in zip(calls, features)]
        user_prompt = self.build_user_prompt(summaries)
        payload = {
            'model': self.model,
            'messages': [
                {'role': 'system', 'content': self.system_prompt},
                {'role': 'user', 'content': user_prompt},
            ],
            'temperature': self.temperature,
            'response_format': {'type': 'json_object'},
        }
        batch_hash = hashlib.md5(
            ','.join(str(s['callId']) for s in summaries).encode('utf-8')
        ).hexdigest()
        self._append_debug_log(
            'llm_request',
            {
                'url': self._resolve_chat_completions_url(),
                'model': self.model,
                'batch_hash': batch_hash,
                'calls': len(calls),
                'user_prompt_preview': user_prompt[:1000],
            },
        )

        try:
            response = self._request_llm(payload)
        except LLMRequestError as exc:
            logger.error('Ошибка классификации пачки из %d звонков: %s', len(calls), exc)
            return [BatchResult(c, f, Unknown(), parsed=False) for c, f in zip(calls, features)]

        by_id = self._parse_llm_result(response)
        self._append_debug_log(
            'llm_parsed',
            {'batch_hash': batch_hash, 'parsed_calls': len(by_id)},
        )

        results = []
        for call, feat in zip(calls, features):
            item = by_id.get(str(call.get('id')))
            classification, parsed = self._classification_from_item(item)
            if not parsed:
                logger.warning('Звонок %s: нет корректного ответа модели, категория unknown', call.get('id'))
            results.append(BatchResult(call, feat, classification, parsed=parsed))
        return results
