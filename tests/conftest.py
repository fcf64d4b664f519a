"""
Общие фикстуры тестов: фабрика сырых звонков, временная папка клиента,
заглушка HTTP-сессии для LLM.
"""

import json
from types import SimpleNamespace

import pytest
import yaml

from config.client_config import load_client_config

CLIENT = {
    'name': 'Acme Baths',
    'aiAssistantName': 'Ava',
    'industry': 'bathroom remodeling',
    'description': 'a bathroom remodeling company.',
    'timezone': 'America/New_York',
    'businessHours': {
        'start': 8,
        'end': 17,
        'days': [1, 2, 3, 4, 5],
        'schedule': {'6': {'start': 9, 'end': 13}},
    },
    'services': ['Shower replacement', 'Wall surrounds'],
    'callPurposes': ['Book a consultation', 'Route existing customers'],
    'transferReasons': {
        'new-project': 'New project quote. Route to sales.',
        'billing': 'Payment questions.',
    },
    'serviceKeywords': ['shower', 'bathtub'],
    'leadCriteria': ['Asked about pricing'],
}

REPORT = {
    'pricing': {'averageProjectValue': 12000, 'consultationCloseRate': 0.5},
    'targets': {'routingRate': 60, 'maxTransferFailureRate': 15},
}


@pytest.fixture
def client_config(tmp_path):
    config_dir = tmp_path / 'acme' / 'config'
    config_dir.mkdir(parents=True)
    (config_dir / 'client.yaml').write_text(yaml.safe_dump(CLIENT), encoding='utf-8')
    (config_dir / 'report.yaml').write_text(yaml.safe_dump(REPORT), encoding='utf-8')
    return load_client_config('acme', base_dir=tmp_path)


@pytest.fixture
def settings():
    return SimpleNamespace(
        OPENAI_API_KEY='test-key',
        LLM_URL='https://llm.example.com/v1',
        LLM_MODEL='test-model',
        LLM_TEMPERATURE=0.3,
        LLM_TIMEOUT=5,
        ENRICH_BATCH_SIZE=50,
        ENRICH_BATCH_DELAY=0.0,
    )


def _build_call(call_id='call-1', created_at='2025-01-06T15:00:00Z', duration=60,
                ended_reason='customer-ended-call', messages=None, transfer_to=None, **extra):
    if messages is None:
        messages = [
            {'role': 'assistant', 'message': 'Thanks for calling, how can I help?'},
            {'role': 'user', 'message': 'I need a quote for a new shower.'},
        ]
    messages = list(messages)
    if transfer_to is not None:
        messages.append({
            'role': 'assistant',
            'toolCalls': [{
                'function': {
                    'name': 'transferCall',
                    'arguments': json.dumps({'destination': transfer_to}),
                },
            }],
        })
    call = {
        'id': call_id,
        'createdAt': created_at,
        'duration': duration,
        'endedReason': ended_reason,
        'messages': messages,
        'summary': f'Summary of {call_id}',
        'transcript': '',
    }
    call.update(extra)
    return call


@pytest.fixture
def make_call():
    """Фабрика сырой записи звонка в формате голосовой платформы"""
    return _build_call


@pytest.fixture
def make_enrichment():
    def _build(category, **fields):
        return {'classification': dict(category=category, **fields)}
    return _build


def write_raw_day(client_config, day, calls):
    path = client_config.paths['raw_dir'] / f'vapi_calls_{day}.json'
    path.write_text(json.dumps(calls), encoding='utf-8')
    return path


@pytest.fixture
def raw_day_writer(client_config):
    return lambda day, calls: write_raw_day(client_config, day, calls)


class StubResponse:
    def __init__(self, status_code=200, payload=None, text=''):
        self.status_code = status_code
        self._payload = payload
        self.text = text or (json.dumps(payload) if payload is not None else '')

    def json(self):
        if self._payload is None:
            raise ValueError('No JSON object could be decoded')
        return self._payload


class StubSession:
    """Заменяет requests: отдаёт заготовленные ответы и запоминает запросы"""

    def __init__(self, responses=None, error=None):
        self.responses = list(responses or [])
        self.error = error
        self.requests = []

    def post(self, url, headers=None, json=None, timeout=None):
        self.requests.append({'url': url, 'headers': headers, 'json': json, 'timeout': timeout})
        if self.error is not None:
            raise self.error
        return self.responses.pop(0)


def llm_response(items, fenced=False):
    content = json.dumps({'calls': items})
    if fenced:
        content = f'```json\n{content}\n```'
    return StubResponse(200, {'choices': [{'message': {'content': content}}]})
