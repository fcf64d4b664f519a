import itertools
import json
import random

import pytest

from classification_module.categories import Spam
from classification_module.features import TRANSFER_TOOL_NAMES, Features, extract_features
from classification_module.overrides import apply_overrides
from classification_module.rule_classifier import classify_call
from call_analyzer.reports.metrics import aggregate, process_calls
from call_analyzer.reports.routing_status import (
    HANGUP_BEFORE_ROUTE,
    NOT_ROUTED,
    ROUTED,
    ROUTING_STATUSES,
    SPAM,
    SPAM_LIKELY,
    has_customer_speech,
    resolve_routing_status,
)

SPEECH = [{'role': 'user', 'message': 'Hi there'}]
SILENCE = [{'role': 'user', 'message': '   '}, {'role': 'assistant', 'message': 'Hello?'}]


def _features(duration=60, ended_reason='customer-ended-call', hint=None):
    return Features(duration_seconds=duration, ended_reason=ended_reason, transfer_destination_hint=hint)


@pytest.mark.parametrize('features, category, messages, expected', [
    (_features(duration=3, ended_reason='assistant-forwarded-call'), 'spam', [], ROUTED),
    (_features(hint='sales'), 'hangup', SPEECH, HANGUP_BEFORE_ROUTE),
    (_features(duration=8, hint='sales', ended_reason='silence-timed-out'), 'hangup', SILENCE, SPAM_LIKELY),
    (_features(duration=10), 'spam', SILENCE, SPAM_LIKELY),
    (_features(duration=8), 'spam', SPEECH, SPAM),
    (_features(duration=11), 'spam', [], SPAM),
    (_features(duration=200), 'hangup', SPEECH, NOT_ROUTED),
    (_features(duration=200, hint='sales', ended_reason='assistant-ended-call'), 'unknown', SPEECH, NOT_ROUTED),
])
def test_resolve_routing_status(features, category, messages, expected):
    assert resolve_routing_status(features, category, messages) == expected


def test_customer_speech_from_content_field():
    assert has_customer_speech([{'role': 'customer', 'content': 'yes'}])
    assert not has_customer_speech(SILENCE)
    assert not has_customer_speech(None)


def test_short_silent_call_end_to_end(make_call):
    call = make_call('blip', duration=3, messages=[])
    features = extract_features(call)
    outcome = apply_overrides(classify_call(call, features), features)

    assert outcome == Spam('short-abandoned')
    assert resolve_routing_status(features, outcome.category, call['messages']) == SPAM_LIKELY
    assert process_calls([call], {})[0].routing_status == SPAM_LIKELY


def _random_tool_call(rng):
    shape = rng.choice(['json', 'dict', 'broken', 'empty', 'other-tool', 'no-function'])
    if shape == 'no-function':
        return {'id': 'tool'}
    name = 'lookupOrder' if shape == 'other-tool' else rng.choice(sorted(TRANSFER_TOOL_NAMES))
    arguments = {
        'json': json.dumps({rng.choice(['destination', 'intent', 'queue']): rng.choice(['sales', 'billing'])}),
        'dict': {'department': 'service'},
        'broken': '{"destination": ',
        'empty': '{}',
        'other-tool': '{}',
    }[shape]
    return {'function': {'name': name, 'arguments': arguments}}


def _random_call(rng, index):
    messages = []
    for _ in range(rng.randint(0, 3)):
        role = rng.choice(['user', 'customer', 'assistant', 'bot'])
        key = rng.choice(['message', 'content'])
        messages.append({'role': role, key: rng.choice(['', '  ', 'yes please', 'Hello?'])})
    if rng.random() < 0.4:
        messages.append({'role': 'assistant', 'toolCalls': [_random_tool_call(rng) for _ in range(rng.randint(1, 2))]})

    call = {
        'id': f'r{index}',
        'endedReason': rng.choice([
            'assistant-forwarded-call', 'customer-ended-call', 'assistant-ended-call',
            'silence-timed-out', 'pipeline-error', None,
        ]),
        'messages': rng.choice([messages, messages, None, 'garbage']),
    }
    duration = rng.choice([None, 0, 2, 4.5, 9, 10, 10.5, 29, 45, 400, -3, 'long'])
    if duration is not None:
        call['duration'] = duration
    created = rng.choice([None, 'not-a-date', '2025-01-06T15:00:00Z', '2025-01-07T03:10:00-05:00'])
    if created is not None:
        call['createdAt'] = created
    if rng.random() < 0.2:
        call['toolCalls'] = [_random_tool_call(rng)]
    return call


@pytest.mark.parametrize('seed', [1, 7, 2024])
def test_random_calls_are_partitioned(seed):
    rng = random.Random(seed)
    calls = [_random_call(rng, i) for i in range(300)]
    enrichment = {
        call['id']: {'classification': {'category': rng.choice(['spam', 'hangup', 'transferred', 'unknown'])}}
        for call in calls if rng.random() < 0.5
    }
    processed = process_calls(calls, enrichment)

    assert all(c.routing_status in ROUTING_STATUSES for c in processed)
    agg = aggregate(processed)
    assert agg.accounted_for == agg.total_calls == len(calls)
    assert sum(agg.status_counts.values()) == len(calls)


def test_statuses_partition_every_call(make_call):
    grid = itertools.product(
        [0, 5, 10, 11, 90],
        ['assistant-forwarded-call', 'customer-ended-call', 'assistant-ended-call', 'silence-timed-out', None],
        [None, 'sales'],
        [SPEECH, SILENCE],
    )
    calls = [
        make_call(f'c{i}', duration=duration, ended_reason=reason, transfer_to=hint, messages=messages)
        for i, (duration, reason, hint, messages) in enumerate(grid)
    ]
    categories = ['spam', 'hangup', 'transferred', 'unknown']
    enrichment = {
        call['id']: {'classification': {'category': categories[i % len(categories)]}}
        for i, call in enumerate(calls)
    }
    processed = process_calls(calls, enrichment)

    assert all(c.routing_status in ROUTING_STATUSES for c in processed)
    agg = aggregate(processed)
    assert agg.accounted_for == agg.total_calls == len(calls)
