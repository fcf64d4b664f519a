import pytest

from classification_module.categories import (
    BookingCompleted,
    Hangup,
    NeedsExternalJudgment,
    Spam,
    Transferred,
)
from classification_module.rule_classifier import classify_call


def test_very_short_call_is_abandoned_even_if_forwarded(make_call):
    call = make_call(duration=3, ended_reason='assistant-forwarded-call')
    assert classify_call(call) == Spam('short-abandoned')


def test_forwarded_uses_platform_destination(make_call):
    call = make_call(
        ended_reason='assistant-forwarded-call',
        destination={'description': 'Sales Team', 'number': '+15550100'},
        transfer_to='sales',
    )
    assert classify_call(call) == Transferred('Sales Team')


def test_forwarded_falls_back_to_hint_then_unknown(make_call):
    assert classify_call(make_call(ended_reason='assistant-forwarded-call', transfer_to='billing')) == \
        Transferred('billing')
    assert classify_call(make_call(ended_reason='assistant-forwarded-call')) == \
        Transferred('unknown-destination')


def test_booking_beats_hangup(make_call):
    call = make_call(
        ended_reason='customer-ended-call',
        analysis={'artifact': {'structuredOutputs': {
            'x': {'name': 'Appointment Booked', 'result': True},
        }}},
    )
    assert classify_call(call) == BookingCompleted()


def test_confirmation_phrase_in_assistant_messages(make_call):
    messages = [
        {'role': 'user', 'message': 'Thursday works.'},
        {'role': 'bot', 'message': 'Great, your consultation is confirmed for Thursday at 10.'},
    ]
    call = make_call(ended_reason='customer-ended-call', messages=messages)
    assert classify_call(call) == BookingCompleted()


def test_transferred_outcome_does_not_count_as_booking(make_call):
    call = make_call(
        ended_reason='customer-ended-call',
        analysis={'successEvaluation': {'call_success': 'yes', 'final_outcome': 'Caller transferred to sales'}},
    )
    assert classify_call(call) == Hangup(None, 'customer-hung-up')


def test_hangup_during_transfer_keeps_destination_note(make_call):
    call = make_call(ended_reason='customer-ended-call', transfer_to='sales')
    result = classify_call(call)
    assert result == Hangup(None, 'hung-up-during-transfer-to-sales')
    assert result.to_dict()['note'] == 'hung-up-during-transfer-to-sales'
    assert result.hangup_type is None


def test_assistant_ended_needs_external_judgment(make_call):
    result = classify_call(make_call(ended_reason='assistant-ended-call'))
    assert isinstance(result, NeedsExternalJudgment)


@pytest.mark.parametrize('ended_reason', ['silence-timed-out', 'pipeline-error'])
def test_no_rule_matched(make_call, ended_reason):
    result = classify_call(make_call(ended_reason=ended_reason))
    assert isinstance(result, NeedsExternalJudgment)
    assert result.reason.startswith('no-rule-matched:')


def test_classification_is_deterministic(make_call):
    call = make_call(ended_reason='customer-ended-call', transfer_to='warranty', duration=33)
    assert classify_call(call) == classify_call(call)
