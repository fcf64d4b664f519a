import json

from classification_module.features import (
    UNKNOWN_REASON,
    UNPARSEABLE_DESTINATION,
    Features,
    extract_email,
    extract_features,
    get_call_duration,
    get_transfer_destination_hint,
    is_appointment_booked,
    normalize_ended_reason,
)


def _tool(arguments, name='transferCall'):
    return {'function': {'name': name, 'arguments': arguments}}


def test_explicit_duration_wins():
    call = {'duration': 42, 'startedAt': '2025-01-06T15:00:00Z', 'endedAt': '2025-01-06T15:10:00Z'}
    assert get_call_duration(call) == 42.0


def test_duration_from_timestamps():
    call = {'startedAt': '2025-01-06T15:00:00.000Z', 'endedAt': '2025-01-06T15:01:30.500Z'}
    assert get_call_duration(call) == 90.5


def test_duration_defaults_to_zero_on_bad_timestamps():
    assert get_call_duration({'startedAt': 'yesterday', 'endedAt': '2025-01-06T15:00:00Z'}) == 0.0
    assert get_call_duration({}) == 0.0


def test_unrecognized_ended_reason_becomes_unknown():
    assert normalize_ended_reason('pipeline-error-openai') == UNKNOWN_REASON
    assert normalize_ended_reason(None) == UNKNOWN_REASON
    assert normalize_ended_reason('silence-timed-out') == 'silence-timed-out'


def test_hint_first_nonempty_argument_key():
    call = {'toolCalls': [_tool(json.dumps({'destination': '', 'intent': 'billing'}))]}
    assert get_transfer_destination_hint(call) == 'billing'


def test_hint_top_level_tool_calls_before_messages():
    call = {
        'toolCalls': [_tool({'department': 'warranty'})],
        'messages': [{'role': 'assistant', 'toolCalls': [_tool({'destination': 'sales'})]}],
    }
    assert get_transfer_destination_hint(call) == 'warranty'


def test_hint_unparseable_arguments():
    call = {'messages': [{'role': 'assistant', 'toolCalls': [_tool('{not json')]}]}
    assert get_transfer_destination_hint(call) == UNPARSEABLE_DESTINATION


def test_hint_ignores_other_tools_and_empty_arguments():
    call = {'toolCalls': [_tool({'destination': 'sales'}, name='lookupCustomer'), _tool({})]}
    assert get_transfer_destination_hint(call) is None


def test_booked_from_structured_output():
    call = {'analysis': {'artifact': {'structuredOutputs': {
        'abc': {'name': 'Appointment Booked', 'result': True},
    }}}}
    assert is_appointment_booked(call)


def test_booked_from_success_evaluation_string():
    evaluation = json.dumps({'call_success': 'Yes', 'final_outcome': 'Consultation scheduled for Friday'})
    assert is_appointment_booked({'analysis': {'successEvaluation': evaluation}})


def test_successful_transfer_is_not_a_booking():
    evaluation = {'call_success': 'yes', 'final_outcome': 'Appointment request transferred to scheduling'}
    assert not is_appointment_booked({'analysis': {'successEvaluation': evaluation}})


def test_extract_features_never_raises():
    assert extract_features(None) == Features()
    features = extract_features({'duration': 'n/a', 'analysis': 'broken', 'messages': 'nope'})
    assert features == Features()


def test_extract_email_prefers_structured_data():
    call = {
        'analysis': {'structuredData': {'email': 'lead@example.com'}},
        'transcript': 'my email is other@example.com',
    }
    assert extract_email(call) == 'lead@example.com'


def test_extract_email_last_address_in_transcript():
    call = {'transcript': 'Reach us at office@acme.com. Mine is jane.doe@mail.org'}
    assert extract_email(call) == 'jane.doe@mail.org'


def test_extract_email_rejects_numeric_tld():
    assert extract_email({'transcript': 'version user@host.123'}) is None
