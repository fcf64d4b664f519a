"""
Извлечение признаков звонка.

Из сырой записи голосовой платформы получаем фиксированный набор сигналов:
длительность, причину завершения, подсказку о переводе и флаг записи.
Функции никогда не бросают исключений: битые данные деградируют в значения
по умолчанию (длительность 0, подсказка None).
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterator, Optional

logger = logging.getLogger(__name__)

ASSISTANT_FORWARDED = 'assistant-forwarded-call'
CUSTOMER_ENDED = 'customer-ended-call'
ASSISTANT_ENDED = 'assistant-ended-call'
SILENCE_TIMED_OUT = 'silence-timed-out'
UNKNOWN_REASON = 'unknown'

ENDED_REASONS = (ASSISTANT_FORWARDED, CUSTOMER_ENDED, ASSISTANT_ENDED, SILENCE_TIMED_OUT)

TRANSFER_TOOL_NAMES = frozenset({'intent_transfer', 'transfer_intent', 'transferCall'})
# Порядок важен: первое непустое поле побеждает
TRANSFER_ARGUMENT_KEYS = ('destination', 'intent', 'department', 'queue')
# Перевод был, но аргументы не разобрать
UNPARSEABLE_DESTINATION = 'Unknown Destination'

APPOINTMENT_BOOKED_OUTPUT = 'Appointment Booked'
APPOINTMENT_TERMS = ('appointment', 'consultation')
CONFIRMED_TERMS = ('scheduled', 'confirmed', 'booked')

EMAIL_RE = re.compile(r'\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b')
EMAIL_OUTPUT_NAMES = ('Email', 'email', 'Email Address', 'email_address', 'customerEmail')


@dataclass(frozen=True)
class Features:
    duration_seconds: float = 0.0
    ended_reason: str = UNKNOWN_REASON
    transfer_destination_hint: Optional[str] = None
    appointment_booked: bool = False

    @property
    def transfer_attempted(self) -> bool:
        return self.transfer_destination_hint is not None


def parse_timestamp(value) -> Optional[datetime]:
    """ISO-8601 → datetime; None, если строка пустая или битая"""
    if not value or not isinstance(value, str):
        return None
    text = value.strip()
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def get_call_duration(call: dict) -> float:
    """Явная длительность, иначе endedAt - startedAt, иначе 0"""
    explicit = call.get('duration')
    if isinstance(explicit, (int, float)) and not isinstance(explicit, bool) and explicit > 0:
        return float(explicit)

    started = parse_timestamp(call.get('startedAt'))
    ended = parse_timestamp(call.get('endedAt'))
    if started is None or ended is None:
        return 0.0
    try:
        seconds = (ended - started).total_seconds()
    except TypeError:
        # naive и aware вперемешку
        return 0.0
    return max(seconds, 0.0)


def normalize_ended_reason(value) -> str:
    reason = str(value or '').strip()
    return reason if reason in ENDED_REASONS else UNKNOWN_REASON


def _iter_transfer_tool_calls(call: dict) -> Iterator[dict]:
    """Вызовы инструментов перевода: сначала верхний уровень, затем сообщения"""
    sources = []
    if isinstance(call.get('toolCalls'), list):
        sources.append(call['toolCalls'])
    messages = call.get('messages')
    if isinstance(messages, list):
        for msg in messages:
            if isinstance(msg, dict) and isinstance(msg.get('toolCalls'), list):
                sources.append(msg['toolCalls'])

    for tool_calls in sources:
        for tool in tool_calls:
            if not isinstance(tool, dict):
                continue
            function = tool.get('function') or {}
            if isinstance(function, dict) and function.get('name') in TRANSFER_TOOL_NAMES:
                yield function


def _destination_from_arguments(arguments: Any) -> Optional[str]:
    """
    Достаёт направление из аргументов инструмента.

    None — аргументы разобраны, но направления нет.
    UNPARSEABLE_DESTINATION — аргументы не разобрать.
    """
    if isinstance(arguments, str):
        try:
            arguments = json.loads(arguments)
        except ValueError:
            return UNPARSEABLE_DESTINATION
    if not isinstance(arguments, dict):
        return UNPARSEABLE_DESTINATION
    for key in TRANSFER_ARGUMENT_KEYS:
        value = arguments.get(key)
        if value is not None and str(value).strip():
            return str(value).strip()
    return None


def get_transfer_destination_hint(call: dict) -> Optional[str]:
    for function in _iter_transfer_tool_calls(call):
        if function.get('arguments') is None:
            continue
        destination = _destination_from_arguments(function['arguments'])
        if destination is not None:
            return destination
    return None


def parse_success_evaluation(call: dict) -> dict:
    """analysis.successEvaluation может быть JSON-строкой или объектом"""
    analysis = call.get('analysis') or {}
    if not isinstance(analysis, dict):
        return {}
    raw = analysis.get('successEvaluation')
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            return {}
    return raw if isinstance(raw, dict) else {}


def is_success_flag(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or '').strip().lower() in ('yes', 'true')


def _structured_outputs(call: dict) -> dict:
    analysis = call.get('analysis') or {}
    if not isinstance(analysis, dict):
        return {}
    artifact = analysis.get('artifact') or {}
    if not isinstance(artifact, dict):
        return {}
    outputs = artifact.get('structuredOutputs') or {}
    return outputs if isinstance(outputs, dict) else {}


def structured_output_booked(call: dict) -> bool:
    """Структурированный вывод «Appointment Booked» с результатом true"""
    outputs = _structured_outputs(call)
    by_name = outputs.get(APPOINTMENT_BOOKED_OUTPUT)
    if isinstance(by_name, dict) and by_name.get('result') is True:
        return True
    for output in outputs.values():
        if isinstance(output, dict) and output.get('name') == APPOINTMENT_BOOKED_OUTPUT:
            if output.get('result') is True:
                return True
    return False


def success_evaluation_booked(call: dict) -> bool:
    """
    Успешная оценка засчитывается как запись, только если итог описывает
    назначенную встречу и не упоминает перевод: успешный перевод тоже
    помечается call_success=yes.
    """
    evaluation = parse_success_evaluation(call)
    if not is_success_flag(evaluation.get('call_success')):
        return False
    outcome = str(evaluation.get('final_outcome') or '').lower()
    return (
        any(term in outcome for term in APPOINTMENT_TERMS)
        and any(term in outcome for term in CONFIRMED_TERMS)
        and 'transferred' not in outcome
    )


def is_appointment_booked(call: dict) -> bool:
    return structured_output_booked(call) or success_evaluation_booked(call)


def message_text(msg) -> str:
    """Текст сообщения: платформа пишет его в message или content"""
    if not isinstance(msg, dict):
        return ''
    text = msg.get('message')
    if text is None:
        text = msg.get('content')
    return text if isinstance(text, str) else ''


def extract_email(call: dict) -> Optional[str]:
    """
    Email клиента. Порядок источников: structuredData, structuredOutputs,
    транскрипт (последний адрес), summary, сообщения, customer.email.
    """
    analysis = call.get('analysis') if isinstance(call.get('analysis'), dict) else {}
    structured = analysis.get('structuredData') if isinstance(analysis.get('structuredData'), dict) else {}
    if structured.get('email'):
        return str(structured['email'])
    parameters = structured.get('parameters')
    if isinstance(parameters, dict) and parameters.get('email'):
        return str(parameters['email'])

    for output in _structured_outputs(call).values():
        if isinstance(output, dict) and output.get('name') in EMAIL_OUTPUT_NAMES and output.get('result'):
            return str(output['result'])

    transcript = call.get('transcript')
    if isinstance(transcript, str):
        matches = EMAIL_RE.findall(transcript)
        if matches:
            # обычно последний адрес диктует клиент
            return matches[-1]

    summary = call.get('summary')
    if isinstance(summary, str):
        match = EMAIL_RE.search(summary)
        if match:
            return match.group(0)

    messages = call.get('messages')
    if isinstance(messages, list):
        for msg in messages:
            match = EMAIL_RE.search(message_text(msg))
            if match:
                return match.group(0)

    customer = call.get('customer')
    if isinstance(customer, dict) and customer.get('email'):
        return str(customer['email'])
    return None


def extract_features(call: dict) -> Features:
    """Признаки одного звонка; всегда возвращает полный набор"""
    if not isinstance(call, dict):
        logger.warning('Запись звонка не является объектом: %r', type(call).__name__)
        return Features()
    return Features(
        duration_seconds=get_call_duration(call),
        ended_reason=normalize_ended_reason(call.get('endedReason')),
        transfer_destination_hint=get_transfer_destination_hint(call),
        appointment_booked=is_appointment_booked(call),
    )
