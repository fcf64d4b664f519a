# call_analyzer/reports/routing_status.py
"""
Статус маршрутизации звонка.

Каждый звонок попадает ровно в один из пяти статусов. Правила проверяются
по порядку, последнее правило срабатывает всегда, поэтому статусы образуют
разбиение множества звонков.
"""

from classification_module.categories import SPAM as SPAM_CATEGORY
from classification_module.features import ASSISTANT_FORWARDED, CUSTOMER_ENDED, message_text

ROUTED = 'routed'
HANGUP_BEFORE_ROUTE = 'hangup-before-route'
SPAM_LIKELY = 'spam-likely'
SPAM = 'spam'
NOT_ROUTED = 'not-routed'

ROUTING_STATUSES = (ROUTED, NOT_ROUTED, HANGUP_BEFORE_ROUTE, SPAM, SPAM_LIKELY)

SPAM_LIKELY_MAX_SECONDS = 10
CUSTOMER_ROLES = ('user', 'customer')


def has_customer_speech(messages):
    """Есть хотя бы одна непустая реплика клиента"""
    if not isinstance(messages, list):
        return False
    for msg in messages:
        if isinstance(msg, dict) and msg.get('role') in CUSTOMER_ROLES:
            if message_text(msg).strip():
                return True
    return False


# (статус, условие(features, category, messages)); первое совпадение
ROUTING_RULES = [
    (ROUTED, lambda f, category, messages: f.ended_reason == ASSISTANT_FORWARDED),
    (HANGUP_BEFORE_ROUTE, lambda f, category, messages: f.transfer_attempted and f.ended_reason == CUSTOMER_ENDED),
    (SPAM_LIKELY, lambda f, category, messages: (
        f.duration_seconds <= SPAM_LIKELY_MAX_SECONDS and not has_customer_speech(messages)
    )),
    (SPAM, lambda f, category, messages: category == SPAM_CATEGORY),
    (NOT_ROUTED, lambda f, category, messages: True),
]


def resolve_routing_status(features, category, messages):
    for status, predicate in ROUTING_RULES:
        if predicate(features, category, messages):
            return status
    return NOT_ROUTED
