"""
Таксономия исходов звонка.

Классификация — размеченное объединение: один класс на категорию, каждый
несёт только своё подполе. Поэтому «spam с transfer_reason» невозможен по
построению. Записи неизменяемы (frozen): переклассификация создаёт новую.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

BOOKING_COMPLETED = 'booking-completed'
BOOKING_ABANDONED = 'booking-abandoned'
BOOKING_TRANSFERRED = 'booking-transferred'
TRANSFERRED = 'transferred'
SPAM = 'spam'
HANGUP = 'hangup'
UNKNOWN = 'unknown'

# Шесть категорий, которые может вернуть модель
MODEL_CATEGORIES = (
    BOOKING_COMPLETED,
    BOOKING_ABANDONED,
    BOOKING_TRANSFERRED,
    TRANSFERRED,
    SPAM,
    HANGUP,
)
ALL_CATEGORIES = MODEL_CATEGORIES + (UNKNOWN,)

HANGUP_HIGH_VALUE = 'high-value'
HANGUP_MODERATE = 'moderate'
HANGUP_LOW_VALUE = 'low-value'
HANGUP_TYPES = (HANGUP_HIGH_VALUE, HANGUP_MODERATE, HANGUP_LOW_VALUE)

BOOKING_ATTEMPT = 'booking-attempt'
BOOKING_NONE = 'none'


def booking_status_for(category: str) -> str:
    """booking-attempt, если категория начинается с booking"""
    return BOOKING_ATTEMPT if (category or '').startswith('booking') else BOOKING_NONE


@dataclass(frozen=True)
class _Classification:
    category = UNKNOWN

    @property
    def booking_status(self) -> str:
        return booking_status_for(self.category)

    @property
    def is_booking(self) -> bool:
        return self.booking_status == BOOKING_ATTEMPT

    @property
    def transfer_reason(self) -> Optional[str]:
        return None

    @property
    def spam_type(self) -> Optional[str]:
        return None

    @property
    def hangup_type(self) -> Optional[str]:
        return None

    @property
    def note(self) -> Optional[str]:
        return None

    def to_dict(self) -> dict:
        """Форма, в которой классификация лежит в хранилище"""
        data = {
            'category': self.category,
            'hangupType': self.hangup_type,
            'transferReason': self.transfer_reason,
            'spamType': self.spam_type,
            'bookingStatus': self.booking_status,
        }
        if self.note:
            data['note'] = self.note
        return data


@dataclass(frozen=True)
class BookingCompleted(_Classification):
    category = BOOKING_COMPLETED


@dataclass(frozen=True)
class BookingAbandoned(_Classification):
    category = BOOKING_ABANDONED


@dataclass(frozen=True)
class BookingTransferred(_Classification):
    category = BOOKING_TRANSFERRED
    reason: Optional[str] = None

    @property
    def transfer_reason(self) -> Optional[str]:
        return self.reason


@dataclass(frozen=True)
class Transferred(_Classification):
    category = TRANSFERRED
    reason: Optional[str] = None

    @property
    def transfer_reason(self) -> Optional[str]:
        return self.reason


@dataclass(frozen=True)
class Spam(_Classification):
    category = SPAM
    kind: Optional[str] = None

    @property
    def spam_type(self) -> Optional[str]:
        return self.kind


@dataclass(frozen=True)
class Hangup(_Classification):
    category = HANGUP
    value: Optional[str] = None
    # Пояснение правила (например, hung-up-during-transfer-to-sales)
    rule_note: Optional[str] = None

    def __post_init__(self):
        if self.value is not None and self.value not in HANGUP_TYPES:
            raise ValueError(f'Недопустимый hangup_type: {self.value!r}')

    @property
    def hangup_type(self) -> Optional[str]:
        return self.value

    @property
    def note(self) -> Optional[str]:
        return self.rule_note


@dataclass(frozen=True)
class Unknown(_Classification):
    category = UNKNOWN


Classification = Union[
    BookingCompleted,
    BookingAbandoned,
    BookingTransferred,
    Transferred,
    Spam,
    Hangup,
    Unknown,
]


@dataclass(frozen=True)
class NeedsExternalJudgment:
    """Правила не смогли решить: звонок передаётся в LLM"""
    reason: str


def _clean(value) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    if not text or text.lower() in ('null', 'none'):
        return None
    return text


def classification_from_fields(category, hangup_type=None, transfer_reason=None,
                               spam_type=None, note=None) -> Classification:
    """
    Строит вариант по плоским полям (ответ модели или запись хранилища).

    Поля, не относящиеся к категории, отбрасываются. Неизвестная категория
    превращается в Unknown.
    """
    category = (_clean(category) or UNKNOWN).lower()
    if category == BOOKING_COMPLETED:
        return BookingCompleted()
    if category == BOOKING_ABANDONED:
        return BookingAbandoned()
    if category == BOOKING_TRANSFERRED:
        return BookingTransferred(_clean(transfer_reason))
    if category == TRANSFERRED:
        return Transferred(_clean(transfer_reason))
    if category == SPAM:
        return Spam(_clean(spam_type))
    if category == HANGUP:
        value = _clean(hangup_type)
        value = value.lower() if value else None
        return Hangup(value if value in HANGUP_TYPES else None, _clean(note))
    return Unknown()


def classification_from_dict(data) -> Classification:
    """Обратное к to_dict(): читает запись хранилища"""
    if not isinstance(data, dict):
        return Unknown()
    return classification_from_fields(
        data.get('category'),
        hangup_type=data.get('hangupType'),
        transfer_reason=data.get('transferReason'),
        spam_type=data.get('spamType'),
        note=data.get('note'),
    )
