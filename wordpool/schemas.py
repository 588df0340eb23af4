"""
Схемы данных сервиса раздачи слов.

Включает:
    - Внутренние dataclass'ы (запись слова, результаты операций)
    - Pydantic модели для ответов API
"""

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

# Значение holder для свободного слова
SYSTEM_HOLDER = "SYSTEM"


# =============================================================================
# Внутренние структуры
# =============================================================================


class WordState(str, enum.Enum):
    """Состояние слова. Терминального состояния нет: верификация запись не меняет."""

    UNASSIGNED = "unassigned"
    ASSIGNED = "assigned"


@dataclass(frozen=True)
class WordRecord:
    """
    Запись слова в пуле.

    Attributes:
        id: стабильный идентификатор
        text: само слово
        sequence_index: позиция в исходном тексте (порядок выдачи)
        state: свободно / выдано
        holder: участник, держащий слово, или SYSTEM
        claimed_at: момент выдачи (UTC), None для свободного слова
    """

    id: int
    text: str
    sequence_index: int
    state: WordState = WordState.UNASSIGNED
    holder: str = SYSTEM_HOLDER
    claimed_at: Optional[datetime] = None

    @property
    def is_assigned(self) -> bool:
        return self.state is WordState.ASSIGNED


@dataclass(frozen=True)
class ClaimResult:
    """
    Результат попытки получить слово.

    already_has_word=True  — у участника уже есть активное слово
    word=None (и False)    — пул исчерпан
    """

    already_has_word: bool
    word: Optional[WordRecord] = None


class AssignmentState(str, enum.Enum):
    ASSIGNED = "assigned"
    EXPIRED = "expired"
    NO_ASSIGNMENT = "no_assignment"


@dataclass(frozen=True)
class AssignmentStatus:
    state: AssignmentState
    word: Optional[WordRecord] = None


@dataclass(frozen=True)
class VerificationResult:
    """
    Результат сравнения распознанного текста с заявленным словом.

    Attributes:
        matched: точное совпадение (с учётом регистра, после trim)
        extracted_text: распознанный текст после trim
        claimed_text: слово, которое заявил участник
    """

    matched: bool
    extracted_text: str
    claimed_text: str


# =============================================================================
# Pydantic модели для API
# =============================================================================


class ClaimResponse(BaseModel):
    word: str
    id: int


class AssignmentResponse(BaseModel):
    status: AssignmentState
    message: str
    word: Optional[str] = None
    id: Optional[int] = None


class VerifyResponse(BaseModel):
    """
    Ответ проверки фото.

    Attributes:
        message: текст для отображения участнику
        word: заявленное слово (эхо)
        extracted_text: что распознал OCR
        matched: совпало ли слово
    """

    message: str
    word: str
    extracted_text: str
    matched: bool


class CountResponse(BaseModel):
    totalRecords: int


class MessageResponse(BaseModel):
    message: str


class WordSample(BaseModel):
    id: int
    word: str
    sequence_index: int
    state: WordState
    holder: str
    claimed_at: Optional[datetime] = None


class SampleResponse(BaseModel):
    total: int = Field(description="Количество записей в выборке")
    words: list[WordSample] = []
