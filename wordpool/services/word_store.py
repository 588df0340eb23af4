"""
Хранилище слов: общий интерфейс и in-memory реализация.

Хранилище — единственный разделяемый изменяемый ресурс сервиса.
Все изменения идут через условные атомарные операции над записью
(claim, reclaim, reset), состояние записей между запросами не кэшируется.

Реализации:
    - MemoryWordStore: словарь в памяти под threading.Lock
      (локальный запуск и тесты)
    - PostgresWordStore: asyncpg, см. postgres_store.py
"""

import abc
import logging
import threading
from dataclasses import replace
from datetime import datetime
from typing import Optional, Sequence

from wordpool.schemas import SYSTEM_HOLDER, WordRecord, WordState

logger = logging.getLogger(__name__)


class WordStore(abc.ABC):
    """
    Интерфейс хранилища слов.

    Все методы асинхронные: каждый вызов — точка ввода-вывода,
    на которой могут чередоваться конкурентные запросы.
    """

    @abc.abstractmethod
    async def bulk_load(self, words: Sequence[str]) -> int:
        """
        Вставляет по одной записи на слово, sequence_index = позиция.

        Вызывается только для пустого хранилища (проверяет вызывающий).

        Returns:
            int: количество вставленных записей
        """

    @abc.abstractmethod
    async def count(self) -> int:
        """Общее количество записей в любом состоянии."""

    @abc.abstractmethod
    async def peek_sample(self, limit: int) -> list[WordRecord]:
        """Первые limit записей по sequence_index (диагностика)."""

    @abc.abstractmethod
    async def reset_all(self) -> int:
        """Возвращает все записи в исходное свободное состояние."""

    @abc.abstractmethod
    async def active_word(self, participant_id: str) -> Optional[WordRecord]:
        """Выданное участнику слово или None."""

    @abc.abstractmethod
    async def next_unassigned(self) -> Optional[WordRecord]:
        """Свободная запись с минимальным sequence_index или None."""

    @abc.abstractmethod
    async def try_claim(
        self,
        word_id: int,
        participant_id: str,
        claimed_at: datetime,
    ) -> Optional[WordRecord]:
        """
        Условная выдача слова.

        Срабатывает только если запись всё ещё свободна И у участника
        нет другого выданного слова. Обе проверки и запись — одна
        атомарная операция.

        Returns:
            WordRecord: выданная запись
            None: условие не выполнено (гонку выиграл другой запрос)
        """

    @abc.abstractmethod
    async def reclaim_stale(self, cutoff: datetime) -> int:
        """
        Освобождает все выданные записи с claimed_at < cutoff.

        Returns:
            int: количество освобождённых записей
        """

    async def close(self) -> None:
        """Освобождает ресурсы хранилища."""


class MemoryWordStore(WordStore):
    """
    Хранилище слов в памяти процесса.

    Особенности:
        - Без персистентности (перезапуск = пустой пул)
        - Каждая операция целиком выполняется под threading.Lock,
          внутри блокировки нет await
    """

    def __init__(self) -> None:
        # {id: WordRecord}, id выдаются по порядку начиная с 1
        self._records: dict[int, WordRecord] = {}
        self._lock = threading.Lock()

    async def bulk_load(self, words: Sequence[str]) -> int:
        with self._lock:
            next_id = len(self._records) + 1
            start_index = len(self._records)
            for offset, text in enumerate(words):
                record = WordRecord(
                    id=next_id + offset,
                    text=text,
                    sequence_index=start_index + offset,
                )
                self._records[record.id] = record

        logger.info(f"Загружено слов: {len(words)}")
        return len(words)

    async def count(self) -> int:
        with self._lock:
            return len(self._records)

    async def peek_sample(self, limit: int) -> list[WordRecord]:
        with self._lock:
            ordered = sorted(self._records.values(), key=lambda r: r.sequence_index)
        return ordered[:limit]

    async def reset_all(self) -> int:
        with self._lock:
            for word_id, record in self._records.items():
                self._records[word_id] = _released(record)
            return len(self._records)

    async def active_word(self, participant_id: str) -> Optional[WordRecord]:
        with self._lock:
            return self._find_active(participant_id)

    async def next_unassigned(self) -> Optional[WordRecord]:
        with self._lock:
            free = [r for r in self._records.values() if not r.is_assigned]
        if not free:
            return None
        return min(free, key=lambda r: r.sequence_index)

    async def try_claim(
        self,
        word_id: int,
        participant_id: str,
        claimed_at: datetime,
    ) -> Optional[WordRecord]:
        with self._lock:
            if participant_id == SYSTEM_HOLDER:
                return None

            record = self._records.get(word_id)
            if record is None or record.is_assigned:
                return None
            if self._find_active(participant_id) is not None:
                return None

            claimed = replace(
                record,
                state=WordState.ASSIGNED,
                holder=participant_id,
                claimed_at=claimed_at,
            )
            self._records[word_id] = claimed
            return claimed

    async def reclaim_stale(self, cutoff: datetime) -> int:
        reclaimed = 0
        with self._lock:
            for word_id, record in self._records.items():
                if record.is_assigned and record.claimed_at < cutoff:
                    self._records[word_id] = _released(record)
                    reclaimed += 1
        return reclaimed

    def _find_active(self, participant_id: str) -> Optional[WordRecord]:
        # Вызывается только под self._lock
        for record in self._records.values():
            if record.is_assigned and record.holder == participant_id:
                return record
        return None


def _released(record: WordRecord) -> WordRecord:
    """Запись в исходном свободном состоянии (id, text, индекс сохраняются)."""
    return replace(
        record,
        state=WordState.UNASSIGNED,
        holder=SYSTEM_HOLDER,
        claimed_at=None,
    )
