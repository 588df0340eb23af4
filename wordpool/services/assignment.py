"""
Движок выдачи слов.

Выдаёт участнику следующее свободное слово (минимальный sequence_index),
гарантируя не больше одного активного слова на участника.

Алгоритм claim_next_word:
    0. Освобождение просроченных выдач (та же политика, что у sweep)
    1. У участника уже есть слово -> already_has_word
    2. Выбор свободного слова с минимальным sequence_index
    3. Условная запись try_claim; при проигрыше гонки — снова шаг 2
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from wordpool.errors import InvalidParticipantError
from wordpool.schemas import (
    SYSTEM_HOLDER,
    AssignmentState,
    AssignmentStatus,
    ClaimResult,
    WordRecord,
)
from wordpool.services.word_store import WordStore

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ClaimTimeoutPolicy:
    """
    Единая политика таймаута выдачи.

    Слово считается просроченным, если claimed_at < now - timeout.
    Используется и при проверке на чтение, и фоновым sweep.
    """

    timeout: timedelta

    def cutoff(self, now: datetime) -> datetime:
        return now - self.timeout

    def is_expired(self, record: WordRecord, now: datetime) -> bool:
        return record.is_assigned and record.claimed_at < self.cutoff(now)


class AssignmentEngine:
    """
    Выдача слов участникам.

    Args:
        store: хранилище слов
        policy: политика таймаута выдачи
        clock: источник текущего времени (UTC)
    """

    def __init__(
        self,
        store: WordStore,
        policy: ClaimTimeoutPolicy,
        clock: Clock = utc_now,
    ) -> None:
        self.store = store
        self.policy = policy
        self.clock = clock

    async def claim_next_word(self, participant_id: str) -> ClaimResult:
        """
        Выдаёт участнику следующее свободное слово.

        Args:
            participant_id: идентификатор участника

        Returns:
            ClaimResult: (True, None) — слово уже есть,
                         (False, None) — пул исчерпан,
                         (False, word) — слово выдано

        Raises:
            InvalidParticipantError: id пустой или равен SYSTEM
        """
        if not participant_id or participant_id == SYSTEM_HOLDER:
            raise InvalidParticipantError(
                f"Недопустимый идентификатор участника: '{participant_id}'"
            )

        now = self.clock()

        # 0. Просроченные выдачи возвращаются в пул до выбора
        expired = await self.store.reclaim_stale(self.policy.cutoff(now))
        if expired:
            logger.info(f"При выдаче освобождено просроченных слов: {expired}")

        # 1. Эксклюзивность участника
        if await self.store.active_word(participant_id) is not None:
            logger.info(f"Участник {participant_id} уже держит слово")
            return ClaimResult(already_has_word=True)

        while True:
            # 2. Следующее свободное слово
            candidate = await self.store.next_unassigned()
            if candidate is None:
                logger.info(f"Пул исчерпан, участник {participant_id} без слова")
                return ClaimResult(already_has_word=False)

            # 3. Условная запись: выигрывает ровно один запрос
            claimed = await self.store.try_claim(candidate.id, participant_id, now)
            if claimed is not None:
                logger.info(
                    f"Слово выдано: участник={participant_id}, "
                    f"id={claimed.id}, индекс={claimed.sequence_index}"
                )
                return ClaimResult(already_has_word=False, word=claimed)

            # Гонку проиграли: либо слово забрал другой участник,
            # либо параллельный запрос этого же участника
            if await self.store.active_word(participant_id) is not None:
                return ClaimResult(already_has_word=True)

            logger.debug(f"Слово id={candidate.id} занято, повторный выбор")

    async def current_assignment(self, participant_id: str) -> AssignmentStatus:
        """
        Текущее слово участника с проверкой таймаута на чтение.

        Просроченное слово сразу освобождается.

        Returns:
            AssignmentStatus: assigned / expired / no_assignment
        """
        now = self.clock()
        record: Optional[WordRecord] = await self.store.active_word(participant_id)

        if record is None:
            return AssignmentStatus(AssignmentState.NO_ASSIGNMENT)

        if self.policy.is_expired(record, now):
            reclaimed = await self.store.reclaim_stale(self.policy.cutoff(now))
            logger.info(
                f"Слово участника {participant_id} истекло (id={record.id}), "
                f"освобождено: {reclaimed}"
            )
            return AssignmentStatus(AssignmentState.EXPIRED, record)

        return AssignmentStatus(AssignmentState.ASSIGNED, record)
