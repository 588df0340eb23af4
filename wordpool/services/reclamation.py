"""
Фоновое освобождение просроченных слов.

Раз в sweep_interval_seconds возвращает в пул все выданные слова,
удерживаемые дольше таймаута. Ошибка одного прохода только логируется,
следующий тик повторяет попытку (проход идемпотентен).
"""

import asyncio
import logging
from typing import Optional

from wordpool.services.assignment import Clock, ClaimTimeoutPolicy, utc_now
from wordpool.services.word_store import WordStore

logger = logging.getLogger(__name__)


class ReclamationScheduler:
    """
    Периодический sweep хранилища.

    С обработчиками запросов делит только хранилище, своего
    изменяемого состояния наружу не отдаёт.
    """

    def __init__(
        self,
        store: WordStore,
        policy: ClaimTimeoutPolicy,
        interval_seconds: float,
        clock: Clock = utc_now,
    ) -> None:
        self.store = store
        self.policy = policy
        self.interval_seconds = interval_seconds
        self.clock = clock
        self.sweeps_done = 0
        self.sweeps_failed = 0
        self._task: Optional[asyncio.Task] = None

    async def sweep_once(self) -> int:
        """
        Один проход: освобождает все просроченные выдачи разом.

        Returns:
            int: количество освобождённых слов
        """
        cutoff = self.policy.cutoff(self.clock())
        reclaimed = await self.store.reclaim_stale(cutoff)
        if reclaimed:
            logger.info(f"Освобождено слов: {reclaimed}")
        return reclaimed

    async def tick(self) -> None:
        """Проход с изоляцией ошибок: исключение не выходит наружу."""
        try:
            await self.sweep_once()
            self.sweeps_done += 1
        except Exception as e:
            self.sweeps_failed += 1
            logger.exception(f"Ошибка освобождения слов: {e}")

    async def _run(self) -> None:
        logger.info(
            f"Sweep запущен: интервал {self.interval_seconds}с, "
            f"таймаут {self.policy.timeout.total_seconds():.0f}с"
        )
        while True:
            await asyncio.sleep(self.interval_seconds)
            await self.tick()

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info(
            f"Sweep остановлен. Проходов: {self.sweeps_done}, "
            f"ошибок: {self.sweeps_failed}"
        )
