"""
Хранилище слов в PostgreSQL (asyncpg).

Схема — одна таблица words:
    - seq_index уникален (порядок выдачи)
    - частичный уникальный индекс по holder для выданных слов:
      у участника не может быть двух активных слов даже при гонке
      двух его запросов
    - CHECK связывает state, holder и claimed_at
    - частичный индекс по claimed_at для sweep

Ошибки asyncpg и сети переводятся в StoreError.

Выдача слова — один условный UPDATE по id и ожидаемому состоянию.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Optional, Sequence

import asyncpg

from wordpool.config import Settings
from wordpool.errors import StoreError, StoreUnavailableError
from wordpool.schemas import SYSTEM_HOLDER, WordRecord, WordState
from wordpool.services.word_store import WordStore

logger = logging.getLogger(__name__)

_COLUMNS = "id, word, seq_index, state, holder, claimed_at"

_SCHEMA_SQL = f"""
CREATE TABLE IF NOT EXISTS words (
    id SERIAL PRIMARY KEY,
    word TEXT NOT NULL,
    seq_index INT NOT NULL UNIQUE,
    state TEXT NOT NULL DEFAULT 'unassigned'
        CHECK (state IN ('unassigned', 'assigned')),
    holder TEXT NOT NULL DEFAULT '{SYSTEM_HOLDER}',
    claimed_at TIMESTAMPTZ,
    created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    CHECK ((state = 'assigned') = (claimed_at IS NOT NULL)),
    CHECK (state = 'unassigned' OR holder <> '{SYSTEM_HOLDER}')
);
CREATE UNIQUE INDEX IF NOT EXISTS words_active_holder_idx
    ON words (holder) WHERE state = 'assigned';
CREATE INDEX IF NOT EXISTS words_unassigned_idx
    ON words (seq_index) WHERE state = 'unassigned';
CREATE INDEX IF NOT EXISTS words_claimed_at_idx
    ON words (claimed_at) WHERE state = 'assigned';
"""


class PostgresWordStore(WordStore):
    """
    Хранилище слов поверх пула соединений asyncpg.

    Создаётся через PostgresWordStore.connect(settings), который
    дожидается готовности БД.
    """

    def __init__(self, pool: asyncpg.Pool) -> None:
        self._pool = pool

    @classmethod
    async def connect(cls, settings: Settings) -> "PostgresWordStore":
        """
        Создаёт пул соединений, повторяя попытки пока БД не поднимется.

        Raises:
            StoreUnavailableError: БД недоступна после connect_attempts попыток
        """
        attempts = settings.connect_attempts
        for attempt in range(1, attempts + 1):
            try:
                pool = await asyncpg.create_pool(**settings.postgres_kwargs())
                logger.info("База данных доступна")
                return cls(pool)
            except (OSError, asyncpg.PostgresError) as e:
                logger.warning(
                    f"База данных недоступна. Попытка {attempt}/{attempts}: {e}"
                )
                await asyncio.sleep(settings.connect_delay_seconds)

        raise StoreUnavailableError(
            f"PostgreSQL {settings.postgres_host}:{settings.postgres_port} "
            f"недоступен после {attempts} попыток"
        )

    async def ensure_schema(self) -> None:
        """Создаёт таблицу и индексы, если их ещё нет."""
        async with _translate_errors("ensure_schema"), self._pool.acquire() as conn:
            await conn.execute(_SCHEMA_SQL)
        logger.info("Схема таблицы words проверена")

    async def bulk_load(self, words: Sequence[str]) -> int:
        records = [(text, index) for index, text in enumerate(words)]
        async with _translate_errors("bulk_load"), self._pool.acquire() as conn:
            async with conn.transaction():
                await conn.copy_records_to_table(
                    "words",
                    records=records,
                    columns=["word", "seq_index"],
                )
        logger.info(f"Загружено слов: {len(records)}")
        return len(records)

    async def count(self) -> int:
        async with _translate_errors("count"):
            return await self._pool.fetchval("SELECT COUNT(*) FROM words")

    async def peek_sample(self, limit: int) -> list[WordRecord]:
        async with _translate_errors("peek_sample"):
            rows = await self._pool.fetch(
                f"SELECT {_COLUMNS} FROM words ORDER BY seq_index ASC LIMIT $1",
                limit,
            )
        return [_to_record(row) for row in rows]

    async def reset_all(self) -> int:
        async with _translate_errors("reset_all"):
            status = await self._pool.execute(
                "UPDATE words SET state = 'unassigned', holder = $1, claimed_at = NULL",
                SYSTEM_HOLDER,
            )
        return _affected(status)

    async def active_word(self, participant_id: str) -> Optional[WordRecord]:
        async with _translate_errors(f"active_word participant={participant_id}"):
            row = await self._pool.fetchrow(
                f"SELECT {_COLUMNS} FROM words "
                "WHERE holder = $1 AND state = 'assigned' LIMIT 1",
                participant_id,
            )
        return _to_record(row) if row else None

    async def next_unassigned(self) -> Optional[WordRecord]:
        async with _translate_errors("next_unassigned"):
            row = await self._pool.fetchrow(
                f"SELECT {_COLUMNS} FROM words "
                "WHERE state = 'unassigned' ORDER BY seq_index ASC LIMIT 1"
            )
        return _to_record(row) if row else None

    async def try_claim(
        self,
        word_id: int,
        participant_id: str,
        claimed_at: datetime,
    ) -> Optional[WordRecord]:
        try:
            async with _translate_errors(f"try_claim id={word_id}"):
                row = await self._pool.fetchrow(
                    f"""
                    UPDATE words
                       SET state = 'assigned', holder = $2, claimed_at = $3
                     WHERE id = $1
                       AND state = 'unassigned'
                       AND $2 <> '{SYSTEM_HOLDER}'
                       AND NOT EXISTS (
                           SELECT 1 FROM words
                            WHERE holder = $2 AND state = 'assigned'
                       )
                    RETURNING {_COLUMNS}
                    """,
                    word_id,
                    participant_id,
                    claimed_at,
                )
        except StoreError as e:
            if not isinstance(e.__cause__, asyncpg.UniqueViolationError):
                raise
            # Параллельный запрос того же участника успел первым
            logger.info(f"Гонка выдачи: участник {participant_id} уже получил слово")
            return None

        return _to_record(row) if row else None

    async def reclaim_stale(self, cutoff: datetime) -> int:
        async with _translate_errors("reclaim_stale"):
            status = await self._pool.execute(
                """
                UPDATE words
                   SET state = 'unassigned', holder = $1, claimed_at = NULL
                 WHERE state = 'assigned' AND claimed_at < $2
                """,
                SYSTEM_HOLDER,
                cutoff,
            )
        return _affected(status)

    async def close(self) -> None:
        await self._pool.close()


@asynccontextmanager
async def _translate_errors(operation: str) -> AsyncIterator[None]:
    """Ошибки asyncpg и соединения -> StoreError с именем операции."""
    try:
        yield
    except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as e:
        raise StoreError(f"Ошибка хранилища ({operation}): {e}") from e


def _to_record(row: asyncpg.Record) -> WordRecord:
    return WordRecord(
        id=row["id"],
        text=row["word"],
        sequence_index=row["seq_index"],
        state=WordState(row["state"]),
        holder=row["holder"],
        claimed_at=row["claimed_at"],
    )


def _affected(status: str) -> int:
    """Количество строк из статуса команды: "UPDATE 3" -> 3."""
    try:
        return int(status.rsplit(" ", 1)[-1])
    except ValueError:
        return 0
