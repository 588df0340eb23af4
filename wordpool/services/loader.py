"""
Первичное заполнение пула слов из исходного текста.

Выполняется при старте, только если хранилище пустое.
Слова — токены текста в верхнем регистре, разделённые пробелами;
порядок в тексте задаёт sequence_index.
"""

import logging
import time
from pathlib import Path

from wordpool.services.word_store import WordStore

logger = logging.getLogger(__name__)

# Сколько записей показывать в логе, если пул уже заполнен
SAMPLE_SIZE = 10


def tokenize(text: str) -> list[str]:
    """Разбивает текст на слова: верхний регистр, split по пробельным символам."""
    return text.upper().split()


async def populate_if_empty(store: WordStore, source_path: str) -> int:
    """
    Заполняет хранилище словами из файла, если оно пустое.

    Отсутствующий файл — не фатально: сервис стартует с пустым пулом.

    Args:
        store: хранилище слов
        source_path: путь к исходному тексту (UTF-8)

    Returns:
        int: количество загруженных слов (0 если загрузка не нужна)
    """
    existing = await store.count()
    if existing > 0:
        sample = await store.peek_sample(SAMPLE_SIZE)
        logger.info(f"Пул уже заполнен: {existing} слов")
        logger.info(
            "Первые слова: " + ", ".join(f"{r.sequence_index}:{r.text}" for r in sample)
        )
        return 0

    path = Path(source_path)
    if not path.is_file():
        logger.error(f"Исходный текст не найден: {path}. Пул остаётся пустым")
        return 0

    start = time.perf_counter()
    words = tokenize(path.read_text(encoding="utf-8"))
    loaded = await store.bulk_load(words)
    duration_ms = int((time.perf_counter() - start) * 1000)

    logger.info(f"Пул заполнен: {loaded} слов из {path.name} за {duration_ms}ms")
    return loaded
