"""
Общие фикстуры тестов.

Tesseract и PostgreSQL не используются: OCR заменён FakeReader,
который «распознаёт» байты файла как UTF-8 текст, время — FakeClock.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

import pytest

from wordpool.config import Settings
from wordpool.services.ocr_reader import OCRText
from wordpool.services.word_store import MemoryWordStore

START = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    """Управляемые часы: время двигается только через advance()."""

    def __init__(self, now: datetime = START) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeReader:
    """
    OCR-заглушка: текстом считается содержимое файла.

    Запоминает пути, которые ей передали, чтобы тесты проверяли удаление.
    """

    def __init__(self, error: Optional[Exception] = None, delete_first: bool = False) -> None:
        self.error = error
        self.delete_first = delete_first
        self.paths: list[Path] = []

    def read(self, image_path: str) -> OCRText:
        path = Path(image_path)
        self.paths.append(path)
        assert path.exists()

        if self.delete_first:
            path.unlink()
        if self.error is not None:
            raise self.error

        return OCRText(text=path.read_bytes().decode("utf-8"), confidence=90.0)

    def version(self) -> str:
        return "fake-5.0"


class YieldingStore(MemoryWordStore):
    """
    Хранилище в памяти, которое отдаёт управление перед каждой операцией.

    Так конкурентные claim действительно чередуются между выбором
    слова и условной записью.
    """

    async def next_unassigned(self):
        await asyncio.sleep(0)
        return await super().next_unassigned()

    async def try_claim(self, word_id, participant_id, claimed_at):
        await asyncio.sleep(0)
        return await super().try_claim(word_id, participant_id, claimed_at)

    async def active_word(self, participant_id):
        await asyncio.sleep(0)
        return await super().active_word(participant_id)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> MemoryWordStore:
    return MemoryWordStore()


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    return Settings(
        storage_backend="memory",
        upload_dir=str(tmp_path / "uploads"),
        source_text_path=str(tmp_path / "source.txt"),
        registration_window_hours=12,
        claim_timeout_seconds=120,
        sweep_interval_seconds=3600,
        max_file_size_mb=1,
    )
