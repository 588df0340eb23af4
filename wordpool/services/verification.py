"""
Проверка фото с заявленным словом.

Пайплайн:
    1. Валидация: файл есть, не пустой, допустимое расширение, размер
    2. (опционально) Участник действительно держит это слово
    3. Сохранение во временный файл в upload_dir
    4. OCR (одна попытка, в threadpool)
    5. trim + точное сравнение с учётом регистра

Временный файл удаляется на любом пути выхода: совпадение,
несовпадение или ошибка обработки.
"""

import logging
import os
import random
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional, Protocol

from starlette.concurrency import run_in_threadpool

from wordpool.errors import (
    ArtifactMissingError,
    AssignmentMismatchError,
    InvalidUploadError,
    OCRProcessingError,
    UploadTooLargeError,
)
from wordpool.schemas import AssignmentState, VerificationResult
from wordpool.services.assignment import AssignmentEngine
from wordpool.services.ocr_reader import OCRText

logger = logging.getLogger(__name__)

# Фото с камеры телефона приходят и как .jfif/.pjpeg/.pjp
ALLOWED_EXTENSIONS = (".png", ".jpg", ".jpeg", ".jfif", ".pjpeg", ".pjp")


class TextReader(Protocol):
    def read(self, image_path: str) -> OCRText: ...

    def version(self) -> str: ...


def validate_extension(filename: Optional[str]) -> str:
    """
    Проверяет расширение файла по списку допустимых.

    Returns:
        str: расширение в нижнем регистре

    Raises:
        InvalidUploadError: имя не передано или расширение недопустимо
    """
    if not filename:
        raise InvalidUploadError("Не передан файл изображения")

    extension = os.path.splitext(filename)[1].lower()
    if extension not in ALLOWED_EXTENSIONS:
        raise InvalidUploadError(
            f"Недопустимое расширение файла: '{extension or filename}'. "
            "Разрешены только PNG, JPG и JPEG"
        )
    return extension


@asynccontextmanager
async def upload_artifact(
    upload_dir: str, extension: str, content: bytes
) -> AsyncIterator[Path]:
    """
    Временный файл загруженного изображения.

    Файл принадлежит одному запросу и удаляется при выходе из блока
    в любом случае. Запись и удаление идут в threadpool.
    """
    directory = Path(upload_dir)
    await run_in_threadpool(directory.mkdir, parents=True, exist_ok=True)

    path = directory / f"{int(time.time() * 1000)}-{random.randint(0, 10**9)}{extension}"
    try:
        await run_in_threadpool(path.write_bytes, content)
        yield path
    finally:
        await run_in_threadpool(path.unlink, missing_ok=True)
        logger.debug(f"Временный файл удалён: {path.name}")


class VerificationService:
    """
    Сравнение распознанного текста с заявленным словом.

    Args:
        reader: OCR-коллаборатор
        upload_dir: каталог временных файлов
        max_file_size_mb: лимит размера изображения
        engine: движок выдачи (для проверки, что участник держит слово)
    """

    def __init__(
        self,
        reader: TextReader,
        upload_dir: str,
        max_file_size_mb: int,
        engine: Optional[AssignmentEngine] = None,
    ) -> None:
        self.reader = reader
        self.upload_dir = upload_dir
        self.max_file_size_mb = max_file_size_mb
        self.engine = engine

    async def verify(
        self,
        filename: Optional[str],
        content: bytes,
        claimed_text: Optional[str],
        participant_id: Optional[str] = None,
    ) -> VerificationResult:
        """
        Проверяет, что на фото написано заявленное слово.

        Args:
            filename: исходное имя файла (для расширения)
            content: байты изображения
            claimed_text: слово, которое заявил участник
            participant_id: участник (если передан — проверяем его слово)

        Returns:
            VerificationResult: совпадение + распознанный текст

        Raises:
            InvalidUploadError, UploadTooLargeError, AssignmentMismatchError:
                до начала OCR
            ArtifactMissingError, OCRProcessingError: при обработке
        """
        # 1. Валидация до любой обработки
        extension = validate_extension(filename)
        if not content:
            raise InvalidUploadError("Файл изображения пустой")

        max_size = self.max_file_size_mb * 1024 * 1024
        if len(content) > max_size:
            raise UploadTooLargeError(
                f"Файл слишком большой: {len(content)} байт, "
                f"максимум: {self.max_file_size_mb} МБ"
            )

        if claimed_text is None:
            raise InvalidUploadError("Не передано проверяемое слово")

        # 2. Слово участника
        if participant_id and self.engine is not None:
            await self._check_assignment(participant_id, claimed_text)

        # 3-4. OCR над временным файлом
        async with upload_artifact(self.upload_dir, extension, content) as path:
            try:
                ocr = await run_in_threadpool(self.reader.read, str(path))
            except FileNotFoundError as e:
                logger.error(f"Файл изображения не найден: {path.name}")
                raise ArtifactMissingError("Файл изображения не найден") from e
            except Exception as e:
                logger.exception(f"Ошибка OCR файла {path.name}: {e}")
                raise OCRProcessingError(f"Ошибка обработки OCR: {e}") from e

        # 5. Сравнение
        extracted = ocr.text.strip()
        matched = extracted == claimed_text

        if matched:
            logger.info(f"Слово совпало: {claimed_text}")
        else:
            logger.info(f"Слово не совпало: распознано '{extracted}', ожидалось '{claimed_text}'")

        return VerificationResult(
            matched=matched,
            extracted_text=extracted,
            claimed_text=claimed_text,
        )

    async def _check_assignment(self, participant_id: str, claimed_text: str) -> None:
        status = await self.engine.current_assignment(participant_id)

        if status.state is AssignmentState.NO_ASSIGNMENT:
            raise AssignmentMismatchError(f"У участника {participant_id} нет выданного слова")
        if status.state is AssignmentState.EXPIRED:
            raise AssignmentMismatchError("Выданное слово истекло")
        if status.word.text != claimed_text:
            raise AssignmentMismatchError(
                f"Участнику {participant_id} выдано другое слово"
            )
