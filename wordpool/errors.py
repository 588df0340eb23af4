"""
Исключения сервиса.

Эндпоинты переводят их в HTTPException с телом
{"error": <код>, "message": <текст>}.
"""


class WordPoolError(Exception):
    """Базовое исключение сервиса."""

    code = "internal_error"


# =============================================================================
# Хранилище
# =============================================================================


class StoreError(WordPoolError):
    """Ошибка хранилища слов (БД недоступна, запрос упал)."""

    code = "store_error"


class StoreUnavailableError(StoreError):
    """БД так и не стала доступна за отведённое число попыток."""

    code = "store_unavailable"


class InvalidParticipantError(WordPoolError):
    """Идентификатор участника пустой или совпадает с SYSTEM."""

    code = "invalid_participant"


# =============================================================================
# Верификация
# =============================================================================


class VerificationError(WordPoolError):
    code = "verification_error"


class InvalidUploadError(VerificationError):
    """Файл не передан, пустой или с недопустимым расширением."""

    code = "invalid_upload"


class UploadTooLargeError(VerificationError):
    code = "file_too_large"


class AssignmentMismatchError(VerificationError):
    """Участник не держит заявленное слово (или его слово истекло)."""

    code = "assignment_mismatch"


class ArtifactMissingError(VerificationError):
    """Временный файл изображения пропал до окончания OCR."""

    code = "image_not_found"


class OCRProcessingError(VerificationError):
    """Tesseract не смог обработать изображение."""

    code = "processing_error"
