"""
Word Pool Service — раздача слов участникам с проверкой фото через OCR.

Состав:
    - Хранилище слов (PostgreSQL или память процесса)
    - Движок выдачи: не больше одного активного слова на участника
    - Фоновый sweep: возврат просроченных слов в пул
    - Проверка фото: Tesseract OCR + точное сравнение
    - Окно регистрации: выдача и проверка закрываются через N часов после старта
"""

from wordpool.config import settings
from wordpool.schemas import ClaimResult, VerificationResult, WordRecord, WordState

__all__ = [
    "settings",
    "ClaimResult",
    "VerificationResult",
    "WordRecord",
    "WordState",
]
