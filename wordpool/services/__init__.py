"""
Сервисы раздачи и проверки слов.

Модули:
    - word_store: интерфейс хранилища + хранилище в памяти
    - postgres_store: хранилище в PostgreSQL
    - assignment: выдача слов и политика таймаута
    - reclamation: фоновый возврат просроченных слов
    - ocr_reader: распознавание текста (Tesseract)
    - verification: проверка фото с заявленным словом
    - window: окно регистрации
    - loader: первичное заполнение пула
"""

from wordpool.services.assignment import AssignmentEngine, ClaimTimeoutPolicy
from wordpool.services.reclamation import ReclamationScheduler
from wordpool.services.verification import VerificationService
from wordpool.services.window import RegistrationWindow
from wordpool.services.word_store import MemoryWordStore, WordStore

__all__ = [
    "AssignmentEngine",
    "ClaimTimeoutPolicy",
    "ReclamationScheduler",
    "VerificationService",
    "RegistrationWindow",
    "MemoryWordStore",
    "WordStore",
]
