"""
Конфигурация сервиса раздачи слов.

Все значения читаются из .env файла (или переменных окружения).
Для локального запуска достаточно дефолтов с хранилищем в памяти,
в Docker задаются параметры PostgreSQL.

Единый префикс: WORDPOOL_
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Настройки сервиса.

    Читает переменные с префиксом WORDPOOL_ из .env файла.
    Значения читаются один раз при старте процесса.
    """

    model_config = SettingsConfigDict(
        env_prefix="WORDPOOL_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- Сервер ---
    port: int = 3000

    # --- Загрузки ---
    # Каталог для временных файлов изображений (раздаётся как /uploads)
    upload_dir: str = "uploads"
    max_file_size_mb: int = 10

    # --- Хранилище ---
    # "postgres" — боевой режим, "memory" — локальный запуск без БД
    storage_backend: str = "postgres"

    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_user: str = "postgres"
    postgres_password: str = ""
    postgres_database: str = "words"
    pool_min_size: int = 2
    pool_max_size: int = 10

    # Ожидание готовности БД при старте
    connect_attempts: int = 10
    connect_delay_seconds: float = 1.0

    # Исходный текст для первичного заполнения пула
    source_text_path: str = "biblia.txt"

    # --- Время ---
    registration_window_hours: float = 12.0
    # Единый таймаут удержания слова (и для проверки при чтении, и для sweep)
    claim_timeout_seconds: int = 120
    sweep_interval_seconds: int = 60

    # --- OCR: Tesseract ---
    ocr_language: str = "por"
    ocr_oem: int = 3
    ocr_psm: int = 7

    def postgres_kwargs(self) -> dict:
        """Параметры для asyncpg.create_pool."""
        return {
            "host": self.postgres_host,
            "port": self.postgres_port,
            "user": self.postgres_user,
            "password": self.postgres_password,
            "database": self.postgres_database,
            "min_size": self.pool_min_size,
            "max_size": self.pool_max_size,
        }


# Глобальный экземпляр настроек
settings = Settings()
