"""
Сервис раздачи слов — FastAPI приложение.

Участник получает слово из пула, пишет его, фотографирует и
отправляет фото на проверку (OCR). Слово, которое не подтвердили
за таймаут, возвращается в пул фоновым sweep.

Эндпоинты:
    POST /claim?participantID=      — получить следующее слово
    GET  /assignment?participantID= — текущее слово участника
    POST /verify                    — проверка фото (multipart: image + word)
    GET  /count                     — количество слов в пуле
    GET  /words/sample              — первые слова пула (диагностика)
    POST /reset                     — вернуть все слова в пул
    GET  /health                    — проверка работоспособности
    GET  /metrics                   — метрики Prometheus
    GET  /uploads/...               — раздача загруженных файлов

Запуск:
    uvicorn wordpool.main:app --host 0.0.0.0 --port 3000
"""

import json
import logging
import os
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, File, Form, HTTPException, Query, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from wordpool.config import Settings, settings
from wordpool.errors import (
    ArtifactMissingError,
    AssignmentMismatchError,
    InvalidParticipantError,
    InvalidUploadError,
    OCRProcessingError,
    UploadTooLargeError,
    WordPoolError,
)
from wordpool.metrics import metrics_response, track_requests
from wordpool.schemas import (
    SYSTEM_HOLDER,
    AssignmentResponse,
    AssignmentState,
    ClaimResponse,
    CountResponse,
    MessageResponse,
    SampleResponse,
    VerifyResponse,
    WordSample,
)
from wordpool.services.assignment import AssignmentEngine, ClaimTimeoutPolicy, Clock, utc_now
from wordpool.services.loader import populate_if_empty
from wordpool.services.ocr_reader import TesseractReader
from wordpool.services.postgres_store import PostgresWordStore
from wordpool.services.reclamation import ReclamationScheduler
from wordpool.services.verification import TextReader, VerificationService
from wordpool.services.window import RegistrationWindow
from wordpool.services.word_store import MemoryWordStore, WordStore

# Настройка логгера
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [WordPool] %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)

router = APIRouter()


class UnicodeJSONResponse(JSONResponse):
    """JSON ответ без \\uXXXX экранирования (слова с диакритикой)."""

    def render(self, content) -> bytes:
        return json.dumps(
            content,
            ensure_ascii=False,
            allow_nan=False,
            indent=None,
            separators=(",", ":"),
        ).encode("utf-8")


@dataclass
class Services:
    """Собранные при старте компоненты, доступны через app.state.services."""

    config: Settings
    store: WordStore
    engine: AssignmentEngine
    scheduler: ReclamationScheduler
    verifier: VerificationService
    window: RegistrationWindow
    reader: TextReader


async def open_store(config: Settings) -> WordStore:
    """
    Открывает хранилище согласно storage_backend.

    Raises:
        ValueError: неизвестный backend
        StoreUnavailableError: PostgreSQL не поднялся
    """
    if config.storage_backend == "memory":
        logger.info("Хранилище: память процесса")
        return MemoryWordStore()

    if config.storage_backend == "postgres":
        logger.info(f"Хранилище: PostgreSQL {config.postgres_host}:{config.postgres_port}")
        store = await PostgresWordStore.connect(config)
        await store.ensure_schema()
        return store

    raise ValueError(f"Неизвестный storage_backend: {config.storage_backend}")


def create_app(
    config: Settings = settings,
    store: Optional[WordStore] = None,
    reader: Optional[TextReader] = None,
    clock: Clock = utc_now,
) -> FastAPI:
    """
    Собирает приложение.

    Args:
        config: настройки
        store: готовое хранилище (иначе открывается по config при старте)
        reader: OCR-коллаборатор (иначе Tesseract)
        clock: источник времени

    Returns:
        FastAPI: приложение
    """
    # Окно регистрации фиксируется в момент старта процесса
    window = RegistrationWindow.starting_now(
        timedelta(hours=config.registration_window_hours), clock
    )
    policy = ClaimTimeoutPolicy(timedelta(seconds=config.claim_timeout_seconds))
    text_reader = reader or TesseractReader(config.ocr_language, config.ocr_oem, config.ocr_psm)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        word_store = store if store is not None else await open_store(config)

        try:
            await populate_if_empty(word_store, config.source_text_path)
        except Exception as e:
            logger.exception(f"Ошибка заполнения пула: {e}")

        engine = AssignmentEngine(word_store, policy, clock)
        scheduler = ReclamationScheduler(
            word_store, policy, config.sweep_interval_seconds, clock
        )
        app.state.services = Services(
            config=config,
            store=word_store,
            engine=engine,
            scheduler=scheduler,
            verifier=VerificationService(
                text_reader, config.upload_dir, config.max_file_size_mb, engine
            ),
            window=window,
            reader=text_reader,
        )

        scheduler.start()
        logger.info(
            f"Сервис запущен, окно регистрации {config.registration_window_hours}ч, "
            f"таймаут слова {config.claim_timeout_seconds}с"
        )
        try:
            yield
        finally:
            await scheduler.stop()
            if store is None:
                await word_store.close()

    app = FastAPI(
        title="Word Pool Service",
        description="Раздача слов участникам и проверка фото через Tesseract OCR",
        version="1.0.0",
        default_response_class=UnicodeJSONResponse,
        lifespan=lifespan,
    )

    app.middleware("http")(track_requests)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    os.makedirs(config.upload_dir, exist_ok=True)
    app.mount("/uploads", StaticFiles(directory=config.upload_dir), name="uploads")

    app.include_router(router)
    return app


# =============================================================================
# Зависимости
# =============================================================================


def get_services(request: Request) -> Services:
    return request.app.state.services


def require_open_window(services: Services = Depends(get_services)) -> None:
    """Закрывает выдачу и проверку после окончания окна регистрации."""
    if not services.window.is_open():
        raise HTTPException(
            status_code=403,
            detail={
                "error": "registration_closed",
                "message": "Окно регистрации уже закрыто",
            },
        )


def _error(status_code: int, exc: WordPoolError) -> HTTPException:
    return HTTPException(
        status_code=status_code,
        detail={"error": exc.code, "message": str(exc)},
    )


def _internal_error(message: str) -> HTTPException:
    return HTTPException(
        status_code=500,
        detail={"error": "internal_error", "message": message},
    )


def _require_participant(participant_id: Optional[str]) -> str:
    if not participant_id or not participant_id.strip():
        raise HTTPException(
            status_code=400,
            detail={
                "error": "missing_participant",
                "message": "Идентификатор участника обязателен",
            },
        )
    participant = participant_id.strip()
    if participant == SYSTEM_HOLDER:
        raise _error(
            400,
            InvalidParticipantError(f"Идентификатор '{SYSTEM_HOLDER}' зарезервирован"),
        )
    return participant


# =============================================================================
# Эндпоинты
# =============================================================================


@router.post(
    "/claim",
    response_model=ClaimResponse,
    dependencies=[Depends(require_open_window)],
)
async def claim_word(
    participant_id: Optional[str] = Query(default=None, alias="participantID"),
    services: Services = Depends(get_services),
) -> ClaimResponse:
    """
    Выдаёт участнику следующее свободное слово.

    Returns:
        ClaimResponse: слово и его id

    Raises:
        HTTPException: 400 нет id / слово уже выдано, 404 пул исчерпан
    """
    participant = _require_participant(participant_id)

    try:
        result = await services.engine.claim_next_word(participant)
    except InvalidParticipantError as e:
        raise _error(400, e)
    except Exception as e:
        logger.exception(f"Ошибка выдачи слова участнику {participant}: {e}")
        raise _internal_error("Ошибка получения следующего слова")

    if result.already_has_word:
        raise HTTPException(
            status_code=400,
            detail={
                "error": "already_has_word",
                "message": "Участнику уже выдано слово",
            },
        )
    if result.word is None:
        raise HTTPException(
            status_code=404,
            detail={
                "error": "pool_exhausted",
                "message": "Свободных слов больше нет",
            },
        )

    return ClaimResponse(word=result.word.text, id=result.word.id)


@router.get("/assignment", response_model=AssignmentResponse)
async def get_assignment(
    participant_id: Optional[str] = Query(default=None, alias="participantID"),
    services: Services = Depends(get_services),
) -> AssignmentResponse:
    """Текущее слово участника: assigned / expired / no_assignment."""
    participant = _require_participant(participant_id)

    try:
        status = await services.engine.current_assignment(participant)
    except Exception as e:
        logger.exception(f"Ошибка проверки слова участника {participant}: {e}")
        raise _internal_error("Ошибка проверки выданного слова")

    messages = {
        AssignmentState.ASSIGNED: "Выданное слово найдено",
        AssignmentState.EXPIRED: "Выданное слово истекло",
        AssignmentState.NO_ASSIGNMENT: "Выданного слова нет",
    }
    word = status.word if status.state is AssignmentState.ASSIGNED else None

    return AssignmentResponse(
        status=status.state,
        message=messages[status.state],
        word=word.text if word else None,
        id=word.id if word else None,
    )


@router.post(
    "/verify",
    response_model=VerifyResponse,
    dependencies=[Depends(require_open_window)],
)
async def verify_photo(
    image: Optional[UploadFile] = File(default=None, description="Фото слова (PNG/JPG)"),
    word: Optional[str] = Form(default=None, description="Заявленное слово"),
    participant_id: Optional[str] = Form(default=None, alias="participantID"),
    services: Services = Depends(get_services),
):
    """
    Проверяет, что на фото написано заявленное слово.

    Returns:
        VerifyResponse: 200 при совпадении, 400 при несовпадении

    Raises:
        HTTPException: 400 невалидный файл, 413 слишком большой, 500 ошибка OCR
    """
    if image is None:
        raise _error(400, InvalidUploadError("Не передан файл изображения"))

    content = await image.read()
    logger.info(f"Получен файл: {image.filename}, {len(content)} байт, слово: {word}")

    try:
        result = await services.verifier.verify(
            image.filename, content, word, participant_id
        )
    except (InvalidUploadError, AssignmentMismatchError, ArtifactMissingError) as e:
        raise _error(400, e)
    except UploadTooLargeError as e:
        raise _error(413, e)
    except OCRProcessingError as e:
        raise _error(500, e)
    except Exception as e:
        logger.exception(f"Ошибка проверки фото: {e}")
        raise _internal_error("Ошибка проверки фото")

    if result.matched:
        return VerifyResponse(
            message="Слово совпадает",
            word=result.claimed_text,
            extracted_text=result.extracted_text,
            matched=True,
        )

    body = VerifyResponse(
        message=f"{result.extracted_text} -> {result.claimed_text}",
        word=result.claimed_text,
        extracted_text=result.extracted_text,
        matched=False,
    )
    return UnicodeJSONResponse(status_code=400, content=body.model_dump())


@router.get("/count", response_model=CountResponse)
async def count_words(services: Services = Depends(get_services)) -> CountResponse:
    """Количество слов в пуле (в любом состоянии)."""
    try:
        total = await services.store.count()
    except Exception as e:
        logger.exception(f"Ошибка подсчёта слов: {e}")
        raise _internal_error("Ошибка подсчёта записей")
    return CountResponse(totalRecords=total)


@router.get("/words/sample", response_model=SampleResponse)
async def sample_words(
    limit: int = Query(default=10, ge=1, le=100),
    services: Services = Depends(get_services),
) -> SampleResponse:
    """Первые слова пула по порядку выдачи."""
    try:
        records = await services.store.peek_sample(limit)
    except Exception as e:
        logger.exception(f"Ошибка чтения выборки слов: {e}")
        raise _internal_error("Ошибка чтения слов")

    return SampleResponse(
        total=len(records),
        words=[
            WordSample(
                id=r.id,
                word=r.text,
                sequence_index=r.sequence_index,
                state=r.state,
                holder=r.holder,
                claimed_at=r.claimed_at,
            )
            for r in records
        ],
    )


@router.post("/reset", response_model=MessageResponse)
async def reset_pool(services: Services = Depends(get_services)) -> MessageResponse:
    """Возвращает все слова в пул, независимо от участника."""
    try:
        reset = await services.store.reset_all()
    except Exception as e:
        logger.exception(f"Ошибка сброса пула: {e}")
        raise _internal_error("Ошибка сброса базы данных")

    logger.info(f"Пул сброшен: {reset} слов")
    return MessageResponse(message="База данных сброшена")


@router.get("/health")
async def health_check(services: Services = Depends(get_services)) -> dict:
    """
    Проверка работоспособности сервиса.

    Проверяет хранилище и Tesseract, возвращает состояние окна
    регистрации и текущую конфигурацию.
    """
    config = services.config

    store_ok = False
    total_words = None
    try:
        total_words = await services.store.count()
        store_ok = True
    except Exception as e:
        logger.warning(f"Хранилище недоступно: {e}")

    tesseract_ok = False
    tesseract_version = "unknown"
    try:
        tesseract_version = services.reader.version()
        tesseract_ok = True
    except Exception as e:
        tesseract_version = f"error: {e}"

    return {
        "status": "ok" if store_ok and tesseract_ok else "degraded",
        "service": "wordpool",
        "version": "1.0.0",
        "store": {"available": store_ok, "total_words": total_words},
        "tesseract": {"available": tesseract_ok, "version": tesseract_version},
        "registration": {
            "open": services.window.is_open(),
            "remaining_seconds": int(services.window.remaining().total_seconds()),
        },
        "config": {
            "storage_backend": config.storage_backend,
            "claim_timeout_seconds": config.claim_timeout_seconds,
            "sweep_interval_seconds": config.sweep_interval_seconds,
            "ocr_language": config.ocr_language,
            "max_file_size_mb": config.max_file_size_mb,
        },
    }


@router.get("/metrics", include_in_schema=False)
async def metrics():
    """Метрики процесса и HTTP-запросов в формате Prometheus."""
    return metrics_response()


app = create_app()


if __name__ == "__main__":
    import uvicorn

    logger.info(f"Запуск Word Pool Service на порту {settings.port}")

    uvicorn.run(
        app,
        host="0.0.0.0",
        port=settings.port,
        log_level="info",
    )
