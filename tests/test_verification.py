"""Тесты проверки фото: сравнение, валидация и удаление временного файла."""

from datetime import timedelta

import pytest

from wordpool.errors import (
    ArtifactMissingError,
    AssignmentMismatchError,
    InvalidUploadError,
    OCRProcessingError,
    UploadTooLargeError,
)
from wordpool.services.assignment import AssignmentEngine, ClaimTimeoutPolicy
from wordpool.services.verification import (
    VerificationService,
    upload_artifact,
    validate_extension,
)

from conftest import FakeReader


def _service(tmp_path, reader=None, engine=None) -> VerificationService:
    return VerificationService(
        reader=reader or FakeReader(),
        upload_dir=str(tmp_path / "uploads"),
        max_file_size_mb=1,
        engine=engine,
    )


def _uploads(tmp_path) -> list:
    directory = tmp_path / "uploads"
    return list(directory.iterdir()) if directory.exists() else []


@pytest.mark.asyncio
async def test_exact_match_after_trim(tmp_path):
    service = _service(tmp_path)

    result = await service.verify("foto.png", b"  AMOR\n", "AMOR")

    assert result.matched is True
    assert result.extracted_text == "AMOR"
    assert result.claimed_text == "AMOR"


@pytest.mark.asyncio
async def test_comparison_is_case_sensitive(tmp_path):
    service = _service(tmp_path)

    result = await service.verify("foto.jpg", b"AMOR", "amor")

    assert result.matched is False
    assert result.extracted_text == "AMOR"


@pytest.mark.asyncio
async def test_no_diacritics_normalization(tmp_path):
    service = _service(tmp_path)

    result = await service.verify("foto.jpg", "FÉ".encode("utf-8"), "FE")

    assert result.matched is False


@pytest.mark.asyncio
async def test_repeated_verification_is_deterministic(tmp_path):
    service = _service(tmp_path)

    outcomes = {
        (await service.verify("foto.png", b"PAZ", "PAZ")).matched
        for _ in range(3)
    }

    assert outcomes == {True}


@pytest.mark.asyncio
async def test_artifact_removed_after_success_and_mismatch(tmp_path):
    reader = FakeReader()
    service = _service(tmp_path, reader)

    await service.verify("foto.png", b"AMOR", "AMOR")
    await service.verify("foto.png", b"AMOR", "PAZ")

    assert len(reader.paths) == 2
    assert not any(p.exists() for p in reader.paths)
    assert _uploads(tmp_path) == []


@pytest.mark.asyncio
async def test_ocr_error_reported_and_artifact_removed(tmp_path):
    reader = FakeReader(error=RuntimeError("tesseract crashed"))
    service = _service(tmp_path, reader)

    with pytest.raises(OCRProcessingError):
        await service.verify("foto.png", b"AMOR", "AMOR")

    assert not reader.paths[0].exists()
    assert _uploads(tmp_path) == []


@pytest.mark.asyncio
async def test_missing_artifact_reported(tmp_path):
    reader = FakeReader(delete_first=True)
    service = _service(tmp_path, reader)

    with pytest.raises(ArtifactMissingError):
        await service.verify("foto.png", b"AMOR", "AMOR")

    assert _uploads(tmp_path) == []


@pytest.mark.asyncio
@pytest.mark.parametrize("filename", ["foto.gif", "foto", "foto.png.exe", None, ""])
async def test_invalid_extension_rejected_before_ocr(tmp_path, filename):
    reader = FakeReader()
    service = _service(tmp_path, reader)

    with pytest.raises(InvalidUploadError):
        await service.verify(filename, b"AMOR", "AMOR")

    assert reader.paths == []


@pytest.mark.asyncio
async def test_empty_and_oversized_uploads_rejected(tmp_path):
    reader = FakeReader()
    service = _service(tmp_path, reader)

    with pytest.raises(InvalidUploadError):
        await service.verify("foto.png", b"", "AMOR")

    with pytest.raises(UploadTooLargeError):
        await service.verify("foto.png", b"x" * (1024 * 1024 + 1), "AMOR")

    assert reader.paths == []


@pytest.mark.asyncio
async def test_missing_claimed_word_rejected(tmp_path):
    with pytest.raises(InvalidUploadError):
        await _service(tmp_path).verify("foto.png", b"AMOR", None)


def test_camera_extensions_allowed():
    for name in ["a.PNG", "a.jpg", "a.JPEG", "a.jfif", "a.pjpeg", "a.pjp"]:
        assert validate_extension(name) == "." + name.rsplit(".", 1)[1].lower()


@pytest.mark.asyncio
async def test_participant_must_hold_claimed_word(tmp_path, store, clock):
    await store.bulk_load(["AMOR", "PAZ"])
    engine = AssignmentEngine(store, ClaimTimeoutPolicy(timedelta(minutes=2)), clock)
    service = _service(tmp_path, engine=engine)

    with pytest.raises(AssignmentMismatchError):
        await service.verify("foto.png", b"AMOR", "AMOR", participant_id="U1")

    await engine.claim_next_word("U1")

    with pytest.raises(AssignmentMismatchError):
        await service.verify("foto.png", b"PAZ", "PAZ", participant_id="U1")

    result = await service.verify("foto.png", b"AMOR", "AMOR", participant_id="U1")
    assert result.matched is True

    clock.advance(minutes=3)
    with pytest.raises(AssignmentMismatchError):
        await service.verify("foto.png", b"AMOR", "AMOR", participant_id="U1")


@pytest.mark.asyncio
async def test_upload_artifact_removed_on_exception(tmp_path):
    with pytest.raises(RuntimeError):
        async with upload_artifact(str(tmp_path / "uploads"), ".png", b"AMOR") as path:
            assert path.read_bytes() == b"AMOR"
            raise RuntimeError("boom")

    assert not path.exists()
    assert _uploads(tmp_path) == []
