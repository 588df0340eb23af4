"""Тесты сборки текста из словаря image_to_data и вызова Tesseract."""

from unittest.mock import patch

from PIL import Image

from wordpool.services.ocr_reader import TesseractReader, assemble_text


def _data(rows):
    """rows: (text, block, par, line, conf)"""
    return {
        "text": [r[0] for r in rows],
        "block_num": [r[1] for r in rows],
        "par_num": [r[2] for r in rows],
        "line_num": [r[3] for r in rows],
        "conf": [r[4] for r in rows],
    }


def test_assemble_single_word():
    data = _data([("", 1, 0, 0, -1), ("AMOR", 1, 1, 1, 95)])

    assert assemble_text(data) == "AMOR"


def test_assemble_lines_and_blocks():
    data = _data([
        ("NO", 1, 1, 1, 90),
        ("PRINCÍPIO", 1, 1, 1, 88),
        ("CRIOU", 1, 1, 2, 91),
        ("  ", 1, 1, 2, -1),
        ("DEUS", 2, 1, 1, 93),
    ])

    assert assemble_text(data) == "NO PRINCÍPIO\nCRIOU\n\nDEUS"


def test_assemble_empty():
    assert assemble_text(_data([("", 1, 0, 0, -1)])) == ""


def test_reader_passes_language_and_config(tmp_path):
    path = tmp_path / "foto.png"
    Image.new("RGB", (40, 20), "white").save(path)
    data = _data([("PAZ", 1, 1, 1, 80), ("", 1, 1, 1, -1)])

    with patch("pytesseract.image_to_data", return_value=data) as image_to_data:
        result = TesseractReader("por", oem=1, psm=7).read(str(path))

    assert result.text == "PAZ"
    assert result.confidence == 80.0
    kwargs = image_to_data.call_args.kwargs
    assert kwargs["lang"] == "por"
    assert kwargs["config"] == "--oem 1 --psm 7"
