"""
Распознавание текста с фото через Tesseract.

Один вызов image_to_data на изображение: из словаря собирается
текст с учётом структуры блоков/строк и средняя уверенность.
Повторных попыток нет — одна попытка на запрос.
"""

import logging
from dataclasses import dataclass

import pytesseract
from PIL import Image, ImageOps

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OCRText:
    """
    Результат распознавания одного изображения.

    Attributes:
        text: собранный текст (без trim)
        confidence: средняя уверенность по словам (0-100)
    """

    text: str
    confidence: float = 0.0


class TesseractReader:
    """
    OCR-коллаборатор: путь к изображению + язык -> текст.

    Args:
        language: язык Tesseract (например "por")
        oem: OCR Engine Mode
        psm: Page Segmentation Mode (7 — одна строка текста)
    """

    def __init__(self, language: str, oem: int = 3, psm: int = 7) -> None:
        self.language = language
        self.config = f"--oem {oem} --psm {psm}"

    def read(self, image_path: str) -> OCRText:
        """
        Распознаёт текст на изображении.

        Raises:
            FileNotFoundError: файла уже нет на диске
            pytesseract.TesseractError: ошибка Tesseract
        """
        with Image.open(image_path) as img:
            # Фото с телефона: учитываем EXIF-ориентацию
            image = ImageOps.exif_transpose(img).convert("RGB")

        data = pytesseract.image_to_data(
            image,
            lang=self.language,
            config=self.config,
            output_type=pytesseract.Output.DICT,
        )

        text = assemble_text(data)
        confidences = [
            float(c)
            for c in data["conf"]
            if isinstance(c, (int, float)) and float(c) >= 0
        ]
        avg_confidence = sum(confidences) / len(confidences) if confidences else 0.0

        logger.info(f"OCR: {len(text)} симв., уверенность {avg_confidence:.0f}%")
        return OCRText(text=text, confidence=avg_confidence)

    def version(self) -> str:
        return str(pytesseract.get_tesseract_version())


def assemble_text(data: dict) -> str:
    """
    Собирает текст из словаря image_to_data.

    Алгоритм:
        - Слова на одной строке соединяются пробелами
        - Разные строки — новая строка (\\n)
        - Разные блоки — пустая строка между ними (\\n\\n)

    Args:
        data: словарь от pytesseract.image_to_data()

    Returns:
        str: собранный текст
    """
    # {block_num: {(par_num, line_num): [words]}}
    blocks: dict[int, dict[tuple[int, int], list[str]]] = {}

    for i, raw in enumerate(data["text"]):
        word = raw.strip()
        if not word:
            continue

        line_key = (data["par_num"][i], data["line_num"][i])
        blocks.setdefault(data["block_num"][i], {}).setdefault(line_key, []).append(word)

    result_blocks = []
    for block_num in sorted(blocks):
        lines = blocks[block_num]
        result_blocks.append(
            "\n".join(" ".join(lines[key]) for key in sorted(lines))
        )

    return "\n\n".join(result_blocks)
