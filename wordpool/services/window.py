"""
Окно регистрации.

Выдача и проверка слов доступны только в течение фиксированного
интервала после старта процесса. Окно не переживает перезапуск:
рестарт открывает его заново.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from wordpool.services.assignment import Clock, utc_now


@dataclass(frozen=True)
class RegistrationWindow:
    """
    Неизменяемое окно: момент старта + длительность.

    Attributes:
        started_at: момент старта процесса (UTC)
        duration: длительность окна
        clock: источник текущего времени
    """

    started_at: datetime
    duration: timedelta
    clock: Clock = utc_now

    @classmethod
    def starting_now(cls, duration: timedelta, clock: Clock = utc_now) -> "RegistrationWindow":
        return cls(started_at=clock(), duration=duration, clock=clock)

    def is_open(self, now: Optional[datetime] = None) -> bool:
        now = now or self.clock()
        return now - self.started_at <= self.duration

    def remaining(self, now: Optional[datetime] = None) -> timedelta:
        """Оставшееся время окна (не меньше нуля)."""
        now = now or self.clock()
        left = self.started_at + self.duration - now
        return max(left, timedelta(0))
