"""Configuración de reintentos con backoff exponencial para los sinks."""

from __future__ import annotations

import os
import random
from dataclasses import dataclass


@dataclass
class RetryConfig:
    """Configuración para retry con backoff."""

    max_attempts: int = 3
    base_delay: float = 0.5  # segundos
    max_delay: float = 10.0  # segundos
    exponential_base: float = 2.0
    jitter: bool = True  # Añadir variación aleatoria
    timeout: float = 5.0  # segundos por intento

    @classmethod
    def from_env(cls) -> "RetryConfig":
        return cls(
            max_attempts=int(os.getenv("SINK_MAX_ATTEMPTS", "3")),
            base_delay=float(os.getenv("SINK_BASE_DELAY_SECONDS", "0.5")),
            max_delay=float(os.getenv("SINK_MAX_DELAY_SECONDS", "10")),
            timeout=float(os.getenv("SINK_TIMEOUT_SECONDS", "5")),
        )

    def calculate_delay(self, attempt: int) -> float:
        """Calcula el delay tras un intento fallido.

        Args:
            attempt: Número de intento (1-indexed)

        Returns:
            Delay en segundos
        """
        delay = self.base_delay * (self.exponential_base ** (attempt - 1))
        delay = min(delay, self.max_delay)

        if self.jitter:
            # Añadir jitter de ±25%
            jitter_range = delay * 0.25
            delay += random.uniform(-jitter_range, jitter_range)

        return max(0, delay)
