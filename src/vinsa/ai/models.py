"""Model pool catalog and per-model cooldown bookkeeping.

The tracker answers one question for the run loop: which model should serve the
next completion call, and how long (if at all) must the caller wait before
using it. Rate-limited models are parked until their own cooldown elapses;
models that were never rate-limited are always available.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Literal, Sequence

__all__ = [
    "ModelCandidate",
    "ModelSelection",
    "ModelStatus",
    "ModelAvailabilityTracker",
    "MODEL_POOL",
    "DEFAULT_COOLDOWN_SECONDS",
]

LOGGER = logging.getLogger(__name__)

DEFAULT_COOLDOWN_SECONDS = 60.0

Clock = Callable[[], float]


@dataclass(slots=True, frozen=True)
class ModelCandidate:
    """Immutable catalog entry for one completion model."""

    id: str
    label: str
    cooldown_seconds: float = DEFAULT_COOLDOWN_SECONDS


# Groq free-tier models, best first. Small models recover faster.
MODEL_POOL: tuple[ModelCandidate, ...] = (
    ModelCandidate("llama-3.3-70b-versatile", "Llama 3.3 70B", 60.0),
    ModelCandidate("meta-llama/llama-4-maverick-17b-128e-instruct", "Llama 4 Maverick", 60.0),
    ModelCandidate("qwen-qwq-32b", "Qwen QwQ 32B", 60.0),
    ModelCandidate("mistral-saba-24b", "Mistral Saba 24B", 60.0),
    ModelCandidate("mixtral-8x7b-32768", "Mixtral 8x7B", 60.0),
    ModelCandidate("meta-llama/llama-4-scout-17b-16e-instruct", "Llama 4 Scout", 60.0),
    ModelCandidate("gemma2-9b-it", "Gemma 2 9B", 45.0),
    ModelCandidate("llama-3.1-8b-instant", "Llama 3.1 8B Instant", 45.0),
    ModelCandidate("llama-3.2-3b-preview", "Llama 3.2 3B", 30.0),
)


@dataclass(slots=True, frozen=True)
class ModelSelection:
    """Result of :meth:`ModelAvailabilityTracker.select_available`.

    Attributes:
        model: The chosen candidate.
        wait_seconds: Time until the model may be used; ``0`` when it is ready now.
    """

    model: ModelCandidate
    wait_seconds: float = 0.0

    @property
    def model_id(self) -> str:
        return self.model.id

    @property
    def ready(self) -> bool:
        return self.wait_seconds <= 0


@dataclass(slots=True, frozen=True)
class ModelStatus:
    """Observability row describing a single model."""

    model: ModelCandidate
    state: Literal["available", "cooldown"]
    remaining_seconds: int = 0

    @property
    def available(self) -> bool:
        return self.state == "available"


class ModelAvailabilityTracker:
    """Tracks cooldown expiries and picks the next model to use."""

    def __init__(
        self,
        preferred_model: str | None = None,
        pool: Sequence[ModelCandidate] = MODEL_POOL,
        *,
        clock: Clock | None = None,
    ) -> None:
        if not pool:
            raise ValueError("Model pool must contain at least one candidate")
        self._clock = clock or time.monotonic
        self._models = self._order_pool(pool, preferred_model)
        self._by_id: Dict[str, ModelCandidate] = {model.id: model for model in self._models}
        self._cooldowns: Dict[str, float] = {}
        self._lock = asyncio.Lock()

    @property
    def models(self) -> tuple[ModelCandidate, ...]:
        """Return the pool in effective order (preferred model first)."""

        return self._models

    @property
    def lock(self) -> asyncio.Lock:
        """Lock for serializing select-or-wait across agents sharing this tracker."""

        return self._lock

    def __len__(self) -> int:
        return len(self._models)

    def get(self, model_id: str) -> ModelCandidate | None:
        return self._by_id.get(model_id)

    def select_available(self) -> ModelSelection:
        """Return the first usable model, or the soonest-recovering one with its wait."""

        now = self._clock()
        soonest: tuple[float, ModelCandidate] | None = None
        for model in self._models:
            expiry = self._cooldowns.get(model.id)
            if expiry is None:
                return ModelSelection(model)
            if expiry <= now:
                self._cooldowns.pop(model.id, None)
                LOGGER.debug("Cooldown for %s expired", model.id)
                return ModelSelection(model)
            if soonest is None or expiry < soonest[0]:
                soonest = (expiry, model)

        assert soonest is not None
        expiry, model = soonest
        wait = max(0.0, expiry - now)
        LOGGER.debug("All models cooling down; %s is next in %.1fs", model.id, wait)
        return ModelSelection(model, wait_seconds=wait)

    def record_rate_limited(self, model_id: str) -> float:
        """Park ``model_id`` for its cooldown and return the resulting expiry."""

        model = self._by_id.get(model_id)
        cooldown = model.cooldown_seconds if model is not None else DEFAULT_COOLDOWN_SECONDS
        expiry = self._clock() + cooldown
        existing = self._cooldowns.get(model_id)
        if existing is not None and existing > expiry:
            expiry = existing
        self._cooldowns[model_id] = expiry
        LOGGER.info("Model %s rate limited; cooling down for %.0fs", model_id, cooldown)
        return expiry

    def is_available(self, model_id: str) -> bool:
        expiry = self._cooldowns.get(model_id)
        return expiry is None or expiry <= self._clock()

    def status_snapshot(self) -> List[ModelStatus]:
        """Return per-model availability with remaining whole seconds."""

        now = self._clock()
        rows: List[ModelStatus] = []
        for model in self._models:
            expiry = self._cooldowns.get(model.id)
            if expiry is None or expiry <= now:
                rows.append(ModelStatus(model, "available"))
            else:
                rows.append(ModelStatus(model, "cooldown", math.ceil(expiry - now)))
        return rows

    def reset(self) -> None:
        self._cooldowns.clear()

    @staticmethod
    def _order_pool(
        pool: Iterable[ModelCandidate], preferred_model: str | None
    ) -> tuple[ModelCandidate, ...]:
        models = tuple(pool)
        if not preferred_model:
            return models
        preferred = [model for model in models if model.id == preferred_model]
        if not preferred:
            LOGGER.debug("Preferred model %s is not in the pool; using catalog order", preferred_model)
            return models
        rest = [model for model in models if model.id != preferred_model]
        return (preferred[0], *rest)
