"""Model registry — caller-owned store of fitted forecasting models.

One registry is created per application (or per request/test) and passed to
the forecaster explicitly; there is no process-wide instance. The FastAPI
app shares one registry across threadpool workers, so every access goes
through the registry lock and iteration always runs over a snapshot.

The registry holds at most `max_models` entries; registering past the cap
evicts the oldest registrations first.
"""
from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import joblib

from scenario_engine.config import settings
from scenario_engine.exceptions import ModelNotFoundError
from scenario_engine.models.forecast import FittedModel, ModelKind

logger = logging.getLogger(__name__)

_SNAPSHOT_FILE = "registry.joblib"


class ModelRegistry:
    """Map of model id -> FittedModel, with lookup by series fingerprint."""

    def __init__(self, max_models: int | None = None) -> None:
        self._models: dict[str, FittedModel] = {}
        self._lock = threading.RLock()
        self._loaded_from: Path | None = None
        self.max_models = max_models or settings.MODEL_REGISTRY_MAX_MODELS

    def _snapshot(self) -> list[FittedModel]:
        with self._lock:
            return list(self._models.values())

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------
    def register(self, model: FittedModel) -> str:
        with self._lock:
            self._models.pop(model.id, None)
            self._models[model.id] = model
            self._evict()
        return model.id

    def _evict(self) -> None:
        overflow = len(self._models) - self.max_models
        if overflow <= 0:
            return
        # dicts keep insertion order, oldest registrations come first
        for mid in list(self._models)[:overflow]:
            del self._models[mid]
        logger.info("Registry over %d models, evicted %d oldest", self.max_models, overflow)

    def get(self, model_id: str) -> FittedModel:
        with self._lock:
            try:
                return self._models[model_id]
            except KeyError:
                raise ModelNotFoundError(f"Model {model_id} not found") from None

    def find(
        self, fingerprint: str, kind: ModelKind, **parameters: Any,
    ) -> FittedModel | None:
        """Return a model already fitted to the same series, if any.

        `parameters` must match the stored parameters that were requested at
        training time (e.g. requested_order for polynomial fits).
        """
        for model in self._snapshot():
            if model.fingerprint != fingerprint or model.kind != kind:
                continue
            if all(model.parameters.get(k) == v for k, v in parameters.items()):
                return model
        return None

    def __contains__(self, model_id: object) -> bool:
        with self._lock:
            return model_id in self._models

    def __len__(self) -> int:
        with self._lock:
            return len(self._models)

    def list_models(self) -> list[FittedModel]:
        """All models, best R² first."""
        return sorted(self._snapshot(), key=lambda m: m.performance.r2, reverse=True)

    def cleanup(self, max_age: timedelta = timedelta(hours=24)) -> int:
        """Drop models trained longer than max_age ago. Returns count removed."""
        cutoff = datetime.now(timezone.utc) - max_age
        with self._lock:
            stale = [mid for mid, m in self._models.items() if m.trained_at < cutoff]
            for mid in stale:
                del self._models[mid]
        if stale:
            logger.info("Cleaned %d stale models", len(stale))
        return len(stale)

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------
    def save(self, model_dir: str | Path) -> Path:
        directory = Path(model_dir).resolve()
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / _SNAPSHOT_FILE
        payload = [m.model_dump(mode="json") for m in self._snapshot()]
        joblib.dump(payload, path)
        logger.info("Saved %d models to %s", len(payload), path)
        return path

    def load(self, model_dir: str | Path) -> int:
        directory = Path(model_dir).resolve()
        path = directory / _SNAPSHOT_FILE
        self._loaded_from = directory
        if not path.is_file():
            logger.warning("No registry snapshot at %s, starting empty", path)
            return 0
        try:
            payload = joblib.load(path)
        except Exception as e:
            logger.warning("Failed to load registry snapshot: %s", e)
            return 0
        models = [FittedModel.model_validate(item) for item in payload]
        with self._lock:
            for model in sorted(models, key=lambda m: m.trained_at):
                self._models[model.id] = model
            self._evict()
        logger.info("Loaded %d models from %s", len(models), path)
        return len(models)

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------
    def get_status(self) -> dict[str, Any]:
        models = self._snapshot()
        by_kind: dict[str, int] = {}
        for model in models:
            by_kind[model.kind.value] = by_kind.get(model.kind.value, 0) + 1
        return {
            "status": "loaded" if models else "empty",
            "model_count": len(models),
            "max_models": self.max_models,
            "models_by_kind": by_kind,
            "snapshot_dir": str(self._loaded_from) if self._loaded_from else None,
        }
