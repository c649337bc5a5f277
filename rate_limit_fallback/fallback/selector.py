"""
Fallback model selection.

``find_next_available_model`` is the pure wrap-around scan over the ordered
preference list. ``select_fallback_model`` layers the cooldown bookkeeping
and the configured fallback mode on top of it.
"""

import logging
import time
from typing import Dict, List, Optional, Set

from ..config.models import FallbackConfig
from ..models.fallback import FallbackMode, FallbackModel, model_key

logger = logging.getLogger(__name__)


class ModelSelector:
    """Chooses the next viable model and owns the cooldown registry."""

    def __init__(self, config: FallbackConfig):
        self.config = config
        # model key -> epoch ms of the last rate limit
        self._rate_limited: Dict[str, float] = {}

    @property
    def fallback_models(self) -> List[FallbackModel]:
        return self.config.fallback_models

    def is_model_rate_limited(self, provider_id: str, model_id: str) -> bool:
        """Check the cooldown, evicting the entry if it has expired."""
        key = model_key(provider_id, model_id)
        limited_at = self._rate_limited.get(key)
        if limited_at is None:
            return False

        if time.time() * 1000 - limited_at > self.config.cooldown_ms:
            del self._rate_limited[key]
            return False
        return True

    def mark_model_rate_limited(self, provider_id: str, model_id: str) -> None:
        self._rate_limited[model_key(provider_id, model_id)] = time.time() * 1000

    def find_next_available_model(
        self,
        provider_id: Optional[str],
        model_id: Optional[str],
        attempted: Set[str]
    ) -> Optional[FallbackModel]:
        """
        Scan the preference list after the current model, wrapping around.

        Args:
            provider_id: Current provider (may be empty)
            model_id: Current model (may be empty)
            attempted: Model keys excluded for this message

        Returns:
            The first model that is neither excluded nor cooling down, or None
        """
        models = self.fallback_models
        current_index = -1
        if provider_id and model_id:
            for index, model in enumerate(models):
                if model.provider_id == provider_id and model.model_id == model_id:
                    current_index = index
                    break

        # Forward from the current model, then wrap to the start
        order = list(range(current_index + 1, len(models))) + list(range(0, current_index + 1))
        for index in order:
            model = models[index]
            if model.key in attempted:
                continue
            if self.is_model_rate_limited(model.provider_id, model.model_id):
                continue
            return model
        return None

    def select_fallback_model(
        self,
        provider_id: Optional[str],
        model_id: Optional[str],
        attempted: Set[str]
    ) -> Optional[FallbackModel]:
        """
        Pick the fallback for a rate-limited model, applying the fallback mode.

        The current model is put on cooldown and added to ``attempted``.
        """
        if provider_id and model_id:
            self.mark_model_rate_limited(provider_id, model_id)
            attempted.add(model_key(provider_id, model_id))

        next_model = self.find_next_available_model(provider_id, model_id, attempted)
        if next_model is not None:
            return next_model

        mode = self.config.fallback_mode
        if mode == FallbackMode.STOP:
            return None

        if mode == FallbackMode.RETRY_LAST and self.fallback_models:
            last = self.fallback_models[-1]
            is_current = last.provider_id == provider_id and last.model_id == model_id
            if not is_current and not self.is_model_rate_limited(last.provider_id, last.model_id):
                logger.debug(f"All models attempted, retrying last model {last.key}")
                return last

        # Cycle: forget this message's attempts except the current model
        attempted.clear()
        if provider_id and model_id:
            attempted.add(model_key(provider_id, model_id))
        logger.debug("All models attempted, cycling through fallback list again")
        return self.find_next_available_model(provider_id, model_id, attempted)

    def cleanup_stale_entries(self) -> int:
        """Evict expired cooldown entries; returns how many were removed."""
        now = time.time() * 1000
        expired = [
            key for key, limited_at in self._rate_limited.items()
            if now - limited_at > self.config.cooldown_ms
        ]
        for key in expired:
            del self._rate_limited[key]
        return len(expired)

    def update_config(self, config: FallbackConfig) -> None:
        self.config = config

    def clear(self) -> None:
        self._rate_limited.clear()
