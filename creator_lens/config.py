"""Runtime settings and tuning knobs.

Everything is read from the environment (``.env`` is loaded by the CLI and
the API server). Empirical constants live in ``Tuning`` so they can be
overridden from a YAML file pointed to by ``CREATOR_LENS_TUNING_FILE``:

    confidence_k: 8
    save_step: 0.12
"""
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field

from creator_lens.models import EventType

_TRUTHY = {"1", "true", "yes", "on"}


class Tuning(BaseModel):
    # Persona nudges, applied before renormalizing each distribution.
    generation_step: float = Field(default=0.05, gt=0)
    save_step: float = Field(default=0.10, gt=0)
    export_step: float = Field(default=0.10, gt=0)
    ab_win_step: float = Field(default=0.15, gt=0)
    result_step: float = Field(default=0.10, gt=0)
    onboarding_step: float = Field(default=0.30, gt=0)
    min_outcome_samples: int = Field(default=3, ge=1)
    # Pattern scoring: score = avg_engagement_rate * min(1, n / confidence_k)
    confidence_k: float = Field(default=5.0, gt=0)
    min_bias_results: int = 3
    # Suggestions
    explore_ratio: float = Field(default=0.3, ge=0, le=1)
    exploration_confidence: float = 50.0
    confidence_scale: float = 10.0   # assumes weighted_score roughly in 0-10
    top_pattern_pool: int = 10
    # Insights
    min_results_for_insights: int = 3
    max_recommendations: int = 5
    views_drop_threshold: float = -10.0
    views_surge_threshold: float = 20.0
    content_drop_threshold: int = -2
    min_best_samples: int = 2
    # Storage
    cas_retries: int = Field(default=5, ge=1)
    read_retries: int = Field(default=2, ge=0)

    def step_for(self, event_type: EventType, performance_score: Optional[float] = None) -> float:
        if event_type is EventType.RESULT_ADDED:
            # Half a step for a flat result, up to 1.5 steps for a perfect one.
            score = min(max(performance_score or 0.0, 0.0), 100.0)
            return self.result_step * (0.5 + score / 100.0)
        steps = {
            EventType.GENERATION: self.generation_step,
            EventType.SAVE: self.save_step,
            EventType.EXPORT: self.export_step,
            EventType.AB_TEST_WIN: self.ab_win_step,
            EventType.ONBOARDING: self.onboarding_step,
        }
        return steps[event_type]


class Settings(BaseModel):
    openai_api_key: Optional[str] = None
    model: str = "gpt-4o-mini"
    db_path: str = "creator_lens.db"
    default_plan: str = "creator_pro"
    default_locale: str = "en"
    strict_invariants: bool = False
    log_level: str = "INFO"
    tuning: Tuning = Field(default_factory=Tuning)


def load_tuning(path: Optional[Path]) -> Tuning:
    if path is None:
        return Tuning()
    data: Any = yaml.safe_load(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        data = {}
    return Tuning.model_validate(data)


def load_settings() -> Settings:
    tuning_file = os.getenv("CREATOR_LENS_TUNING_FILE")
    return Settings(
        openai_api_key=os.getenv("OPENAI_API_KEY"),
        model=os.getenv("CREATOR_LENS_MODEL", "gpt-4o-mini"),
        db_path=os.getenv("CREATOR_LENS_DB_PATH", "creator_lens.db"),
        default_plan=os.getenv("CREATOR_LENS_DEFAULT_PLAN", "creator_pro"),
        default_locale=os.getenv("CREATOR_LENS_LOCALE", "en"),
        strict_invariants=os.getenv("CREATOR_LENS_STRICT", "").lower() in _TRUTHY,
        log_level=os.getenv("CREATOR_LENS_LOG_LEVEL", "INFO").upper(),
        tuning=load_tuning(Path(tuning_file) if tuning_file else None),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()


def reset_settings() -> None:
    get_settings.cache_clear()
