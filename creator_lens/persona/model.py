"""Persona learning: fold behavioural events into a smoothed style profile.

Every function here is pure. ``fold_event`` returns a new profile and never
touches the input, so the store can apply it inside a compare-and-swap loop
and simply re-run it when a concurrent write wins.

Each weight map is nudged toward the tagged category by a step that depends
on how strong the signal is (a save says more than a generation), then
renormalized so it sums to 1.
"""
import math
from datetime import datetime
from enum import Enum
from typing import Iterable, Optional, TypeVar

from creator_lens.config import Tuning
from creator_lens.errors import report_invariant
from creator_lens.models import (
    EventType,
    FormatType,
    OnboardingAnswers,
    OpeningType,
    Pacing,
    PersonaEvent,
    PersonaProfile,
    PersonaSummary,
    ScoreTally,
    Tone,
    uniform,
    utc_now,
)

E = TypeVar("E", bound=Enum)

WEIGHT_TOLERANCE = 1e-6

# Events strong enough to overwrite single-valued preferences (CTA, pacing).
_STRONG_SIGNALS = {EventType.SAVE, EventType.EXPORT, EventType.AB_TEST_WIN}
_OUTCOME_EVENTS = {EventType.AB_TEST_WIN, EventType.RESULT_ADDED}

_PACING_BY_STYLE = {
    "fast_paced": Pacing.FAST,
    "slow_detailed": Pacing.SLOW,
    "balanced": Pacing.MEDIUM,
}
_HOOK_LENGTH_BY_STYLE = {
    "short_punchy": 8.0,
    "long_detailed": 18.0,
    "balanced": 12.0,
}

_SAVES_FOR_CONFIDENT_SUMMARY = 5


def new_profile(user_id: str, now: Optional[datetime] = None) -> PersonaProfile:
    now = now or utc_now()
    return PersonaProfile(user_id=user_id, created_at=now, last_updated_at=now)


# ── Weight-map helpers ───────────────────────────────────────────────────────

def weights_for(profile: PersonaProfile, kind: type[Enum]) -> dict:
    """Exhaustive lookup of the distribution that belongs to a vocabulary."""
    if kind is Tone:
        return profile.tone_weights
    if kind is OpeningType:
        return profile.opening_bias
    if kind is FormatType:
        return profile.format_bias
    raise TypeError(f"no weight map for {kind.__name__}")


def is_normalized(weights: dict, kind: type[Enum]) -> bool:
    if set(weights) != set(kind):
        return False
    if any(w < 0 or not math.isfinite(w) for w in weights.values()):
        return False
    return abs(sum(weights.values()) - 1.0) <= WEIGHT_TOLERANCE


def renormalize(weights: dict, kind: type[E]) -> dict[E, float]:
    """Clamp to non-negative finite values over the full vocabulary and scale to sum 1."""
    cleaned = {}
    for member in kind:
        w = weights.get(member, 0.0)
        cleaned[member] = w if math.isfinite(w) and w > 0 else 0.0
    total = sum(cleaned.values())
    if total <= 0:
        return uniform(kind)
    return {member: w / total for member, w in cleaned.items()}


def nudge(weights: dict, target: E, step: float) -> dict[E, float]:
    kind = type(target)
    bumped = dict(weights)
    bumped[target] = bumped.get(target, 0.0) + step
    return renormalize(bumped, kind)


def dominant(weights: dict, kind: type[E]) -> E:
    """Argmax; ties go to the member declared first in ``kind``."""
    best = None
    best_weight = -1.0
    for member in kind:
        w = weights.get(member, 0.0)
        if w > best_weight:
            best, best_weight = member, w
    return best


def _best_by_average(tallies: dict, kind: type[E]) -> Optional[E]:
    best = None
    best_avg = -1.0
    for member in kind:
        tally = tallies.get(member)
        if tally is None or tally.count == 0:
            continue
        if tally.average > best_avg:
            best, best_avg = member, tally.average
    return best


def _tally(tallies: dict, key: Enum, score: float) -> dict:
    updated = dict(tallies)
    current = updated.get(key, ScoreTally())
    updated[key] = ScoreTally(count=current.count + 1, total=current.total + score)
    return updated


def _ensure_normalized(profile: PersonaProfile, strict: bool) -> None:
    for kind, field in ((Tone, "tone_weights"), (OpeningType, "opening_bias"), (FormatType, "format_bias")):
        weights = getattr(profile, field)
        if not is_normalized(weights, kind):
            report_invariant(
                f"{field} for user {profile.user_id} sums to {sum(weights.values()):.6f}",
                strict=strict,
            )
            setattr(profile, field, renormalize(weights, kind))


# ── Folding ──────────────────────────────────────────────────────────────────

def _apply_onboarding(profile: PersonaProfile, answers: OnboardingAnswers, step: float) -> None:
    if answers.preferred_tone is not None:
        profile.tone_weights = nudge(profile.tone_weights, answers.preferred_tone, step)
    if answers.cta_preference is not None:
        profile.cta_style = answers.cta_preference
    if answers.content_style is not None:
        profile.pacing = _PACING_BY_STYLE[answers.content_style]
    if answers.hook_style is not None:
        profile.avg_hook_length = _HOOK_LENGTH_BY_STYLE[answers.hook_style]
    profile.onboarding_answers = answers


def _apply_outcome(profile: PersonaProfile, event: PersonaEvent, score: float, tuning: Tuning) -> None:
    meta = event.meta
    profile.outcome_samples += 1
    profile.outcome_score_total += score
    if meta.tone is not None:
        profile.tone_outcomes = _tally(profile.tone_outcomes, meta.tone, score)
    if meta.opening_type is not None:
        profile.opening_outcomes = _tally(profile.opening_outcomes, meta.opening_type, score)
    if meta.format is not None:
        profile.format_outcomes = _tally(profile.format_outcomes, meta.format, score)

    if profile.outcome_samples < tuning.min_outcome_samples:
        return
    profile.avg_performance_score = round(profile.outcome_score_total / profile.outcome_samples, 2)
    profile.best_performing_tone = _best_by_average(profile.tone_outcomes, Tone)
    profile.best_performing_opening = _best_by_average(profile.opening_outcomes, OpeningType)
    profile.best_performing_format = _best_by_average(profile.format_outcomes, FormatType)


def fold_event(
    profile: PersonaProfile,
    event: PersonaEvent,
    tuning: Optional[Tuning] = None,
    *,
    strict: bool = False,
) -> PersonaProfile:
    """Return ``profile`` with ``event`` applied. The input is left untouched."""
    tuning = tuning or Tuning()
    if event.user_id != profile.user_id:
        raise ValueError(f"event for {event.user_id!r} folded into profile of {profile.user_id!r}")

    updated = profile.model_copy(deep=True)
    _ensure_normalized(updated, strict)
    meta = event.meta
    kind = event.event_type

    if kind is EventType.ONBOARDING:
        if meta.onboarding is not None:
            _apply_onboarding(updated, meta.onboarding, tuning.onboarding_step)
    else:
        step = tuning.step_for(kind, meta.performance_score)
        if meta.tone is not None:
            updated.tone_weights = nudge(updated.tone_weights, meta.tone, step)
        if meta.opening_type is not None:
            updated.opening_bias = nudge(updated.opening_bias, meta.opening_type, step)
        if meta.format is not None:
            updated.format_bias = nudge(updated.format_bias, meta.format, step)

    if kind is EventType.GENERATION:
        updated.total_generations += 1
        if meta.hook_length is not None:
            n = updated.total_generations
            updated.avg_hook_length += (meta.hook_length - updated.avg_hook_length) / n
    elif kind is EventType.SAVE:
        updated.total_saves += 1
    elif kind is EventType.EXPORT:
        updated.total_exports += 1
    elif kind is EventType.AB_TEST_WIN:
        updated.total_ab_wins += 1

    if kind in _STRONG_SIGNALS:
        if meta.cta_style is not None:
            updated.cta_style = meta.cta_style
        if meta.pacing is not None:
            updated.pacing = meta.pacing

    if kind in _OUTCOME_EVENTS and meta.performance_score is not None:
        _apply_outcome(updated, event, meta.performance_score, tuning)

    _ensure_normalized(updated, strict)
    updated.last_updated_at = max(updated.last_updated_at, event.created_at)
    return updated


def fold_events(
    user_id: str,
    events: Iterable[PersonaEvent],
    tuning: Optional[Tuning] = None,
    *,
    strict: bool = False,
) -> PersonaProfile:
    """Rebuild a profile from scratch by replaying an event log in order."""
    ordered = sorted(events, key=lambda e: e.created_at)
    profile = new_profile(user_id, ordered[0].created_at if ordered else None)
    for event in ordered:
        profile = fold_event(profile, event, tuning, strict=strict)
    return profile


def summarize(profile: PersonaProfile) -> PersonaSummary:
    tone = dominant(profile.tone_weights, Tone)
    save_rate = (
        round(profile.total_saves / profile.total_generations, 2)
        if profile.total_generations > 0
        else 0.0
    )
    return PersonaSummary(
        dominant_tone=tone,
        dominant_tone_percentage=round(profile.tone_weights[tone] * 100),
        best_performing_format=profile.best_performing_format,
        typical_hook_length=round(profile.avg_hook_length, 1),
        cta_style=profile.cta_style,
        pacing=profile.pacing,
        total_content_generated=profile.total_generations,
        save_rate=save_rate,
        has_enough_data=profile.total_saves >= _SAVES_FOR_CONFIDENT_SUMMARY,
    )
