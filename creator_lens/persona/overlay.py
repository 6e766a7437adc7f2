from typing import Optional

from creator_lens.models import (
    CTAStyle,
    FormatType,
    OpeningType,
    OverlayPerformance,
    Pacing,
    PersonaOverlay,
    PersonaProfile,
    Tone,
)
from creator_lens.persona.model import dominant

FALLBACK_TONE = Tone.EDUCATIONAL
FALLBACK_OPENING = OpeningType.QUESTION
FALLBACK_FORMAT = FormatType.LISTICLE
FALLBACK_CTA = CTAStyle.SOFT
FALLBACK_HOOK_LENGTH = 12
FALLBACK_PACING = Pacing.MEDIUM


def disabled_overlay() -> PersonaOverlay:
    return PersonaOverlay(
        enabled=False,
        tone_preference=FALLBACK_TONE,
        tone_strength=0.0,
        opening_preference=FALLBACK_OPENING,
        format_preference=FALLBACK_FORMAT,
        cta_style=FALLBACK_CTA,
        target_hook_length=FALLBACK_HOOK_LENGTH,
        pacing=FALLBACK_PACING,
    )


def build_overlay(profile: Optional[PersonaProfile], plan_entitled: bool) -> PersonaOverlay:
    """Project a persona into the bias object handed to the content generator.

    Never returns ``None``: without a profile or without the personalization
    entitlement the neutral, disabled overlay is returned instead. Ties in a
    weight map resolve to the earliest member of the enum.
    """
    if profile is None or not plan_entitled:
        return disabled_overlay()

    tone = dominant(profile.tone_weights, Tone)
    return PersonaOverlay(
        enabled=True,
        tone_preference=tone,
        tone_strength=min(max(profile.tone_weights[tone], 0.0), 1.0),
        opening_preference=dominant(profile.opening_bias, OpeningType),
        format_preference=dominant(profile.format_bias, FormatType),
        cta_style=profile.cta_style,
        target_hook_length=round(profile.avg_hook_length, 1),
        pacing=profile.pacing,
        performance_insights=OverlayPerformance(
            best_tone=profile.best_performing_tone,
            best_format=profile.best_performing_format,
            avg_score=profile.avg_performance_score,
        ),
    )
