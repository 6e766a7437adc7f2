import logging
import os
from typing import Optional

from openai import OpenAI, OpenAIError

from creator_lens.collaborators import HookRequest, SummaryRequest
from creator_lens.utils import llm_call_with_retry

_log = logging.getLogger(__name__)

HOOK_SYSTEM_PROMPT = """You write opening hooks for short-form social video and posts.

Given a platform, tone, content format and target length, write ONE hook the
creator could say or show in the first seconds. Match the tone exactly and stay
close to the target word count.

Return only the hook text: no quotes, no hashtags, no explanation."""

SUMMARY_SYSTEM_PROMPT = """You are a content performance analyst for creators.

Given last week's numbers and the observations below, write a 2-3 sentence
summary in plain language: what happened, what worked best, and where to focus
next. Do not invent numbers that are not given.

Return only the summary text."""

_LANGUAGE = {"en": "English", "tr": "Turkish"}


def _clean(text: Optional[str]) -> Optional[str]:
    if not text:
        return None
    cleaned = text.strip().strip('"').strip("“”").strip()
    return cleaned or None


class OpenAIContentGenerator:
    """``ContentGenerator`` backed by OpenAI chat completions.

    Any API failure is logged and turned into ``None`` so the caller can skip
    the item instead of failing the whole batch.
    """

    def __init__(self, model: str = "gpt-4o-mini", api_key: Optional[str] = None) -> None:
        self.model = model
        self.api_key = api_key or os.getenv("OPENAI_API_KEY")

    def _complete(self, system_prompt: str, user_content: str) -> Optional[str]:
        client = OpenAI(api_key=self.api_key)
        try:
            response = llm_call_with_retry(
                client.chat.completions.create,
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_content},
                ],
            )
        except OpenAIError as exc:
            _log.warning("OpenAI call failed: %s", exc)
            return None
        return _clean(response.choices[0].message.content)

    def generate_hook(self, request: HookRequest) -> Optional[str]:
        language = _LANGUAGE.get(request.locale, "English")
        lines = [
            f"Platform: {request.platform.value}",
            f"Tone: {request.tone.value}",
            f"Format: {request.format.value}",
            f"Target length: about {round(request.target_hook_length)} words",
            f"Language: {language}",
        ]
        if request.niche:
            lines.append(f"Niche: {request.niche}")
        if request.is_exploration:
            lines.append("This is an experiment with a style the creator has not tried yet.")
        elif request.avg_engagement_rate is not None:
            lines.append(f"This pattern averages {request.avg_engagement_rate:.1f}% engagement for the creator.")
        if request.reference_preview:
            lines.append(f'Their best post in this pattern opened with: "{request.reference_preview}"')
        overlay = request.overlay
        if overlay is not None and overlay.enabled:
            lines.append(
                f"Creator persona: prefers a {overlay.tone_preference.value} tone "
                f"(strength {overlay.tone_strength:.2f}), {overlay.opening_preference.value} openings, "
                f"{overlay.pacing.value} pacing"
            )
        return self._complete(HOOK_SYSTEM_PROMPT, "\n".join(lines))

    def generate_summary(self, request: SummaryRequest) -> Optional[str]:
        language = _LANGUAGE.get(request.locale, "English")
        observations = "\n".join(f"- {r}" for r in request.recommendations) or "- none"
        user_content = (
            f"Language: {language}\n"
            f"Posts: {request.total_content}\n"
            f"Total views: {request.total_views}\n"
            f"Average engagement rate: {request.avg_engagement_rate:.1f}%\n"
            f"Views change vs previous week: {request.views_change:+.1f}%\n"
            f"Best tone: {request.best_tone or 'unknown'}\n"
            f"Best format: {request.best_format or 'unknown'}\n"
            f"Best platform: {request.best_platform or 'unknown'}\n\n"
            f"Observations:\n{observations}"
        )
        return self._complete(SUMMARY_SYSTEM_PROMPT, user_content)
