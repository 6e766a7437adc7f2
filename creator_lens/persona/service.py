import asyncio
import logging
import weakref
from typing import Optional

from creator_lens.config import Tuning
from creator_lens.models import (
    EventMeta,
    EventType,
    OnboardingAnswers,
    PersonaEvent,
    PersonaOverlay,
    PersonaProfile,
    PersonaSummary,
)
from creator_lens.persona.model import fold_event, fold_events, new_profile, summarize
from creator_lens.persona.overlay import build_overlay
from creator_lens.storage.store import SQLiteStore

_log = logging.getLogger(__name__)

# One lock per user inside this process; the store's version check covers
# writers in other processes. A lock lives only while some task holds or
# waits on it.
_user_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()


def _lock_for(user_id: str) -> asyncio.Lock:
    lock = _user_locks.get(user_id)
    if lock is None:
        lock = asyncio.Lock()
        _user_locks[user_id] = lock
    return lock


class PersonaService:
    """Event log plus persona profile for each user.

    Events are appended to the log first and then folded into the stored
    profile; an event whose fold fails is taken back out of the log.
    Replaying an event id that is already logged is a no-op.
    """

    def __init__(self, store: SQLiteStore, tuning: Optional[Tuning] = None, *, strict: bool = False) -> None:
        self.store = store
        self.tuning = tuning or Tuning()
        self.strict = strict

    async def record_event(self, event: PersonaEvent) -> PersonaProfile:
        async with _lock_for(event.user_id):
            if not await self.store.insert_event(event):
                _log.info("event %s already logged for %s, skipping fold", event.id, event.user_id)
                profile = await self.store.get_persona(event.user_id)
                return profile if profile is not None else new_profile(event.user_id)
            try:
                profile = await self.store.update_persona(
                    event.user_id,
                    lambda current: fold_event(current, event, self.tuning, strict=self.strict),
                    lambda: new_profile(event.user_id, event.created_at),
                )
            except Exception:
                # Every logged event has been folded; a retry of this id folds again.
                _log.warning("fold of event %s failed for %s, removing it from the log", event.id, event.user_id)
                await self.store.delete_event(event.user_id, event.id)
                raise
        _log.debug("folded %s into persona of %s (v%d)", event.event_type.value, event.user_id, profile.version)
        return profile

    async def seed_onboarding(self, user_id: str, answers: OnboardingAnswers) -> PersonaProfile:
        event = PersonaEvent(
            user_id=user_id,
            event_type=EventType.ONBOARDING,
            meta=EventMeta(onboarding=answers),
        )
        return await self.record_event(event)

    async def get_profile(self, user_id: str) -> Optional[PersonaProfile]:
        return await self.store.get_persona(user_id)

    async def summary(self, user_id: str) -> Optional[PersonaSummary]:
        profile = await self.store.get_persona(user_id)
        return summarize(profile) if profile is not None else None

    async def recalculate(self, user_id: str) -> Optional[PersonaProfile]:
        """Rebuild the profile from the full event log, replacing whatever is stored."""
        async with _lock_for(user_id):
            events = await self.store.list_events(user_id)
            if not events:
                return None
            rebuilt = fold_events(user_id, events, self.tuning, strict=self.strict)
            profile = await self.store.update_persona(
                user_id,
                lambda current: rebuilt.model_copy(update={"created_at": current.created_at}),
                lambda: rebuilt,
            )
        _log.info("rebuilt persona of %s from %d events", user_id, len(events))
        return profile

    async def overlay_for(self, user_id: str, plan_entitled: bool) -> PersonaOverlay:
        profile = await self.store.get_persona(user_id) if plan_entitled else None
        return build_overlay(profile, plan_entitled)
