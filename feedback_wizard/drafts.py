"""Debounced, versioned draft persistence.

A :class:`DraftStore` gives a stateful flow a recoverable scratch pad:
the in-memory value is updated synchronously and written to a
:class:`~feedback_wizard.storage.KeyValueStore` once edits go quiet for
``debounce_ms``. Stored drafts carry a timestamp and a schema version;
on open, anything that is unreadable, from another version, older than
``max_age_ms`` or refused by the caller's decoder is deleted and the
caller's initial data is used instead.

Storage failures never leave this module. They are logged and the flow
carries on without persistence.
"""

from __future__ import annotations

import atexit
import json
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Generic, Optional, TypeVar, Union

from .models import DraftEnvelope, DraftRejectedError, StorageError, WizardClosedError
from .scheduler import Scheduler, ThreadingScheduler, TimerHandle, epoch_ms
from .storage import KeyValueStore
from .wizard_logging import log_draft_event, log_error_with_context

T = TypeVar("T")

logger = logging.getLogger("feedback_wizard.drafts")

DEFAULT_VERSION = 1
DEFAULT_DEBOUNCE_MS = 1000
DEFAULT_MAX_AGE_MS = 7 * 24 * 60 * 60 * 1000


@dataclass(slots=True, frozen=True)
class Restored(Generic[T]):
    """A trusted draft was found; ``data`` is the stored payload."""

    data: T
    saved_at: int

    @property
    def was_restored(self) -> bool:
        return True


@dataclass(slots=True, frozen=True)
class Fresh(Generic[T]):
    """No trusted draft; ``data`` is the caller's initial value."""

    data: T
    reason: str = "absent"

    @property
    def was_restored(self) -> bool:
        return False


OpenResult = Union[Restored[T], Fresh[T]]


def draft_key(key: str, project_id: Optional[str] = None) -> str:
    """Scope a storage key to a project."""
    return f"{key}_{project_id}" if project_id else key


def _identity(value: Any) -> Any:
    return value


def _discard(store: KeyValueStore, key: str, initial_data: T, reason: str) -> Fresh[T]:
    logger.info(f"Discarding draft '{key}': {reason}")
    try:
        store.delete(key)
    except StorageError as e:
        log_error_with_context(e, {"operation": "discard_draft", "key": key})
    log_draft_event("discarded", key, reason=reason)
    return Fresh(initial_data, reason=reason)


def read_draft(
    store: KeyValueStore,
    key: str,
    initial_data: T,
    *,
    version: int = DEFAULT_VERSION,
    max_age_ms: int = DEFAULT_MAX_AGE_MS,
    now: Optional[int] = None,
    decode: Callable[[Any], T] = _identity,
) -> OpenResult:
    """Resolve the draft stored under ``key`` into Restored or Fresh.

    Never raises: every failure path yields ``Fresh(initial_data)``.
    Envelopes that exist but cannot be trusted are deleted.
    """
    now = epoch_ms() if now is None else now

    try:
        raw = store.get(key)
    except StorageError as e:
        log_error_with_context(e, {"operation": "read_draft", "key": key})
        return Fresh(initial_data, reason="storage_unavailable")

    if raw is None:
        return Fresh(initial_data)

    try:
        envelope = DraftEnvelope.from_dict(json.loads(raw))
    except (ValueError, OverflowError, RecursionError, DraftRejectedError) as e:
        return _discard(store, key, initial_data, f"corrupt: {e}")

    if not envelope.is_valid(version=version, now=now, max_age=max_age_ms):
        if envelope.version != version:
            reason = f"version {envelope.version} != {version}"
        else:
            reason = f"stale ({now - envelope.timestamp}ms old)"
        return _discard(store, key, initial_data, reason)

    try:
        data = decode(envelope.data)
    except (DraftRejectedError, KeyError, TypeError, ValueError) as e:
        return _discard(store, key, initial_data, f"rejected: {e}")

    log_draft_event("restored", key, version=version, age_ms=now - envelope.timestamp)
    return Restored(data, saved_at=envelope.timestamp)


class DraftStore(Generic[T]):
    """Owns one draft key: in-memory value, debounce timer and observables.

    Use :meth:`open` to build one. ``close()`` (or leaving the ``with``
    block) cancels the pending timer and writes synchronously if there
    are unsaved changes; ``on_unload()`` does the same flush without
    closing.
    """

    def __init__(
        self,
        store: KeyValueStore,
        key: str,
        result: OpenResult,
        *,
        version: int = DEFAULT_VERSION,
        debounce_ms: int = DEFAULT_DEBOUNCE_MS,
        scheduler: Optional[Scheduler] = None,
        clock: Callable[[], int] = epoch_ms,
        encode: Callable[[T], Any] = _identity,
        flush_at_exit: bool = False,
    ) -> None:
        self.store = store
        self.key = key
        self.version = version
        self.debounce_ms = debounce_ms
        self.result = result
        self._scheduler = scheduler or ThreadingScheduler()
        self._clock = clock
        self._encode = encode
        self._lock = threading.RLock()
        self._data: T = result.data
        self._timer: Optional[TimerHandle] = None
        self._generation = 0
        self._has_unsaved_changes = False
        self._last_saved: Optional[datetime] = (
            self._to_datetime(clock()) if result.was_restored else None
        )
        self._closed = False
        self._flush_at_exit = flush_at_exit
        if flush_at_exit:
            atexit.register(self.on_unload)

    @classmethod
    def open(
        cls,
        store: KeyValueStore,
        key: str,
        initial_data: T,
        *,
        version: int = DEFAULT_VERSION,
        max_age_ms: int = DEFAULT_MAX_AGE_MS,
        debounce_ms: int = DEFAULT_DEBOUNCE_MS,
        scheduler: Optional[Scheduler] = None,
        clock: Callable[[], int] = epoch_ms,
        encode: Callable[[T], Any] = _identity,
        decode: Callable[[Any], T] = _identity,
        flush_at_exit: bool = False,
    ) -> "DraftStore[T]":
        result = read_draft(
            store,
            key,
            initial_data,
            version=version,
            max_age_ms=max_age_ms,
            now=clock(),
            decode=decode,
        )
        return cls(
            store,
            key,
            result,
            version=version,
            debounce_ms=debounce_ms,
            scheduler=scheduler,
            clock=clock,
            encode=encode,
            flush_at_exit=flush_at_exit,
        )

    # ------------------------------------------------------------------
    # Observables
    # ------------------------------------------------------------------

    @property
    def data(self) -> T:
        return self._data

    @property
    def was_restored(self) -> bool:
        return self.result.was_restored

    @property
    def has_unsaved_changes(self) -> bool:
        return self._has_unsaved_changes

    @property
    def last_saved(self) -> Optional[datetime]:
        return self._last_saved

    @property
    def has_pending_save(self) -> bool:
        return self._timer is not None

    @property
    def closed(self) -> bool:
        return self._closed

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def set_data(self, value: Union[T, Callable[[T], T]]) -> T:
        """Replace the value, or apply ``value(previous)``, then schedule a save."""
        with self._lock:
            self._ensure_open()
            self._data = value(self._data) if callable(value) else value
            self.schedule_save()
            return self._data

    def schedule_save(self) -> None:
        """Cancel any pending write and arm a new one ``debounce_ms`` from now."""
        with self._lock:
            self._ensure_open()
            self._has_unsaved_changes = True
            self._cancel_timer()
            generation = self._generation
            self._timer = self._scheduler.call_later(self.debounce_ms, lambda: self._on_timer(generation))

    def save_now(self) -> bool:
        """Cancel any pending write and write immediately."""
        with self._lock:
            self._cancel_timer()
            return self._write()

    def clear(self) -> None:
        """Forget the stored draft and reset the save observables."""
        with self._lock:
            self._cancel_timer()
            try:
                self.store.delete(self.key)
            except StorageError as e:
                log_error_with_context(e, {"operation": "clear_draft", "key": self.key})
            self._has_unsaved_changes = False
            self._last_saved = None
        log_draft_event("cleared", self.key)

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    def on_unload(self) -> None:
        """Flush unsaved changes synchronously, cancelling the pending timer."""
        with self._lock:
            self._cancel_timer()
            if self._has_unsaved_changes:
                self._write()

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self.on_unload()
            self._closed = True
        if self._flush_at_exit:
            atexit.unregister(self.on_unload)

    def __enter__(self) -> "DraftStore[T]":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _ensure_open(self) -> None:
        if self._closed:
            raise WizardClosedError(f"Draft '{self.key}' is closed")

    def _cancel_timer(self) -> None:
        # Bumping the generation also neutralises a threading timer that
        # already fired and is waiting on the lock.
        self._generation += 1
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_timer(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation or self._closed:
                return
            self._timer = None
            self._write()

    def _write(self) -> bool:
        timestamp = self._clock()
        try:
            envelope = DraftEnvelope(data=self._encode(self._data), timestamp=timestamp, version=self.version)
            payload = json.dumps(envelope.to_dict())
            self.store.set(self.key, payload)
        except (StorageError, TypeError, ValueError) as e:
            log_error_with_context(e, {"operation": "save_draft", "key": self.key})
            log_draft_event("save_failed", self.key, error_type=type(e).__name__)
            return False
        self._has_unsaved_changes = False
        self._last_saved = self._to_datetime(timestamp)
        log_draft_event("saved", self.key, bytes=len(payload))
        return True

    @staticmethod
    def _to_datetime(ms: int) -> datetime:
        return datetime.fromtimestamp(ms / 1000.0, tz=timezone.utc)
