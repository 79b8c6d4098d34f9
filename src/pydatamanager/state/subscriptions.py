"""Per-signature subscriber lists and update dispatch."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from pydatamanager._signature import RequestSignature
from pydatamanager.exceptions import DataManagerError, TransformError
from pydatamanager.state.policy import DEFAULT_PRIORITY, insertion_index
from pydatamanager.state.registration import Registration

_logger = logging.getLogger(__name__)

Callback = Callable[[Any, dict[str, Any]], None]
"""``(data, last_params)``"""

ErrorCallback = Callable[[DataManagerError, dict[str, Any]], None]
"""``(error, last_params)``"""


@dataclass(eq=False, slots=True)
class Subscription:
    """A callback attached to one signature.

    ``registration`` is ``None`` for autorun wrappers, which receive the
    raw response untransformed.
    """

    signature: RequestSignature | None
    owner_id: int
    datasource_id: str | None
    registration: Registration | None
    callback: Callback
    priority: int = DEFAULT_PRIORITY
    on_error: ErrorCallback | None = None
    active: bool = True

    @property
    def last_params(self) -> dict[str, Any]:
        if self.registration is None:
            return {}
        return self.registration.last_params

    def matches(self, owner_id: int, datasource_id: str | None, callback: Callback | None) -> bool:
        if self.owner_id != owner_id or self.datasource_id != datasource_id:
            return False
        return callback is None or self.callback == callback


class SubscriptionHub:
    """Priority-ordered subscriber lists keyed by request signature.

    Lists are kept in descending priority; equal priorities keep
    registration order. Dispatch iterates a snapshot, so callbacks may
    subscribe or unsubscribe (or trigger further reads) while a dispatch
    is in progress: removed subscriptions are skipped, added ones wait for
    the next dispatch.
    """

    def __init__(self) -> None:
        self._subscriptions: dict[RequestSignature, list[Subscription]] = {}

    def subscriptions(self, signature: RequestSignature) -> list[Subscription]:
        return list(self._subscriptions.get(signature, ()))

    def __contains__(self, signature: object) -> bool:
        return bool(self._subscriptions.get(signature))  # type: ignore[call-overload]

    def subscribe(self, signature: RequestSignature, subscription: Subscription) -> Subscription:
        subs = self._subscriptions.setdefault(signature, [])
        index = insertion_index([s.priority for s in subs], subscription.priority)
        subscription.signature = signature
        subscription.active = True
        subs.insert(index, subscription)
        return subscription

    def _take(
        self,
        signature: RequestSignature,
        owner_id: int,
        datasource_id: str | None,
        callback: Callback | None,
    ) -> list[Subscription]:
        subs = self._subscriptions.get(signature)
        if not subs:
            return []
        taken = [s for s in subs if s.matches(owner_id, datasource_id, callback)]
        if not taken:
            return []
        taken_ids = {id(s) for s in taken}
        remaining = [s for s in subs if id(s) not in taken_ids]
        if remaining:
            self._subscriptions[signature] = remaining
        else:
            del self._subscriptions[signature]
        return taken

    def unsubscribe(
        self,
        signature: RequestSignature,
        owner_id: int,
        datasource_id: str | None,
        callback: Callback | None = None,
    ) -> int:
        """Remove *callback* (or every callback of the pair when ``None``).

        Returns the number of subscriptions removed.
        """
        taken = self._take(signature, owner_id, datasource_id, callback)
        for sub in taken:
            sub.active = False
        return len(taken)

    def move(
        self,
        old: RequestSignature,
        new: RequestSignature,
        owner_id: int,
        datasource_id: str,
    ) -> int:
        """Rebind a registration's subscriptions from *old* to *new*."""
        if old == new:
            return 0
        taken = self._take(old, owner_id, datasource_id, None)
        for sub in taken:
            self.subscribe(new, sub)
        if taken:
            _logger.debug("Moved %d subscription(s) of %r to %s", len(taken), datasource_id, new)
        return len(taken)

    def dispatch(self, signature: RequestSignature, raw: Any) -> None:
        """Deliver *raw* to every active subscription of *signature*."""
        snapshot = list(self._subscriptions.get(signature, ()))
        _logger.debug("Dispatching %s to %d subscription(s)", signature, len(snapshot))
        # The pipeline runs once per registration per dispatch.
        derived: dict[int, Any] = {}
        failed: dict[int, TransformError] = {}
        for sub in snapshot:
            if not sub.active:
                continue
            registration = sub.registration
            if registration is None:
                data = raw
            else:
                key = id(registration)
                if key in failed:
                    self._notify_error(sub, failed[key])
                    continue
                if key not in derived:
                    try:
                        derived[key] = registration.derive(raw)
                    except TransformError as exc:
                        _logger.warning("Transform failed for %r on %s", registration.id, signature, exc_info=True)
                        failed[key] = exc
                        self._notify_error(sub, exc)
                        continue
                data = derived[key]
            try:
                sub.callback(data, sub.last_params)
            except Exception:
                _logger.warning("Subscriber callback for %s failed", signature, exc_info=True)

    def dispatch_error(self, signature: RequestSignature, error: DataManagerError) -> None:
        """Deliver a fetch failure to the error channel of each subscription."""
        for sub in list(self._subscriptions.get(signature, ())):
            if sub.active:
                self._notify_error(sub, error)

    @staticmethod
    def _notify_error(sub: Subscription, error: DataManagerError) -> None:
        if sub.on_error is None:
            return
        try:
            sub.on_error(error, sub.last_params)
        except Exception:
            _logger.warning("Error callback for %s failed", sub.signature, exc_info=True)
