"""Component-facing handle onto the shared request/cache/subscription engine."""

from __future__ import annotations

import asyncio
import itertools
import logging
from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import ValidationError

from pydatamanager._coordinator import consume_exception
from pydatamanager._signature import RequestSignature, resolve
from pydatamanager.config import DataManagerConfig, get_default_config
from pydatamanager.exceptions import ConfigError, InterpolationError
from pydatamanager.models import DatasourceDefinition, RequestOptions
from pydatamanager.registry import DataRegistry, default_registry
from pydatamanager.results import Cached, ReadResult, Refreshing
from pydatamanager.state.policy import DEFAULT_PRIORITY
from pydatamanager.state.reactive import AutorunFn
from pydatamanager.state.registration import Registration
from pydatamanager.state.subscriptions import Callback, ErrorCallback, Subscription

_logger = logging.getLogger(__name__)

_instance_ids = itertools.count(1)


def _callables(fn_or_fns: AutorunFn | Iterable[AutorunFn]) -> tuple[AutorunFn, ...]:
    if callable(fn_or_fns):
        return (fn_or_fns,)
    return tuple(fn_or_fns)


class DataManager:
    """Holds one component's datasource definitions.

    Definitions are private to the instance; everything keyed by request
    signature (cache, in-flight fetches, subscriber lists, save batches)
    is shared through the :class:`~pydatamanager.registry.DataRegistry`.

    Usage::

        dm = DataManager()
        dm.register(id="user", url="/users/{uid}", transformers=[parse_user])
        dm.subscribe("user", on_user)
        result = dm.get("user", {"uid": 7})
        if isinstance(result, Cached):
            render(result.data)

    The configuration is snapshotted at construction; later calls to
    :func:`~pydatamanager.configure` only affect instances created
    afterwards.
    """

    def __init__(
        self,
        definitions: Iterable[DatasourceDefinition | Mapping[str, Any]] = (),
        *,
        config: DataManagerConfig | None = None,
        registry: DataRegistry | None = None,
        on_error: ErrorCallback | None = None,
    ) -> None:
        self._config = config if config is not None else get_default_config()
        self._registry = registry if registry is not None else default_registry()
        self._instance_id = next(_instance_ids)
        self._on_error = on_error
        self._registrations: dict[str, Registration] = {}
        for definition in definitions:
            self.register(definition)

    @property
    def instance_id(self) -> int:
        return self._instance_id

    @property
    def config(self) -> DataManagerConfig:
        return self._config

    @property
    def registry(self) -> DataRegistry:
        return self._registry

    @property
    def definitions(self) -> dict[str, DatasourceDefinition]:
        return {ident: reg.definition for ident, reg in self._registrations.items()}

    def __contains__(self, ident: object) -> bool:
        return ident in self._registrations

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(
        self,
        definition: DatasourceDefinition | Mapping[str, Any] | None = None,
        /,
        **fields: Any,
    ) -> None:
        """Register a datasource; registering an existing id is a no-op.

        Accepts a :class:`DatasourceDefinition`, a mapping, or keyword
        fields. A definition with ``immediate_params`` is fetched right away.
        """
        if not isinstance(definition, DatasourceDefinition):
            try:
                definition = DatasourceDefinition.model_validate({**(definition or {}), **fields})
            except ValidationError as exc:
                raise ConfigError(f"Invalid datasource definition: {exc}") from exc

        if definition.id in self._registrations:
            _logger.debug("Datasource %r already registered on instance %d", definition.id, self._instance_id)
            return
        self._registrations[definition.id] = Registration(definition, self._instance_id)

        if definition.immediate_params is not None:
            self.get(definition.id, definition.immediate_params)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _registration(self, ident: str) -> Registration:
        try:
            return self._registrations[ident]
        except KeyError:
            raise ConfigError(f"Unknown datasource {ident!r}") from None

    @staticmethod
    def _options(options: RequestOptions | Mapping[str, Any] | None) -> RequestOptions:
        if options is None:
            return RequestOptions()
        if isinstance(options, RequestOptions):
            return options
        try:
            return RequestOptions.model_validate(options)
        except ValidationError as exc:
            raise ConfigError(f"Invalid request options: {exc}") from exc

    def _resolve(
        self,
        reg: Registration,
        params: Mapping[str, Any],
        options: RequestOptions,
        default_method: str = "GET",
    ) -> RequestSignature:
        return resolve(
            reg.definition,
            params,
            options,
            host=self._config.host,
            default_method=default_method,
        )

    def _ttl(self, reg: Registration) -> float | None:
        if reg.definition.ttl is not None:
            return reg.definition.ttl
        return self._config.expires

    def _bind(self, reg: Registration, signature: RequestSignature) -> None:
        """Point *reg* (and its subscriptions) at *signature*."""
        hub = self._registry.subscriptions
        if reg.signature is not None and reg.signature != signature:
            hub.move(reg.signature, signature, self._instance_id, reg.id)
        reg.signature = signature
        for sub in reg.parked:
            hub.subscribe(signature, sub)
        reg.parked.clear()

    def _derive_when_done(self, reg: Registration, future: asyncio.Future[Any]) -> asyncio.Future[Any]:
        async def _derive() -> Any:
            raw = await future
            return reg.read(raw)

        task = asyncio.get_running_loop().create_task(_derive())
        task.add_done_callback(consume_exception)
        return task

    # ------------------------------------------------------------------
    # Reads and writes
    # ------------------------------------------------------------------

    def get(
        self,
        ident: str,
        params: Mapping[str, Any] | None = None,
        options: RequestOptions | Mapping[str, Any] | None = None,
        force: bool = False,
    ) -> ReadResult:
        """Read a datasource through the shared cache.

        Returns :class:`Cached` with this registration's transformed data,
        :class:`Pending` when a fetch was started or joined (subscribers
        are notified once it completes), or, with ``force=True``,
        :class:`Refreshing` which resolves to the transformed fresh data
        after the cache was updated and subscribers were notified.

        Raises
        ------
        ConfigError
            Unknown datasource id or invalid options.
        InterpolationError
            The URL template needs a parameter missing from *params*.
        """
        reg = self._registration(ident)
        opts = self._options(options)
        call_params = dict(params or {})
        signature = self._resolve(reg, call_params, opts)

        reg.last_params = call_params
        self._bind(reg, signature)
        self._registry.reactive.record(signature)

        result = self._registry.coordinator.fetch(
            signature,
            self._config.requester,
            ttl=self._ttl(reg),
            force=force,
            headers=opts.headers,
            middlewares=self._config.middlewares,
        )
        if isinstance(result, Cached):
            return Cached(reg.read(result.data))
        if isinstance(result, Refreshing):
            return Refreshing(self._derive_when_done(reg, result.future))
        return result

    def save(
        self,
        ident: str,
        params: Mapping[str, Any] | None,
        body: Mapping[str, Any],
        options: RequestOptions | Mapping[str, Any] | None = None,
    ) -> asyncio.Future[Any]:
        """Queue a write; concurrent saves to the same request are merged.

        The returned future resolves to the raw response of the single
        batched request. The read cache is not updated; call ``get`` with
        ``force=True`` to observe the server-side effect.
        """
        reg = self._registration(ident)
        opts = self._options(options)
        signature = self._resolve(reg, params or {}, opts, default_method="POST")

        requester = self._config.requester
        if requester is None:
            raise ConfigError("No requester configured; pass one via DataManagerConfig(requester=...)")

        return self._registry.saves.save(
            signature,
            dict(body),
            requester,
            headers=opts.headers,
            middlewares=self._config.middlewares,
            window=self._config.save_window,
        )

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(
        self,
        ident: str,
        callback: Callback,
        priority: int = DEFAULT_PRIORITY,
        *,
        on_error: ErrorCallback | None = None,
    ) -> None:
        """Call ``callback(data, last_params)`` whenever the datasource updates.

        Higher priorities run first. Fetch and transform failures go to
        ``on_error(error, last_params)``, or to the instance's ``on_error``.
        """
        reg = self._registration(ident)
        sub = Subscription(
            signature=None,
            owner_id=self._instance_id,
            datasource_id=reg.id,
            registration=reg,
            callback=callback,
            priority=priority,
            on_error=on_error if on_error is not None else self._on_error,
        )
        if reg.signature is None:
            try:
                reg.signature = self._resolve(reg, reg.last_params, RequestOptions())
            except InterpolationError:
                _logger.debug("Parking subscription on %r until its first get", reg.id)
                reg.parked.append(sub)
                return
        self._registry.subscriptions.subscribe(reg.signature, sub)

    def unsubscribe(self, ident: str, callback: Callback | None = None) -> None:
        """Remove *callback*, or every callback of this datasource when omitted."""
        reg = self._registration(ident)
        reg.parked = [s for s in reg.parked if not s.matches(self._instance_id, reg.id, callback)]
        if reg.signature is not None:
            self._registry.subscriptions.unsubscribe(reg.signature, self._instance_id, reg.id, callback)

    # ------------------------------------------------------------------
    # Reactive re-execution
    # ------------------------------------------------------------------

    def autorun(self, fn_or_fns: AutorunFn | Iterable[AutorunFn]) -> None:
        """Run each function now and again whenever data it read changes."""
        for fn in _callables(fn_or_fns):
            self._registry.reactive.autorun(fn, self._instance_id)

    def autofree(self, fn_or_fns: AutorunFn | Iterable[AutorunFn]) -> None:
        """Stop re-running functions previously passed to :meth:`autorun`."""
        for fn in _callables(fn_or_fns):
            if not self._registry.reactive.autofree(fn, self._instance_id):
                _logger.debug("autofree: %r was not running", fn)

    def dependencies(self, fn: AutorunFn) -> frozenset[RequestSignature]:
        """Signatures *fn* read during its most recent autorun execution."""
        return self._registry.reactive.dependencies(fn, self._instance_id)

