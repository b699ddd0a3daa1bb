"""
Component Registry
==================

Loads, certifies and caches optional analysis components.

A component is registered under a name together with a loader (a
zero-argument callable, sync or async, or a ``"module:attribute"`` import
path) and a capability category. Nothing is loaded at registration time.
On first use the loader runs under a load timeout; a returned class is
constructed (stateful component) and the resulting object is validated
against its category schema. An optional ``is_available()`` self-check
is honoured. Every failure is recorded as ``unavailable`` with a reason
and never raised.

The registry is an explicit object: build one at startup and pass it to
the orchestrator. Tests construct their own with fake components.
"""

from __future__ import annotations

import asyncio
import importlib
import inspect
import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field, replace
from typing import Any, TypeVar

from cognition.components.capabilities import CapabilitySchema, schema_for
from cognition.core.config import settings
from cognition.core.exceptions import ComponentValidationError
from cognition.core.types import AvailabilityState, ComponentCategory
from cognition.infra.telemetry.metrics import PipelineMetrics
from cognition.utils.cancellation import CancellationToken, run_with_deadline
from cognition.utils.invocation import invoke

logger = logging.getLogger(__name__)

T = TypeVar("T")

Loader = Callable[[], Any] | str

@dataclass(frozen=True, slots=True)
class AnalysisComponent:
    """Registry entry for one component. Replaced wholesale on every state change."""

    name: str
    category: ComponentCategory
    loader: Loader
    priority: int = 2
    critical: bool = False
    state: AvailabilityState = AvailabilityState.UNCHECKED
    reason: str | None = None
    last_checked: float | None = None  # wall-clock seconds
    load_duration_ms: float | None = None
    instance: Any = field(default=None, repr=False, compare=False)

    @property
    def available(self) -> bool:
        return self.state == AvailabilityState.AVAILABLE

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "category": self.category.value,
            "state": self.state.value,
            "reason": self.reason,
            "last_checked": self.last_checked,
            "load_duration_ms": (
                round(self.load_duration_ms, 2) if self.load_duration_ms is not None else None
            ),
            "priority": self.priority,
            "critical": self.critical,
        }

@dataclass(slots=True)
class _RegistryStats:
    load_attempts: int = 0
    load_failures: int = 0
    cache_hits: int = 0
    invalidations: int = 0

class ComponentRegistry:
    """
    Name-keyed cache of certified components.

    Usage:
        registry = ComponentRegistry()
        registry.register("meta-analyzer", MetaAnalyzer, "meta_analyzer")
        if await registry.check_availability("meta-analyzer"):
            analyzer = await registry.get("meta-analyzer")
    """

    def __init__(
        self,
        *,
        load_timeout_s: float | None = None,
        metrics: PipelineMetrics | None = None,
    ) -> None:
        self._entries: dict[str, AnalysisComponent] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._load_timeout_s = (
            load_timeout_s if load_timeout_s is not None else settings.COMPONENT_LOAD_TIMEOUT_S
        )
        self._metrics = metrics
        self._stats = _RegistryStats()

    # ── Registration ─────────────────────────────────────────────────────

    def register(
        self,
        name: str,
        loader: Loader,
        category: ComponentCategory | str,
        *,
        priority: int = 2,
        critical: bool = False,
    ) -> None:
        """Register (or replace) a component. Loading is deferred to first use."""
        category = ComponentCategory(category)
        if name in self._entries:
            logger.info("Component '%s' re-registered, cached instance dropped", name)
        self._entries[name] = AnalysisComponent(
            name=name,
            category=category,
            loader=loader,
            priority=priority,
            critical=critical,
        )

    def unregister(self, name: str) -> None:
        self._entries.pop(name, None)
        self._locks.pop(name, None)

    def is_registered(self, name: str) -> bool:
        return name in self._entries

    def names(self) -> list[str]:
        return list(self._entries)

    def entry(self, name: str) -> AnalysisComponent | None:
        """Current registry entry without triggering a load."""
        return self._entries.get(name)

    # ── Availability / access ────────────────────────────────────────────

    async def check_availability(self, name: str) -> bool:
        """Load and certify on first call; later calls return the cached verdict."""
        entry = self._entries.get(name)
        if entry is None:
            return False
        if entry.state != AvailabilityState.UNCHECKED:
            self._stats.cache_hits += 1
            return entry.available

        lock = self._locks.setdefault(name, asyncio.Lock())
        async with lock:
            # Another task may have finished the load while we waited
            entry = self._entries.get(name)
            if entry is None:
                return False
            if entry.state == AvailabilityState.UNCHECKED:
                loading = entry
                entry = await self._load(loading)
                # unregistered or re-registered mid-load: the newer registration wins
                if self._entries.get(name) is not loading:
                    logger.info("Component '%s' changed during load, result discarded", name)
                    current = self._entries.get(name)
                    return current.available if current is not None else False
                self._entries[name] = entry
            else:
                self._stats.cache_hits += 1
        return entry.available

    async def get(self, name: str) -> Any | None:
        """Return the certified component instance, or None."""
        if not await self.check_availability(name):
            return None
        entry = self._entries.get(name)
        return entry.instance if entry is not None else None

    async def get_typed(self, name: str, interface: type[T]) -> T | None:
        """Return the component only if it satisfies ``interface``."""
        component = await self.get(name)
        if component is None or not isinstance(component, interface):
            return None
        return component

    # ── Cache management ─────────────────────────────────────────────────

    def invalidate(self, name: str) -> None:
        """Drop the cached instance; the next access reloads it."""
        entry = self._entries.get(name)
        if entry is None:
            return
        self._entries[name] = replace(
            entry,
            state=AvailabilityState.UNCHECKED,
            reason=None,
            instance=None,
            load_duration_ms=None,
        )
        self._stats.invalidations += 1
        logger.debug("Component '%s' invalidated", name)

    async def reload(self, name: str) -> bool:
        self.invalidate(name)
        return await self.check_availability(name)

    def clear(self) -> None:
        """Invalidate every entry."""
        for name in list(self._entries):
            self.invalidate(name)

    async def initialize(self, names: Iterable[str] | None = None) -> dict[str, Any]:
        """
        Load components priority group by priority group.

        Lower priority numbers load first; members of one group load
        concurrently. Returns the validation report.
        """
        selected = [
            self._entries[n] for n in (names if names is not None else self._entries)
            if n in self._entries
        ]
        groups: dict[int, list[str]] = {}
        for entry in selected:
            groups.setdefault(entry.priority, []).append(entry.name)

        for priority in sorted(groups):
            members = groups[priority]
            await asyncio.gather(*(self.check_availability(n) for n in members))
            logger.info(
                "Priority %d components initialized: %d/%d available",
                priority,
                sum(1 for n in members if self._entries[n].available),
                len(members),
            )

        missing = self.check_critical()
        if missing:
            logger.warning("Critical components unavailable: %s", ", ".join(missing))
        return self.validation_report()

    # ── Loading ──────────────────────────────────────────────────────────

    async def _load(self, entry: AnalysisComponent) -> AnalysisComponent:
        schema = schema_for(entry.category)
        self._stats.load_attempts += 1
        start = time.perf_counter()
        instance: Any = None
        reason: str | None = None

        try:
            instance = await run_with_deadline(
                self._materialize(entry), self._load_timeout_s, CancellationToken()
            )
            self._certify(entry.name, schema, instance)
            if not await self._self_check(instance):
                reason = "self-check reported unavailable"
        except TimeoutError:
            reason = f"load timed out after {self._load_timeout_s:.1f}s"
        except ComponentValidationError as exc:
            reason = exc.detail
        except Exception as exc:  # loader/constructor failures are recorded, never raised
            reason = f"load error: {type(exc).__name__}: {exc}"

        duration_ms = (time.perf_counter() - start) * 1000
        state = AvailabilityState.AVAILABLE if reason is None else AvailabilityState.UNAVAILABLE
        if reason is None:
            logger.info(
                "Component '%s' loaded (%s) in %.1fms", entry.name, entry.category.value, duration_ms
            )
        else:
            self._stats.load_failures += 1
            logger.warning("Component '%s' unavailable: %s", entry.name, reason)

        if self._metrics is not None:
            self._metrics.record_component_load(entry.category.value, state.value)

        return replace(
            entry,
            state=state,
            reason=reason,
            last_checked=time.time(),
            load_duration_ms=duration_ms,
            instance=instance if reason is None else None,
        )

    async def _materialize(self, entry: AnalysisComponent) -> Any:
        loader = entry.loader
        if isinstance(loader, str):
            obj = await asyncio.to_thread(_import_target, loader)
        else:
            # sync loaders and constructors run off-loop so the load timeout applies
            obj = await invoke(loader)

        if obj is None:
            raise LookupError("loader returned nothing")
        if inspect.isclass(obj):
            obj = await asyncio.to_thread(obj)
        return obj

    @staticmethod
    def _certify(name: str, schema: CapabilitySchema, instance: Any) -> None:
        missing = schema.missing_operations(instance)
        if missing:
            raise ComponentValidationError(name, missing)

    @staticmethod
    async def _self_check(instance: Any) -> bool:
        probe = getattr(instance, "is_available", None)
        if probe is None:
            return True
        if not callable(probe):
            return bool(probe)
        return bool(await invoke(probe))

    # ── Reporting ────────────────────────────────────────────────────────

    def check_critical(self) -> list[str]:
        """Names of critical components that are known to be unavailable."""
        return [
            e.name for e in self._entries.values()
            if e.critical and e.state == AvailabilityState.UNAVAILABLE
        ]

    def validation_report(self) -> dict[str, Any]:
        return {
            name: {**entry.to_dict(), "stateful": schema_for(entry.category).stateful}
            for name, entry in self._entries.items()
        }

    def initialization_status(self) -> dict[str, Any]:
        counts = {state.value: 0 for state in AvailabilityState}
        for entry in self._entries.values():
            counts[entry.state.value] += 1
        return {
            "total": len(self._entries),
            **counts,
            "critical_unavailable": self.check_critical(),
        }

    def get_stats(self) -> dict[str, Any]:
        return {
            "registered": len(self._entries),
            "load_attempts": self._stats.load_attempts,
            "load_failures": self._stats.load_failures,
            "cache_hits": self._stats.cache_hits,
            "invalidations": self._stats.invalidations,
        }

def _import_target(path: str) -> Any:
    """Resolve ``"package.module:attr.sub"`` (attribute part optional)."""
    module_path, _, attr_path = path.partition(":")
    obj: Any = importlib.import_module(module_path)
    for part in filter(None, attr_path.split(".")):
        obj = getattr(obj, part)
    return obj

__all__ = ["AnalysisComponent", "ComponentRegistry", "Loader"]
