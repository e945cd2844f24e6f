"""Dependency resolution over the module catalog.

Expands a requested module list into its closure over *required* edges,
checks the closure for declared conflicts, and produces a deterministic
install order with Kahn's algorithm.  Ties between modules that are ready at
the same time are broken lexicographically with a min-heap, so the order
depends only on the catalog and the *set* of requested modules.
"""

from __future__ import annotations

import heapq
from collections import deque
from typing import Iterable

from modforge.catalog import ModuleCatalog, ModuleInfo
from modforge.diagnostics import Diagnostic, DiagnosticKind
from modforge.errors import ConflictDetectedError, DependencyCycleError

from .models import ResolutionPlan


# Modules that provide identity; a closure without either gets a warning.
CORE_MODULES: tuple[str, ...] = ("user", "auth")

# (suggested module, requested modules that trigger it, reason)
RECOMMENDATION_RULES: tuple[tuple[str, frozenset[str], str], ...] = (
    ("audit", frozenset({"invoice", "payment"}), "Financial modules benefit from audit logging for compliance"),
    ("realtime", frozenset({"chat", "collaboration"}), "Interactive modules work better with real-time capabilities"),
)

# Closures larger than this get an observability recommendation.
OBSERVABILITY_THRESHOLD = 3


class DependencyResolver:
    """Resolve requested modules against a :class:`ModuleCatalog`."""

    def __init__(self, catalog: ModuleCatalog) -> None:
        self.catalog = catalog

    # -- Public API --------------------------------------------------------

    def resolve(self, requested: Iterable[str], *, observability: bool = False) -> ResolutionPlan:
        """Build a :class:`ResolutionPlan` for *requested*.

        Never raises for conflicts or cycles; inspect ``plan.is_valid`` or
        call :meth:`resolve_or_raise`.  Pass ``observability=True`` when the
        project already enables monitoring to suppress that recommendation.
        """
        plan = ResolutionPlan(requested=_dedupe(requested))
        if not plan.requested:
            plan.diagnostics.append(
                Diagnostic(
                    kind=DiagnosticKind.EMPTY_REQUEST,
                    message="No modules requested; only the base scaffold will be generated",
                )
            )
            return plan

        closure, infos = self._expand(plan)
        plan.module_versions = {
            name: info.version for name, info in sorted(infos.items()) if info.version
        }
        self._note_optionals(plan, closure, infos)
        _recommend(plan, closure, observability)

        plan.conflicts = _find_conflicts(closure, infos)
        if plan.conflicts:
            for a, b in plan.conflicts:
                plan.diagnostics.append(
                    Diagnostic(
                        kind=DiagnosticKind.CONFLICT,
                        message=f"Modules '{a}' and '{b}' cannot be installed together",
                        module=a,
                    )
                )
            plan.required_modules = closure
            return plan

        order, leftover = _topological_order(closure, infos)
        if leftover:
            plan.cycles = _cyclic_components(leftover, infos)
            for members in plan.cycles:
                plan.diagnostics.append(
                    Diagnostic(
                        kind=DiagnosticKind.DEPENDENCY_CYCLE,
                        message=(
                            f"Dependency cycle through '{members[0]}' "
                            f"(members: {', '.join(members)})"
                        ),
                        module=members[0],
                    )
                )
            plan.required_modules = closure
            return plan

        plan.install_order = order
        plan.required_modules = list(order)
        return plan

    def resolve_or_raise(self, requested: Iterable[str], *, observability: bool = False) -> ResolutionPlan:
        """Like :meth:`resolve` but raise when the plan is invalid.

        Raises:
            ConflictDetectedError: The closure contains conflicting modules.
            DependencyCycleError: The closure's required edges form a cycle.
        """
        plan = self.resolve(requested, observability=observability)
        if plan.conflicts:
            raise ConflictDetectedError(plan.conflicts)
        if plan.cycles:
            raise DependencyCycleError(plan.cycles)
        return plan

    # -- Closure expansion -------------------------------------------------

    def _expand(self, plan: ResolutionPlan) -> tuple[list[str], dict[str, ModuleInfo]]:
        """Breadth-first closure over required edges.

        Returns the closure in discovery order and the catalog entries of its
        known members.  Unknown ids stay in the closure as custom modules.
        """
        closure: list[str] = []
        seen: set[str] = set()
        infos: dict[str, ModuleInfo] = {}
        queue: deque[str] = deque()

        for module_id in plan.requested:
            seen.add(module_id)
            closure.append(module_id)
            queue.append(module_id)

        while queue:
            module_id = queue.popleft()
            info = self.catalog.lookup(module_id)
            if info is None:
                plan.diagnostics.append(
                    Diagnostic(
                        kind=DiagnosticKind.UNKNOWN_MODULE,
                        message=f"Module '{module_id}' is not in the catalog; treating it as a custom module",
                        module=module_id,
                    )
                )
                continue
            infos[module_id] = info
            for dep in info.required:
                if dep not in seen:
                    seen.add(dep)
                    closure.append(dep)
                    queue.append(dep)

        return closure, infos

    def _note_optionals(
        self,
        plan: ResolutionPlan,
        closure: list[str],
        infos: dict[str, ModuleInfo],
    ) -> None:
        """Record optional targets missing from the closure (never adds nodes)."""
        members = set(closure)
        suggested: set[str] = set()
        for module_id in closure:
            info = infos.get(module_id)
            if info is None:
                continue
            for optional in info.optional:
                if optional in members:
                    continue
                suggested.add(optional)
                plan.diagnostics.append(
                    Diagnostic(
                        kind=DiagnosticKind.MISSING_OPTIONAL,
                        message=f"Module '{module_id}' can use optional module '{optional}', which is not selected",
                        module=module_id,
                    )
                )
        plan.optional_modules = sorted(suggested)


# ---------------------------------------------------------------------------
# Graph helpers
# ---------------------------------------------------------------------------


def _dedupe(items: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    result: list[str] = []
    for item in items:
        if item not in seen:
            seen.add(item)
            result.append(item)
    return result


def _recommend(plan: ResolutionPlan, closure: list[str], observability: bool) -> None:
    """Append missing-core and recommendation diagnostics (never adds nodes)."""
    members = set(closure)
    if not members & set(CORE_MODULES):
        plan.diagnostics.append(
            Diagnostic(
                kind=DiagnosticKind.MISSING_CORE,
                message="No core authentication modules detected; consider adding 'user' and 'auth'",
            )
        )

    requested = set(plan.requested)
    for module_id, triggers, reason in RECOMMENDATION_RULES:
        if module_id in members or not requested & triggers:
            continue
        plan.diagnostics.append(
            Diagnostic(
                kind=DiagnosticKind.RECOMMENDATION,
                message=f"Consider adding module '{module_id}': {reason}",
                module=module_id,
            )
        )

    if len(closure) > OBSERVABILITY_THRESHOLD and not observability:
        plan.diagnostics.append(
            Diagnostic(
                kind=DiagnosticKind.RECOMMENDATION,
                message="Consider enabling observability: multiple modules benefit from centralized monitoring",
            )
        )


def _find_conflicts(
    closure: list[str], infos: dict[str, ModuleInfo]
) -> list[tuple[str, str]]:
    """Return canonical ``(a, b)`` pairs with ``a < b``, sorted and unique."""
    members = set(closure)
    pairs: set[tuple[str, str]] = set()
    for module_id in closure:
        info = infos.get(module_id)
        if info is None:
            continue
        for other in info.conflicts & members:
            pairs.add((min(module_id, other), max(module_id, other)))
    return sorted(pairs)


def _dependencies(module_id: str, infos: dict[str, ModuleInfo], members: set[str]) -> list[str]:
    info = infos.get(module_id)
    if info is None:
        return []
    return [dep for dep in info.required if dep in members]


def _topological_order(
    closure: list[str], infos: dict[str, ModuleInfo]
) -> tuple[list[str], list[str]]:
    """Kahn's algorithm with a lexicographic min-heap.

    Returns ``(order, leftover)``; a non-empty *leftover* means the remaining
    nodes sit on or behind a cycle.
    """
    members = set(closure)
    in_degree: dict[str, int] = {m: 0 for m in closure}
    dependents: dict[str, list[str]] = {m: [] for m in closure}

    for module_id in closure:
        for dep in _dependencies(module_id, infos, members):
            dependents[dep].append(module_id)
            in_degree[module_id] += 1

    heap = [m for m, degree in in_degree.items() if degree == 0]
    heapq.heapify(heap)

    order: list[str] = []
    while heap:
        current = heapq.heappop(heap)
        order.append(current)
        for dependent in dependents[current]:
            in_degree[dependent] -= 1
            if in_degree[dependent] == 0:
                heapq.heappush(heap, dependent)

    placed = set(order)
    leftover = sorted(m for m in closure if m not in placed)
    return order, leftover


def _cyclic_components(
    nodes: list[str], infos: dict[str, ModuleInfo]
) -> list[list[str]]:
    """Tarjan's SCC over *nodes*; keep only components that contain a cycle."""
    members = set(nodes)
    index: dict[str, int] = {}
    lowlink: dict[str, int] = {}
    on_stack: set[str] = set()
    stack: list[str] = []
    components: list[list[str]] = []
    counter = 0

    def strongconnect(node: str) -> None:
        nonlocal counter
        index[node] = lowlink[node] = counter
        counter += 1
        stack.append(node)
        on_stack.add(node)

        for dep in _dependencies(node, infos, members):
            if dep not in index:
                strongconnect(dep)
                lowlink[node] = min(lowlink[node], lowlink[dep])
            elif dep in on_stack:
                lowlink[node] = min(lowlink[node], index[dep])

        if lowlink[node] == index[node]:
            component: list[str] = []
            while True:
                popped = stack.pop()
                on_stack.discard(popped)
                component.append(popped)
                if popped == node:
                    break
            if len(component) > 1:
                components.append(sorted(component))

    for node in nodes:
        if node not in index:
            strongconnect(node)

    return sorted(components)
