"""Module dependency resolution.

Quick usage::

    from modforge.catalog import default_catalog
    from modforge.resolver import DependencyResolver

    plan = DependencyResolver(default_catalog()).resolve(["invoice"])
    print(plan.install_order)
"""

from modforge.resolver.models import ResolutionPlan
from modforge.resolver.resolver import DependencyResolver

__all__ = [
    "DependencyResolver",
    "ResolutionPlan",
]
