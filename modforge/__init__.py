"""modforge -- module-aware Go project scaffolder.

Resolves a requested set of feature modules against a module catalog, plans
a layered source tree from Jinja2 templates, and writes it to disk.
"""

__version__ = "0.1.0"
