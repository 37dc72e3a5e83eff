"""FlowPlan - shared flowchart documents kept in sync across agents, REST clients and editors."""

from typing import TYPE_CHECKING

__all__ = ["Settings", "FlowchartStore", "auto_layout"]

if TYPE_CHECKING:
    from .config.settings import Settings
    from .flowchart.layout import auto_layout
    from .storage.store import FlowchartStore


def __getattr__(name: str):
    if name == "Settings":
        from .config.settings import Settings

        return Settings
    if name == "FlowchartStore":
        from .storage.store import FlowchartStore

        return FlowchartStore
    if name == "auto_layout":
        from .flowchart.layout import auto_layout

        return auto_layout
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
