"""
Built-in guild plugins.

Dependency graph::

    cases
    time_and_date
    utility       -> time_and_date
    logs          -> cases
    mutes         -> cases, logs
    context_menu  -> cases, mutes, logs, utility
"""

from plugcord.plugins.builtin.cases import CasesPlugin
from plugcord.plugins.builtin.context_menu import ContextMenuPlugin, ModMenu
from plugcord.plugins.builtin.logs import LogsPlugin
from plugcord.plugins.builtin.mutes import MutesPlugin
from plugcord.plugins.builtin.time_and_date import TimeAndDatePlugin
from plugcord.plugins.builtin.utility import CaseSummary, UserInfo, UtilityPlugin

BUILTIN_PLUGINS = [
    CasesPlugin,
    TimeAndDatePlugin,
    UtilityPlugin,
    LogsPlugin,
    MutesPlugin,
    ContextMenuPlugin,
]

__all__ = [
    "BUILTIN_PLUGINS",
    "CaseSummary",
    "CasesPlugin",
    "ContextMenuPlugin",
    "LogsPlugin",
    "ModMenu",
    "MutesPlugin",
    "TimeAndDatePlugin",
    "UserInfo",
    "UtilityPlugin",
]
