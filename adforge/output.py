"""
Rich Output Utilities
=====================

Terminal output for the AdForge CLI using the Rich library: a themed console,
message helpers, tables for sessions, decisions and knowledge, and panels for
run results.
"""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence, Union

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text
from rich.theme import Theme

if TYPE_CHECKING:
    from adforge.memory.long_term import DecisionRecord, KnowledgeEntry
    from adforge.memory.session import SessionRecord
    from adforge.orchestrator import OrchestrationResult
    from adforge.runtime import AgentRunResult


# =============================================================================
# Color Scheme & Theme
# =============================================================================

@dataclass(frozen=True)
class AdForgeColors:
    """AdForge palette using hex for truecolor terminal support."""
    ink: str = "#E6E6E6"       # primary text
    dim: str = "#9AA4B2"       # muted text
    spend: str = "#F59E0B"     # warm accent
    reach: str = "#22D3EE"     # cool accent
    steel: str = "#94A3B8"     # secondary accent
    ok: str = "#22C55E"
    warn: str = "#FBBF24"
    err: str = "#EF4444"


def adforge_theme(colors: AdForgeColors = AdForgeColors()) -> Theme:
    """
    Rich Theme for the AdForge CLI.

    Style names are semantic so you can use them everywhere:
      console.print("...", style="ad.ok")
    """
    return Theme(
        {
            "ad.banner": f"bold {colors.reach}",
            "ad.border": f"{colors.reach}",
            "ad.accent": f"bold {colors.spend}",
            "ad.muted": f"{colors.dim}",
            "ad.text": f"{colors.ink}",

            "ad.ok": f"bold {colors.ok}",
            "ad.warn": f"bold {colors.warn}",
            "ad.err": f"bold {colors.err}",
            "ad.info": f"{colors.reach}",

            "ad.key": f"{colors.steel}",
            "ad.value": f"{colors.ink}",
            "ad.number": f"bold {colors.spend}",
            "ad.timestamp": f"{colors.dim}",

            # Roles
            "ad.role.analyst": f"bold {colors.reach}",
            "ad.role.planner": f"bold {colors.steel}",
            "ad.role.executor": f"bold {colors.spend}",
            "ad.role.creative": f"bold {colors.warn}",

            "ad.table.header": f"bold {colors.reach}",

            # Run / call status
            "ad.status.completed": f"bold {colors.ok}",
            "ad.status.failed": f"bold {colors.err}",
            "ad.status.max_iterations": f"bold {colors.warn}",
            "ad.status.partial": f"bold {colors.warn}",
            "ad.status.running": f"{colors.reach}",
            "ad.status.blocked": f"bold {colors.err}",
        }
    )


# =============================================================================
# Unicode / ASCII Fallbacks
# =============================================================================

def _can_use_unicode() -> bool:
    """Check if the terminal can handle the Unicode symbols we print."""
    if os.name == 'nt':
        try:
            encoding = sys.stdout.encoding or 'utf-8'
            "✓✗•".encode(encoding)
            return True
        except (UnicodeEncodeError, LookupError, AttributeError):
            return False
    return True


_UNICODE_ICONS = {
    "check": "✓",
    "cross": "✗",
    "blocked": "⛔",
    "warning": "⚠️",
    "info": "ℹ",
    "bullet": "•",
    "arrow_right": "→",
}

_ASCII_ICONS = {
    "check": "[OK]",
    "cross": "[X]",
    "blocked": "[BLOCKED]",
    "warning": "[!]",
    "info": "[i]",
    "bullet": "-",
    "arrow_right": "->",
}

_ICONS = _UNICODE_ICONS if _can_use_unicode() else _ASCII_ICONS


def icon(name: str) -> str:
    """Get an icon by name, using ASCII fallback if needed."""
    return _ICONS.get(name, "")


# =============================================================================
# Global Console Instance
# =============================================================================

console = Console(theme=adforge_theme())


# =============================================================================
# Basic Message Functions
# =============================================================================

def print_error(message: str) -> None:
    console.print(f"[ad.err]{icon('cross')} {message}[/]")


def print_info(message: str) -> None:
    console.print(f"[ad.info]{icon('info')} {message}[/]")


def print_muted(message: str) -> None:
    console.print(f"[ad.muted]{message}[/]")


def print_header(title: str, style: str = "ad.accent") -> None:
    """Print a prominent section header with rule lines."""
    console.print()
    console.print(Rule(f"[{style}]{title}[/]", style=style))
    console.print()


# =============================================================================
# Data Display Functions
# =============================================================================

def print_key_value_table(
    data: Dict[str, Any],
    *,
    title: Optional[str] = None,
    border_style: str = "ad.border",
) -> None:
    """Print multiple key-value pairs in a clean table format."""
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Key", style="ad.key")
    table.add_column("Value", style="ad.value")

    for key, value in data.items():
        table.add_row(key, str(value))

    if title:
        console.print(Panel(table, title=f"[bold]{title}[/]", border_style=border_style))
    else:
        console.print(table)


def create_table(
    *,
    title: Optional[str] = None,
    columns: Optional[List[str]] = None,
    show_header: bool = True,
    border_style: str = "ad.border",
    header_style: str = "ad.table.header",
) -> Table:
    """Create a styled Rich Table with the AdForge theme."""
    table = Table(
        title=title,
        show_header=show_header,
        header_style=header_style,
        border_style=border_style,
        title_style="ad.accent",
    )
    if columns:
        for col in columns:
            table.add_column(col)
    return table


def print_panel(
    content: Union[str, Text],
    *,
    title: Optional[str] = None,
    subtitle: Optional[str] = None,
    border_style: str = "ad.border",
    padding: tuple = (1, 2),
) -> None:
    console.print(Panel(
        content,
        title=f"[bold]{title}[/]" if title else None,
        subtitle=f"[ad.muted]{subtitle}[/]" if subtitle else None,
        border_style=border_style,
        padding=padding,
    ))


# =============================================================================
# Run Results
# =============================================================================

def _status_style(status: str) -> str:
    return f"ad.status.{status}"


def _truncate(text: str, limit: int) -> str:
    text = text or ""
    return text if len(text) <= limit else text[: limit - 3] + "..."


def print_tool_calls(result: "AgentRunResult") -> None:
    """Table of every tool call a run attempted."""
    if not result.tool_calls:
        return
    table = create_table(title="Tool Calls", columns=["#", "Tool", "Outcome", "Detail", "ms"])
    for i, record in enumerate(result.tool_calls, 1):
        if not record.guardrail_check.approved:
            outcome = f"[ad.status.blocked]{icon('blocked')} blocked[/]"
            detail = record.guardrail_check.reason or ""
        elif record.success:
            outcome = f"[ad.ok]{icon('check')} ok[/]"
            detail = ", ".join(record.guardrail_check.warnings)
        else:
            outcome = f"[ad.err]{icon('cross')} failed[/]"
            detail = record.result.error or ""
        table.add_row(str(i), record.tool_name, outcome, _truncate(detail, 80), str(record.duration_ms))
    console.print(table)


def print_run_result(result: "AgentRunResult", *, show_calls: bool = True) -> None:
    """Summary panel for one agent run."""
    status = result.status.value
    print_key_value_table({
        "Session": result.session_id or "-",
        "Agent": result.agent_id,
        "Role": result.role,
        "Status": status,
        "Iterations": result.total_iterations,
        "Tool calls": len(result.tool_calls),
        "Decisions": len(result.decisions),
        "Duration": f"{result.duration_ms}ms",
    }, title=f"{result.role.title()} Run", border_style=_status_style(status))

    if result.error:
        print_error(result.error)
    if show_calls:
        print_tool_calls(result)
    if result.summary:
        print_panel(result.summary, title="Summary", border_style=f"ad.role.{result.role}")


def print_orchestration_result(result: "OrchestrationResult") -> None:
    """Pipeline outcome: analysis, recommendations and execution."""
    print_header("Optimization Pipeline")
    print_run_result(result.analysis, show_calls=False)

    if result.recommendations:
        table = create_table(title="Recommendations", columns=["#", "Action", "Entity", "Priority", "Reason"])
        for i, rec in enumerate(result.recommendations, 1):
            if isinstance(rec, dict):
                entity = f"{rec.get('entityType') or ''} {rec.get('entityId') or ''}".strip()
                table.add_row(
                    str(i),
                    str(rec.get("action", "")),
                    entity,
                    str(rec.get("priority", "")),
                    _truncate(str(rec.get("reason", "")), 60),
                )
            else:
                table.add_row(str(i), _truncate(str(rec), 60), "", "", "")
        console.print(table)

    if result.execution is not None:
        print_run_result(result.execution)

    style = _status_style(result.overall_status)
    console.print(f"[{style}]{result.overall_status.upper()}[/] [ad.text]{result.summary}[/]")


# =============================================================================
# History Tables
# =============================================================================

def print_sessions_table(sessions: Sequence["SessionRecord"]) -> None:
    table = create_table(
        title="Agent Sessions",
        columns=["Started", "Session", "Agent", "Role", "Trigger", "Status", "Iter", "Calls"],
    )
    for s in sessions:
        table.add_row(
            f"{s.created_at:%Y-%m-%d %H:%M}" if s.created_at else "",
            s.id[:8],
            s.agent_id,
            s.role,
            s.trigger_type,
            f"[{_status_style(s.status)}]{s.status}[/]",
            str(s.iterations),
            str(len(s.tool_calls)),
        )
    console.print(table)


def print_decisions_table(decisions: Sequence["DecisionRecord"]) -> None:
    table = create_table(
        title="Decisions",
        columns=["When", "Action", "Entity", "Platform", "Status", "Outcome", "Reason"],
    )
    for d in decisions:
        outcome = (d.outcome or {}).get("assessment", "")
        table.add_row(
            f"{d.created_at:%Y-%m-%d %H:%M}",
            d.action,
            f"{d.entity_type} {d.entity_id}",
            d.platform,
            d.status,
            outcome,
            _truncate(d.reason, 60),
        )
    console.print(table)


def print_knowledge_table(entries: Sequence["KnowledgeEntry"]) -> None:
    table = create_table(
        title="Accumulated Knowledge",
        columns=["Key", "Category", "Confidence", "Seen", "Content"],
    )
    for k in entries:
        table.add_row(
            k.key,
            k.category,
            f"[ad.number]{k.confidence:.2f}[/]",
            str(k.validation_count),
            _truncate(k.content, 80),
        )
    console.print(table)


# =============================================================================
# Logging Integration
# =============================================================================

def setup_rich_logging(level: int = logging.INFO) -> None:
    """
    Configure Python logging to use Rich for log output.

    Usage:
        setup_rich_logging()
        logging.info("This will be pretty!")
    """
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(
            console=console,
            show_path=False,
            rich_tracebacks=True,
        )],
    )
