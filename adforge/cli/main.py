#!/usr/bin/env python
"""
AdForge CLI
===========

Run agents and inspect their history from the command line.

Usage:
    adforge run analyst --agent-config agent.json [--message TEXT]
    adforge pipeline --agent-config agent.json
    adforge chat "pause campaign 123" --agent-config agent.json [--role executor]
    adforge sessions [--agent ID] [--limit N]
    adforge decisions (--entity ID | --agent ID) [--days N]
    adforge knowledge [--org ID] [--category CATEGORY]

Platform collaborators are supplied by a factory named with
``--platforms package.module:factory``; the factory takes no arguments and
returns a PlatformClients. Without one only the memory tools are available.
"""

import argparse
import asyncio
import importlib
import logging
import os
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv

from adforge import __version__
from adforge.agent_config import AgentConfig, AgentRole
from adforge.config import AdForgeSettings
from adforge.db import close_db, init_db
from adforge.memory import MemoryService
from adforge.memory.long_term import KnowledgeCategory
from adforge.orchestrator import create_orchestrator_async
from adforge.output import (
    console,
    print_decisions_table,
    print_error,
    print_info,
    print_knowledge_table,
    print_muted,
    print_orchestration_result,
    print_run_result,
    print_sessions_table,
    setup_rich_logging,
)
from adforge.platforms import PlatformClients

logger = logging.getLogger(__name__)

# Environment variable -> credential name seen by tools
CREDENTIAL_ENV = {
    "FACEBOOK_ACCESS_TOKEN": "facebook_token",
    "TIKTOK_ACCESS_TOKEN": "tiktok_token",
    "TIKTOK_ADVERTISER_ID": "tiktok_advertiser_id",
}


def load_platforms(spec: Optional[str]) -> PlatformClients:
    """Resolve ``module:factory`` into PlatformClients."""
    if not spec:
        return PlatformClients()
    module_name, _, attr = spec.partition(":")
    if not module_name or not attr:
        raise ValueError(f"--platforms must look like package.module:factory, got {spec!r}")
    factory = getattr(importlib.import_module(module_name), attr)
    clients = factory()
    if not isinstance(clients, PlatformClients):
        raise TypeError(f"{spec} returned {type(clients).__name__}, expected PlatformClients")
    return clients


def credentials_from_env() -> dict[str, Any]:
    return {name: os.environ[env] for env, name in CREDENTIAL_ENV.items() if os.environ.get(env)}


def load_settings(args: argparse.Namespace) -> AdForgeSettings:
    settings = AdForgeSettings.load(args.config)
    if args.database_url:
        settings.database_url = args.database_url
    return settings


def load_agent_config(path: Path) -> AgentConfig:
    if not path.exists():
        raise FileNotFoundError(f"Agent config not found: {path}")
    return AgentConfig.from_file(path)


# =============================================================================
# Commands
# =============================================================================

async def _build_orchestrator(args: argparse.Namespace, settings: AdForgeSettings):
    return await create_orchestrator_async(
        settings,
        load_platforms(args.platforms),
        use_cache=not args.no_cache,
    )


async def cmd_run(args: argparse.Namespace, settings: AdForgeSettings) -> int:
    config = load_agent_config(args.agent_config)
    orchestrator = await _build_orchestrator(args, settings)
    runner = {
        AgentRole.ANALYST: orchestrator.run_analyst,
        AgentRole.PLANNER: orchestrator.run_planner,
        AgentRole.EXECUTOR: orchestrator.run_executor,
        AgentRole.CREATIVE: orchestrator.run_creative_agent,
    }[AgentRole(args.role)]

    print_info(f"Running {args.role} agent {config.name} ({config.mode.value} mode)")
    result = await runner(
        config,
        organization_id=args.org,
        user_id=args.user,
        message=args.message,
        credentials=credentials_from_env(),
    )
    print_run_result(result)
    return 0 if result.succeeded else 1


async def cmd_pipeline(args: argparse.Namespace, settings: AdForgeSettings) -> int:
    config = load_agent_config(args.agent_config)
    orchestrator = await _build_orchestrator(args, settings)
    result = await orchestrator.run_optimization_pipeline(
        config,
        organization_id=args.org,
        credentials=credentials_from_env(),
    )
    print_orchestration_result(result)
    return 0 if result.overall_status != "failed" else 1


async def cmd_chat(args: argparse.Namespace, settings: AdForgeSettings) -> int:
    config = load_agent_config(args.agent_config)
    orchestrator = await _build_orchestrator(args, settings)
    result = await orchestrator.run_user_directed(
        config,
        args.org,
        args.user,
        args.message,
        role_override=AgentRole(args.role) if args.role else None,
        credentials=credentials_from_env(),
    )
    print_run_result(result)
    return 0 if result.succeeded else 1


async def cmd_sessions(args: argparse.Namespace, settings: AdForgeSettings) -> int:
    memory = MemoryService(await init_db(settings.database_url))
    sessions = await memory.sessions.list_sessions(agent_id=args.agent, limit=args.limit)
    if not sessions:
        print_muted("No sessions recorded yet.")
        return 0
    print_sessions_table(sessions)
    return 0


async def cmd_decisions(args: argparse.Namespace, settings: AdForgeSettings) -> int:
    memory = MemoryService(await init_db(settings.database_url))
    if args.entity:
        decisions = await memory.long_term.get_recent_decisions(
            args.entity, action=args.action, limit=args.limit, days=args.days,
        )
    elif args.agent:
        decisions = await memory.long_term.get_agent_recent_decisions(args.agent, limit=args.limit, days=args.days)
    else:
        print_error("Pass --entity or --agent")
        return 1
    if not decisions:
        print_muted("No decisions in that window.")
        return 0
    print_decisions_table(decisions)
    return 0


async def cmd_knowledge(args: argparse.Namespace, settings: AdForgeSettings) -> int:
    memory = MemoryService(await init_db(settings.database_url))
    entries = await memory.long_term.retrieve_knowledge(
        args.org,
        category=KnowledgeCategory(args.category) if args.category else None,
        limit=args.limit,
    )
    if not entries:
        print_muted("No knowledge stored yet.")
        return 0
    print_knowledge_table(entries)
    return 0


COMMANDS = {
    "run": cmd_run,
    "pipeline": cmd_pipeline,
    "chat": cmd_chat,
    "sessions": cmd_sessions,
    "decisions": cmd_decisions,
    "knowledge": cmd_knowledge,
}


# =============================================================================
# Argument Parsing
# =============================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="adforge",
        description="Guarded, model-driven ad account agents",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Environment Variables:
  ANTHROPIC_API_KEY        Model API key (required for runs)
  ADFORGE_MODEL            Default model
  ADFORGE_DATABASE_URL     Durable store URL (default: sqlite under .adforge/)
  ADFORGE_REDIS_URL        Cache URL for cooldowns, quotas and working memory
  FACEBOOK_ACCESS_TOKEN    Facebook credential passed to runs
  TIKTOK_ACCESS_TOKEN      TikTok credential passed to runs
  TIKTOK_ADVERTISER_ID     TikTok advertiser passed to runs
        """,
    )
    parser.add_argument("--version", action="version", version=f"adforge {__version__}")
    parser.add_argument("--config", type=Path, default=None, help="Settings file (default: ./adforge_config.json)")
    parser.add_argument("--database-url", default=None, help="Override the durable store URL")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    def agent_options(sub: argparse.ArgumentParser) -> None:
        sub.add_argument("--agent-config", "-a", type=Path, required=True, help="Agent config JSON file")
        sub.add_argument("--org", default=None, help="Organization ID")
        sub.add_argument("--platforms", default=None, help="Platform factory as package.module:factory")
        sub.add_argument("--no-cache", action="store_true", help="Run without the redis cache")

    run_parser = subparsers.add_parser("run", help="Run one role agent")
    run_parser.add_argument("role", choices=[r.value for r in AgentRole], help="Role to run")
    run_parser.add_argument("--message", "-m", default=None, help="Task for the agent (role default if omitted)")
    run_parser.add_argument("--user", default=None, help="User ID")
    agent_options(run_parser)

    pipeline_parser = subparsers.add_parser("pipeline", help="Run the analyst -> executor pipeline")
    agent_options(pipeline_parser)

    chat_parser = subparsers.add_parser("chat", help="Send a message; routed to the matching role")
    chat_parser.add_argument("message", help="What you want done")
    chat_parser.add_argument("--role", choices=[r.value for r in AgentRole], default=None, help="Skip routing")
    chat_parser.add_argument("--user", default=None, help="User ID")
    agent_options(chat_parser)

    sessions_parser = subparsers.add_parser("sessions", help="List recent agent sessions")
    sessions_parser.add_argument("--agent", default=None, help="Only this agent")
    sessions_parser.add_argument("--limit", "-n", type=int, default=20)

    decisions_parser = subparsers.add_parser("decisions", help="Show recorded decisions")
    decisions_parser.add_argument("--entity", default=None, help="Entity ID")
    decisions_parser.add_argument("--agent", default=None, help="Agent ID")
    decisions_parser.add_argument("--action", default=None, help="Tool name filter (with --entity)")
    decisions_parser.add_argument("--days", type=float, default=7)
    decisions_parser.add_argument("--limit", "-n", type=int, default=20)

    knowledge_parser = subparsers.add_parser("knowledge", help="Show accumulated knowledge")
    knowledge_parser.add_argument("--org", default=None, help="Organization ID (global entries always shown)")
    knowledge_parser.add_argument("--category", choices=[c.value for c in KnowledgeCategory], default=None)
    knowledge_parser.add_argument("--limit", "-n", type=int, default=20)

    return parser


async def _dispatch(args: argparse.Namespace) -> int:
    settings = load_settings(args)
    try:
        return await COMMANDS[args.command](args, settings)
    finally:
        await close_db()


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    load_dotenv()
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_rich_logging(logging.DEBUG if args.verbose else logging.INFO)

    if not args.command:
        console.print(f"[ad.banner]AdForge[/] [ad.muted]v{__version__}[/]\n")
        parser.print_help()
        return 1

    try:
        return asyncio.run(_dispatch(args))
    except (FileNotFoundError, ValueError, TypeError, ImportError, AttributeError) as e:
        print_error(str(e))
        return 1
    except KeyboardInterrupt:
        print_muted("Interrupted")
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
