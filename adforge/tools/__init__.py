"""
Tools Module
============

Typed operations available to agents, grouped into catalogs:

- facebook_tools: Facebook ad account reads and writes
- tiktok_tools: TikTok campaign and ad group reads and updates
- data_tools: aggregated reporting queries
- material_tools: creative material ranking and fatigue detection
- memory_tools: long-term knowledge and decision recall

Usage:
    from adforge.tools.catalog import build_registry

    registry = build_registry(clients, memory)
"""
