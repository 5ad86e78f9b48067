"""A2A (Agent-to-Agent) protocol layer for a2ahost.

Implements the wire side of Google's A2A protocol so a host can:
- Discover remote agents by URL (registry)
- Serve its own Agent Card and answer JSON-RPC calls (dispatcher, routes)
"""
