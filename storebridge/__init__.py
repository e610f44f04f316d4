"""x402 Store Bridge.

Agentic storefront backend: order intents paid through an x402
facilitator, exposed to AI agents as MCP tools.
"""

__version__ = "0.1.0"
