"""
Kiro Gateway - OpenAI-compatible gateway for Kiro

Serves the Kiro generateAssistantResponse API through OpenAI-style
chat completion endpoints, decoding its binary event stream into text
and tool calls.
"""

__version__ = "1.0.0"
