"""
ChatBridge
==========

Multi-provider LLM chat adapter.

One request shape in, one response shape out, for OpenAI-compatible APIs,
Azure, Anthropic, Gemini, Qwen, Baidu and friends. Streaming, image input
and response caching are handled per provider behind a single client.

Modules:
    - providers: Provider enumeration, capability table, endpoints and auth
    - llm: Request translation, response parsing, streaming, cache and client
    - utils: Logging and credential masking
"""

__version__ = "1.0.0"
__author__ = "ChatBridge Team"
