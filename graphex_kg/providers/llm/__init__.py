"""Chat model provider implementations."""

from graphex_kg.providers.llm.langchain_chat import LangChainChatProvider

__all__ = ["LangChainChatProvider"]
