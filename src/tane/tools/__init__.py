"""Tools offered to the research agent."""

from tane.tools.web_search import SearchResult, WebSearchTool, fallback_results

__all__ = ["SearchResult", "WebSearchTool", "fallback_results"]
