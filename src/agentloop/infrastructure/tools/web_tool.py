# ============================================
# WEB TOOLS
# ============================================

import asyncio
from typing import Any

import aiohttp

from agentloop.core.domain.config import SideEffect
from agentloop.infrastructure.tools.tool import Tool

DUCKDUCKGO_URL = "https://api.duckduckgo.com/"


class WebSearchTool(Tool):
    """Web search using DuckDuckGo (no API key required)"""

    side_effect = SideEffect.NETWORK

    def __init__(self, base_url: str = DUCKDUCKGO_URL, request_timeout: float = 10.0):
        super().__init__()
        self.base_url = base_url
        self.request_timeout = request_timeout

    @property
    def name(self) -> str:
        return "web_search"

    @property
    def description(self) -> str:
        return "Search the web using DuckDuckGo and return titles, snippets and URLs"

    @property
    def parameters_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "Search query"},
                "num_results": {
                    "type": "integer",
                    "description": "Maximum number of results (default 5)",
                },
            },
            "required": ["query"],
        }

    async def execute(self, query: str, num_results: int = 5, **kwargs: Any) -> dict[str, Any]:
        params = {"q": query, "format": "json", "no_html": "1", "skip_disambig": "1"}
        try:
            async with aiohttp.ClientSession() as session:
                async with session.get(
                    self.base_url,
                    params=params,
                    timeout=aiohttp.ClientTimeout(total=self.request_timeout),
                ) as response:
                    # DuckDuckGo answers with a non-standard JSON content type
                    data = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            return {"success": False, "error": f"Search failed: {e}"}

        results = []
        if data.get("Abstract"):
            results.append(
                {
                    "title": data.get("Heading", ""),
                    "snippet": data["Abstract"],
                    "url": data.get("AbstractURL", ""),
                }
            )

        for topic in data.get("RelatedTopics", []):
            if isinstance(topic, dict) and "Text" in topic:
                results.append(
                    {
                        "title": topic["Text"].split(" - ")[0][:50],
                        "snippet": topic["Text"],
                        "url": topic.get("FirstURL", ""),
                    }
                )

        return {
            "success": True,
            "query": query,
            "results": results[:num_results],
            "count": min(len(results), num_results),
        }
