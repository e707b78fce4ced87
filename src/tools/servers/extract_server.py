#!/usr/bin/env python3
"""
MCP server exposing web content extraction: the extract-url tool and the
summarize-content prompt. Registered with FastMCP decorators; served over SSE
by server.py, or over stdio when run directly.
"""

import asyncio
import sys
from typing import Annotated, Optional

from mcp.server.fastmcp import FastMCP
from pydantic import AnyHttpUrl, Field

from config import Settings, get_settings
from tools.extraction import UrlExtractor

EXTRACT_TOOL_NAME = "extract-url"
SUMMARIZE_PROMPT_NAME = "summarize-content"


def render_summary_prompt(content: str, focus: Optional[str] = None) -> str:
    """Build the instruction text for the summarize-content prompt."""
    if focus:
        return f"Please summarize this web content focusing on {focus}:\n\n{content}"
    return f"Please provide a clear summary of this web content:\n\n{content}"


def create_extract_server(
    extractor: UrlExtractor,
    name: str = "web-content-extractor",
    version: str = "1.0.0",
) -> FastMCP:
    """Create the FastMCP server with the extraction tool and summary prompt registered."""
    mcp = FastMCP(name)
    mcp._mcp_server.version = version

    @mcp.tool(
        name=EXTRACT_TOOL_NAME,
        description="Fetch a web page and return its main readable text content.",
    )
    async def extract_url(
        url: Annotated[AnyHttpUrl, Field(description="The URL of the page to extract")],
    ) -> str:
        return await extractor.extract_url(str(url))

    @mcp.prompt(
        name=SUMMARIZE_PROMPT_NAME,
        title="Summarize Web Content",
        description="Analyze and summarize extracted web content",
    )
    def summarize_content(
        content: Annotated[str, Field(description="The web content to summarize")],
        focus: Annotated[
            Optional[str],
            Field(description="Specific aspect to focus on (optional)"),
        ] = None,
    ) -> str:
        return render_summary_prompt(content, focus)

    return mcp


def create_server_from_settings(settings: Settings) -> FastMCP:
    extractor = UrlExtractor(
        timeout=settings.fetch_timeout_seconds,
        headers=settings.get_fetch_headers(),
    )
    return create_extract_server(
        extractor, name=settings.server_name, version=settings.server_version
    )


async def main():
    """Main entry point"""
    mcp = create_server_from_settings(get_settings())
    print("Starting web content extractor with stdio transport", file=sys.stderr)
    print(f"Available tools: {EXTRACT_TOOL_NAME}", file=sys.stderr)
    await mcp.run_stdio_async()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nServer stopped by user", file=sys.stderr)
    except Exception as e:
        print(f"Error running server: {e}", file=sys.stderr)
        sys.exit(1)
