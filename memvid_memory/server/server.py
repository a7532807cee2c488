"""
memvid agent memory MCP server.

Transport: stdio (stdout carries the protocol; logs go to stderr).

Every tool returns plain text. Failures raise ToolError so the client sees
``isError: true`` with a one-sentence message. Empty memory and zero-hit
searches are informational, not errors.
"""

import argparse
import asyncio
import dataclasses
import logging
import signal
import sys
from typing import Annotated, Callable, Dict, List, Optional, Tuple

from dotenv import load_dotenv
from fastmcp import FastMCP  # pip install fastmcp
from fastmcp.exceptions import ToolError
from mcp.types import ToolAnnotations
from pydantic import Field

from ..adapter.memory_manager import MemoryManager
from ..common.config import LLMConfig, MemvidConfig, load_config, resolve_memory_path
from ..common.errors import MemvidError, MemoryNotInitializedError
from ..common.llm_client import LLMProvider, create_provider
from ..common.schemas import MemoryEntry
from ..retriever import (
    QueryRewriter,
    Searcher,
    SearchOptions,
    Synthesizer,
    format_answer_for_display,
    format_context_only,
)

logger = logging.getLogger("memvid.server")

DEFAULT_ASK_CONTEXT_LIMIT = 5
DEFAULT_TIMELINE_LIMIT = 20

EMPTY_MEMORY_TEXT = (
    "📭 **Memory is empty.** No information has been stored yet.\n\n"
    "Use `memvid_store` to add information to memory first.\n\n"
    "Example:\n```\n"
    'memvid_store: title="User Preference", content="User prefers dark mode", label="preferences"\n'
    "```"
)

NO_MATCH_TEXT = (
    '🔍 **No relevant memories found** for: "{question}"\n\n'
    "Memory contains {count} entries, but none matched your query.\n\n"
    "Try:\n"
    "- Using different keywords\n"
    "- Asking about topics that have been stored\n"
    "- Use `memvid_timeline` to see what's in memory"
)


class MCPServerApp:
    """
    Main application class for the MCP server.

    The memory manager is owned by the hosting process and injected. LLM
    configuration is re-read for every tool call; a provider is rebuilt
    whenever any of its settings change.
    """

    def __init__(
        self,
        memory_manager: MemoryManager,
        mcp_server_name: str = "memvid_memory",
        config_loader: Callable[[], MemvidConfig] = load_config,
        provider_factory: Callable[[LLMConfig], Optional[LLMProvider]] = create_provider,
    ) -> None:
        self.memory = memory_manager
        self._config_loader = config_loader
        self._provider_factory = provider_factory
        self._providers: Dict[str, Tuple[tuple, LLMProvider]] = {}
        self.mcp = FastMCP(name=mcp_server_name)

        def _require_memory() -> None:
            if not self.memory.initialized:
                raise ToolError(MemoryNotInitializedError().message)

        # ---------- MCP Tools: Store ---------- #
        @self.mcp.tool(
            name="memvid_store",
            description=(
                "Store information in the agent's persistent memory for later retrieval. "
                "Use this to remember important context, decisions, user preferences, "
                "code patterns, or any information that should persist across sessions."
            ),
            annotations=ToolAnnotations(readOnlyHint=False, destructiveHint=False),
        )
        async def memvid_store(
            title: Annotated[str, Field(description='A brief, descriptive title for the memory entry (e.g., "User prefers dark mode", "Project uses React 18")')],
            content: Annotated[str, Field(description="The detailed content to store in memory. Be specific and include relevant context.")],
            label: Annotated[Optional[str], Field(description="Category label for organization. Common labels: user-preference, decision, context, code-pattern, project-info, error-solution")] = None,
            tags: Annotated[Optional[List[str]], Field(description='Optional tags for better searchability (e.g., ["typescript", "react", "performance"])')] = None,
        ) -> str:
            _require_memory()
            try:
                entry = MemoryEntry(title=title, content=content, label=label or "", tags=frozenset(tags or ()))
            except ValueError as exc:
                raise ToolError(f"Failed to store: {exc}") from exc
            try:
                stored = await self.memory.store(entry)
            except MemvidError as exc:
                raise ToolError(f"Failed to store: {exc.message}") from exc
            return f'✓ Stored in memory: "{stored.title}" (ID: {stored.frame_id})'

        # ---------- MCP Tools: Search ---------- #
        @self.mcp.tool(
            name="memvid_search",
            description=(
                "Search the agent's memory using keywords. Returns relevant memory entries "
                "matching the search query. Use this to recall specific information that was previously stored."
            ),
            annotations=ToolAnnotations(readOnlyHint=True, destructiveHint=False),
        )
        async def memvid_search(
            query: Annotated[str, Field(description="The search query - keywords or phrases to find in memory")],
            limit: Annotated[Optional[int], Field(ge=1, description="Maximum number of results to return (default: 10)")] = None,
            label: Annotated[Optional[str], Field(description='Optional: filter results by label (e.g., "user-preference", "decision")')] = None,
        ) -> str:
            _require_memory()
            config = self._config_loader()
            provider = self._get_provider(config.llm)
            searcher = Searcher(self.memory.engine, QueryRewriter(provider))
            try:
                result = await searcher.search(query, self._search_options(config, limit, label))
            except MemvidError as exc:
                raise ToolError(f"Search failed: {exc.message}") from exc

            if result.is_empty:
                return f'No results found for: "{query}"'

            formatted = "\n\n".join(
                f"{i}. **{hit.title}** (score: {hit.score:.3f})\n   {hit.snippet}"
                for i, hit in enumerate(result.hits, 1)
            )
            return f'Found {len(result.hits)} results for "{query}":\n\n{formatted}'

        # ---------- MCP Tools: Ask ---------- #
        @self.mcp.tool(
            name="memvid_ask",
            description=(
                "Ask a natural language question about the agent's stored memories. Uses RAG "
                "(Retrieval Augmented Generation) to synthesize an answer from relevant memory entries. "
                "Best for complex queries that require understanding context."
            ),
            annotations=ToolAnnotations(readOnlyHint=True, destructiveHint=False),
        )
        async def memvid_ask(
            question: Annotated[str, Field(description="The question to ask about stored memories (e.g., \"What are the user's coding preferences?\", \"What decisions were made about the database?\")")],
            contextLimit: Annotated[Optional[int], Field(ge=1, description="Number of memory entries to use as context for answering (default: 5)")] = None,
        ) -> str:
            _require_memory()
            logger.info("Ask: %r", question)

            stats = await self.memory.stats()
            if stats.frame_count == 0:
                return EMPTY_MEMORY_TEXT

            config = self._config_loader()
            provider = self._get_provider(config.llm)
            searcher = Searcher(self.memory.engine, QueryRewriter(provider))
            try:
                result = await searcher.search(
                    question,
                    self._search_options(config, contextLimit or DEFAULT_ASK_CONTEXT_LIMIT, None),
                )
            except MemvidError as exc:
                raise ToolError(f"Query failed: {exc.message}") from exc

            logger.info("Search found %d hits", len(result.hits))
            if result.is_empty:
                return NO_MATCH_TEXT.format(question=question, count=stats.frame_count)

            synthesizer = Synthesizer(provider)
            if synthesizer.has_llm:
                try:
                    answer = await synthesizer.synthesize(question, result.hits)
                except Exception as exc:
                    logger.warning("LLM generation failed, returning context only: %s", exc)
                else:
                    if answer is not None:
                        return format_answer_for_display(answer)
            else:
                logger.info("LLM not configured, returning context only")

            return (
                f"Based on my memory ({len(result.hits)} relevant entries):\n\n"
                f"{format_context_only(result.hits)}"
            )

        # ---------- MCP Tools: Timeline ---------- #
        @self.mcp.tool(
            name="memvid_timeline",
            description=(
                "Retrieve recent memory entries in chronological order. Useful for understanding recent "
                "context, reviewing what was discussed, or getting a history of stored information."
            ),
            annotations=ToolAnnotations(readOnlyHint=True, destructiveHint=False),
        )
        async def memvid_timeline(
            limit: Annotated[Optional[int], Field(ge=1, description="Maximum number of entries to return (default: 20)")] = None,
        ) -> str:
            _require_memory()
            entries = await self.memory.timeline(limit or DEFAULT_TIMELINE_LIMIT)
            if not entries:
                return "No entries in memory timeline."

            formatted = "\n\n".join(
                f"{i}. **{e.title}** [{e.label or 'general'}]\n   {e.preview}..."
                for i, e in enumerate(entries, 1)
            )
            return f"Recent memory entries:\n\n{formatted}"

        # ---------- MCP Tools: Stats ---------- #
        @self.mcp.tool(
            name="memvid_stats",
            description=(
                "Get statistics about the agent's memory, including total number of entries, "
                "storage size, and available labels. Useful for understanding the current state of the memory."
            ),
            annotations=ToolAnnotations(readOnlyHint=True, destructiveHint=False),
        )
        async def memvid_stats() -> str:
            _require_memory()
            stats = await self.memory.stats()
            lines = [
                "📊 **Memory Statistics**",
                "",
                f"- Total entries: {stats.frame_count}",
                f"- Storage size: {stats.size_formatted}",
                f"- Memory file: {self.memory.path}",
            ]
            if stats.labels:
                lines.append("- Labels: " + ", ".join(f"{k} ({v})" for k, v in sorted(stats.labels.items())))
            return "\n".join(lines)

    def _get_provider(self, llm: LLMConfig) -> Optional[LLMProvider]:
        if llm.provider == "none":
            return None
        settings = dataclasses.astuple(llm)
        cached = self._providers.get(llm.provider)
        if cached is not None and cached[0] == settings:
            return cached[1]
        provider = self._provider_factory(llm)
        if provider is None:
            self._providers.pop(llm.provider, None)
            return None
        logger.info("Using LLM provider %r", provider)
        self._providers[llm.provider] = (settings, provider)
        return provider

    @staticmethod
    def _search_options(config: MemvidConfig, limit: Optional[int], label: Optional[str]) -> SearchOptions:
        return SearchOptions(
            limit=limit or config.memory.default_search_limit,
            label=label or None,
            mode=config.memory.search_mode,
            snippet_chars=config.memory.snippet_chars,
        )

    def run(self) -> None:
        """Runs the MCP server using stdio transport."""
        self.mcp.run(transport="stdio")


def _open_memory(config: MemvidConfig, args: argparse.Namespace) -> MemoryManager:
    path = resolve_memory_path(
        args.memory_path or config.memory.path,
        args.project_dir or config.memory.project_dir,
    )
    try:
        return asyncio.run(
            MemoryManager.open(
                path,
                auto_create=config.memory.auto_create and not args.no_auto_create,
                embedding=config.embedding,
            )
        )
    except (MemvidError, ImportError) as e:
        logger.error("Failed to open memory file %s: %s", path, e)
        return MemoryManager(path=path)


def main(argv: Optional[List[str]] = None) -> None:
    load_dotenv()

    parser = argparse.ArgumentParser(description="Run the memvid agent memory MCP server (stdio).")
    parser.add_argument("--server-name", default="memvid_memory", help="Advertised MCP server name.")
    parser.add_argument("--memory-path", default=None, help="Path to the .mv2 memory file.")
    parser.add_argument("--project-dir", default=None, help="Project directory for the project-local memory file.")
    parser.add_argument("--no-auto-create", action="store_true", help="Fail instead of creating a missing memory file.")
    parser.add_argument("--log-level", default="INFO", help="Logging level (stderr).")
    args = parser.parse_args(argv)

    logging.basicConfig(
        stream=sys.stderr,
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = load_config()
    logger.info("LLM provider: %s", config.llm.provider)
    memory = _open_memory(config, args)
    app = MCPServerApp(memory_manager=memory, mcp_server_name=args.server_name)

    def _handle_shutdown(signum, frame):
        raise SystemExit(0)
    for sig in (signal.SIGINT, getattr(signal, "SIGTERM", None)):
        if sig is not None:
            signal.signal(sig, _handle_shutdown)

    try:
        app.run()
    finally:
        asyncio.run(memory.close())


if __name__ == "__main__":
    main()
