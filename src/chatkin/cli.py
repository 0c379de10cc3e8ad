"""Command line entry points for Chatkin."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from chatkin.ai.outcome import ActionsOutcome, ChatOutcome, QuestionsOutcome
from chatkin.ai.prompts import ChatScope
from chatkin.ai.provider import AnthropicProvider
from chatkin.ai.query import CallerContext, QueryExecutor
from chatkin.chat import ChatRequest, ChatService
from chatkin.config import ChatMode, Settings, load_settings
from chatkin.errors import ConfigurationError
from chatkin.logging_utils import configure_logging
from chatkin.memory.manager import ConversationMemoryManager, MemoryPolicy, SummarizeResult, SummarizeStatus
from chatkin.memory.repository import PostgrestConversationRepository
from chatkin.memory.summarizer import AnthropicSummarizer
from chatkin.store.images import HttpImageFetcher
from chatkin.store.postgrest import PostgrestClient

app = typer.Typer(
    name="chatkin",
    help="Workspace chat assistant.",
    add_completion=False,
    rich_markup_mode="rich",
)
console = Console()


def _exit_with_error(message: str) -> None:
    console.print(f"[bold red]Error:[/bold red] {message}")
    raise typer.Exit(1)


def _store(settings: Settings) -> PostgrestClient:
    return PostgrestClient(settings.rest_url, settings.supabase_anon_key or "")


def _images(settings: Settings) -> HttpImageFetcher:
    permanent = settings.storage_url or ""
    return HttpImageFetcher(permanent, settings.temp_storage_url or permanent)


def _render_outcome(outcome: ChatOutcome) -> None:
    if outcome.message:
        console.print(Panel(outcome.message, title="[bold green]Assistant[/bold green]"))
    match outcome:
        case ActionsOutcome():
            table = Table(title=outcome.summary or "Proposed operations")
            table.add_column("operation")
            table.add_column("type")
            table.add_column("details")
            for action in outcome.actions:
                details = {key: value for key, value in action.items() if key not in ("operation", "type")}
                table.add_row(str(action.get("operation", "")), str(action.get("type", "")), json.dumps(details))
            console.print(table)
        case QuestionsOutcome():
            for index, question in enumerate(outcome.questions, start=1):
                console.print(f"[bold]{index}.[/bold] {question.get('question', '')}")
                for option in question.get("options") or ():
                    console.print(f"   [cyan]-[/cyan] {option}")


def _render_summary_result(result: SummarizeResult) -> None:
    match result.status:
        case SummarizeStatus.SUMMARIZED:
            console.print(
                f"[green]Summarized {result.summarized_messages} messages "
                f"({result.summary_length} characters).[/green]"
            )
        case SummarizeStatus.FAILED:
            _exit_with_error(f"Summarization failed: {result.error}")
        case SummarizeStatus.NOT_FOUND:
            _exit_with_error("Conversation not found.")
        case _:
            console.print("[dim]Nothing to summarize.[/dim]")


async def _ask(settings: Settings, request: ChatRequest) -> ChatOutcome:
    provider = AnthropicProvider.from_api_key(settings.resolved_api_key, timeout=settings.request_timeout_seconds)
    store = _store(settings)
    images = _images(settings)
    try:
        service = ChatService(settings, provider, QueryExecutor(store), images)
        return await service.respond(request)
    finally:
        await images.aclose()
        await store.aclose()
        await provider.aclose()


async def _summarize(settings: Settings, conversation_id: str, token: str | None) -> SummarizeResult:
    provider = AnthropicProvider.from_api_key(settings.resolved_api_key, timeout=settings.request_timeout_seconds)
    store = _store(settings)
    try:
        manager = ConversationMemoryManager(
            PostgrestConversationRepository(store, token=token),
            AnthropicSummarizer(provider, model=settings.summary_model),
            policy=MemoryPolicy(
                threshold=settings.summarize_threshold,
                every=settings.summarize_every,
                keep_recent=settings.keep_recent_messages,
            ),
        )
        return await manager.summarize_now(conversation_id)
    finally:
        await store.aclose()
        await provider.aclose()


@app.command()
def ask(
    message: str = typer.Argument(..., help="Message to send"),
    mode: ChatMode = typer.Option(ChatMode.CHAT, "--mode", "-m", help="Conversation mode"),
    token: Optional[str] = typer.Option(None, "--token", envvar="CHATKIN_AUTH_TOKEN", help="User access token"),
    context_file: Optional[Path] = typer.Option(None, "--context", help="Workspace snapshot to include"),
    domain: Optional[str] = typer.Option(None, "--domain", help="Default domain for new items"),
    model: Optional[str] = typer.Option(None, "--model", help="Override the chat model"),
) -> None:
    """Run one chat turn against the configured workspace."""
    settings = load_settings(model=model)
    configure_logging(profile="cli", level=settings.log_level)
    workspace_context = context_file.read_text(encoding="utf-8") if context_file else None
    request = ChatRequest(
        message=message,
        mode=mode,
        workspace_context=workspace_context,
        scope=ChatScope(domain=domain) if domain else None,
        caller=CallerContext(auth_token=token),
    )
    try:
        outcome = asyncio.run(_ask(settings, request))
    except ConfigurationError as exc:
        _exit_with_error(str(exc))
        return
    _render_outcome(outcome)


@app.command()
def summarize(
    conversation_id: str = typer.Argument(..., help="Conversation to compact"),
    token: Optional[str] = typer.Option(None, "--token", envvar="CHATKIN_AUTH_TOKEN", help="User access token"),
) -> None:
    """Fold old messages of a conversation into its summary."""
    settings = load_settings()
    configure_logging(profile="cli", level=settings.log_level)
    try:
        result = asyncio.run(_summarize(settings, conversation_id, token))
    except ConfigurationError as exc:
        _exit_with_error(str(exc))
        return
    _render_summary_result(result)
