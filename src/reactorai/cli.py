"""Main CLI entry point for reactorai."""

import asyncio
import json
import logging
import os
import uuid
from typing import Optional

import typer
import yaml
from pydantic import ValidationError
from rich import box
from rich.panel import Panel

from reactorai import __app_name__, __version__
from reactorai.chat.context import DialogueStep
from reactorai.chat.state_machine import DialogueManager, TurnRequest
from reactorai.config.settings import (
    create_default_config,
    get_config_path,
    get_settings,
    reset_settings_cache,
    save_config_file,
)
from reactorai.data.networks import NETWORKS, network_name
from reactorai.data.store import ConversationReaper
from reactorai.security.credentials import CredentialManager, setup_secure_logging
from reactorai.ui.console import console, print_error, print_success, print_welcome, render_response

# Create Typer app
app = typer.Typer(
    name=__app_name__,
    help="Conversational setup for stop orders and Aave liquidation protection",
    rich_markup_mode="rich",
    no_args_is_help=True,
)


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        console.print(f"[primary]{__app_name__}[/primary] version [react]{__version__}[/react]")
        raise typer.Exit()


@app.callback()
def main_callback(
    version: bool = typer.Option(
        None,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
    demo: bool = typer.Option(
        False,
        "--demo",
        help="Run in demo mode (built-in ledger data, no API calls)",
    ),
    debug: bool = typer.Option(False, "--debug", help="Log debug output"),
):
    """reactorai - conversational automation setup."""
    create_default_config()

    if demo:
        os.environ["REACTORAI_DEMO_MODE"] = "true"
        reset_settings_cache()

    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    setup_secure_logging()


@app.command()
def chat(
    message: Optional[str] = typer.Argument(None, help="Initial message (optional)"),
    account: Optional[str] = typer.Option(None, "--account", "-a", help="Connected wallet address"),
    network: Optional[int] = typer.Option(None, "--network", "-n", help="Selected chain id"),
    as_json: bool = typer.Option(False, "--json", help="Print raw response objects"),
):
    """Start interactive chat mode.

    [green]Examples:[/green]
        reactorai chat
        reactorai chat "create a stop order selling ETH for USDC"
        reactorai chat --network 11155111 "protect my aave position"
    """
    if network is not None and network not in NETWORKS:
        print_error(f"Unknown chain id {network}. Supported: {', '.join(str(c) for c in NETWORKS)}")
        raise typer.Exit(1)
    asyncio.run(_chat_loop(message, account, network, as_json))


async def _chat_loop(
    initial_message: Optional[str],
    account: Optional[str],
    network: Optional[int],
    as_json: bool,
):
    """Main chat loop around the dialogue manager."""
    settings = get_settings()
    manager = DialogueManager(settings=settings)
    reaper = ConversationReaper(
        manager.store,
        idle_timeout=settings.conversation.idle_timeout_seconds,
        interval=settings.conversation.sweep_interval_seconds,
    )
    reaper.start()
    conversation_id = uuid.uuid4().hex

    print_welcome()
    if settings.demo_mode:
        console.print("[warning]Running in demo mode - ledger data is simulated[/warning]\n")
    if not manager.llm.is_available:
        console.print("[muted]LLM not configured - questions are answered from the built-in FAQ[/muted]\n")
    if network is not None:
        console.print(f"[muted]Network: {network_name(network)}[/muted]")

    async def send(text: str) -> None:
        nonlocal account, network
        try:
            request = TurnRequest(
                text=text,
                conversation_id=conversation_id,
                connected_account=account,
                network=network,
            )
        except ValidationError:
            print_error("The account must be a 0x-prefixed 40 character hex address.")
            account = None
            return
        # Context flags apply once; later changes come from the conversation
        account, network = None, None
        with console.status("[muted]Thinking...[/muted]"):
            response = await manager.handle_turn(request)
        if as_json:
            console.print_json(json.dumps(response.to_dict(), default=str))
        else:
            render_response(response)

    try:
        if initial_message:
            await send(initial_message)

        while True:
            try:
                state = manager.get_or_create(conversation_id)
                prompt_text = "[prompt](yes/no)>[/prompt] " if state.expects_yes_no else "[prompt]You:[/prompt] "
                # Off the event loop so the reaper keeps running while we wait
                user_input = (await asyncio.to_thread(console.input, prompt_text)).strip()
                if not user_input:
                    continue

                command = user_input.lower()
                if command in ("/quit", "/exit", "quit", "exit"):
                    console.print("[muted]Goodbye![/muted]")
                    break
                if command == "/clear":
                    manager.clear_conversation(conversation_id)
                    conversation_id = uuid.uuid4().hex
                    console.clear()
                    print_welcome()
                    continue

                await send(user_input)
                if manager.get_or_create(conversation_id).step == DialogueStep.READY:
                    console.print("[muted]Anything else? Type /quit to exit.[/muted]")

            except KeyboardInterrupt:
                console.print("\n[muted]Use /quit to exit[/muted]")
            except EOFError:
                break
    finally:
        await reaper.stop()
        await manager.ledger.close()
        await manager.llm.close()


@app.command()
def setup():
    """Configure API keys.

    Securely stores API keys in your system keyring.
    """
    console.print("[primary]reactorai Setup[/primary]\n")

    for label, getter, setter in (
        ("LLM API key", CredentialManager.get_llm_key, CredentialManager.set_llm_key),
        ("Ledger data API key", CredentialManager.get_ledger_key, CredentialManager.set_ledger_key),
    ):
        console.print(f"[bold]{label}[/bold]")
        existing = getter()
        if existing:
            console.print(f"[success]Current key: {existing[:8]}...{existing[-4:]}[/success]")
            if not typer.confirm(f"Update {label}?", default=False):
                console.print("[muted]Keeping existing key[/muted]\n")
                continue
        key = typer.prompt(f"Enter {label} (or press Enter to skip)", default="", hide_input=True)
        if key:
            if setter(key):
                print_success(f"{label} saved")
            else:
                print_error(f"Could not store the {label}")
        else:
            console.print("[muted]Skipped[/muted]\n")

    console.print("[muted]Run 'reactorai chat' to start chatting[/muted]")


@app.command()
def config(
    show: bool = typer.Option(False, "--show", help="Show the effective configuration"),
    reset: bool = typer.Option(False, "--reset", help="Restore the default config file"),
):
    """Show or reset the configuration file."""
    path = get_config_path()
    if reset:
        save_config_file({})
        reset_settings_cache()
        save_config_file(get_settings().model_dump(mode="json", exclude={"demo_mode"}))
        print_success(f"Config reset at {path}")
        return

    if show:
        effective = get_settings().model_dump(mode="json")
        console.print(
            Panel(
                yaml.safe_dump(effective, default_flow_style=False).rstrip(),
                title=f"[primary]{path}[/primary]",
                box=box.ROUNDED,
                border_style="primary",
            )
        )
        return

    console.print(f"[muted]Config file: {path}[/muted]")
    console.print("[muted]Use --show to display it or --reset to restore defaults[/muted]")


def main():
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
