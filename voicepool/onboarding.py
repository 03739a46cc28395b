from __future__ import annotations

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm, Prompt
from rich.table import Table
from rich.text import Text

from .config import CONFIG_PATH, load_config, save_config
from .models import Config


def run_onboarding() -> Config:
    console = Console()

    console.clear()

    welcome_text = Text()
    welcome_text.append("🎤 Welcome to Voicepool!\n\n", style="bold cyan")
    welcome_text.append("Push-to-talk sessions with live transcription and summaries\n", style="dim")

    console.print(Panel(welcome_text, border_style="cyan", expand=False))
    console.print()

    config = load_config()

    console.print("[bold]Identity[/bold]")
    console.print()
    user_id = ""
    while not user_id.strip():
        if config.user_id:
            user_id = Prompt.ask("User id", default=config.user_id)
        else:
            user_id = Prompt.ask("User id")
    config.user_id = user_id.strip()
    display_name = Prompt.ask("Display name (shown next to your segments)", default=config.display_name or "")
    config.display_name = display_name or None

    console.print()
    console.print("[bold]Language Model[/bold]")
    console.print()
    console.print("Transcription and summaries use the OpenAI API.")
    console.print("(Get a key at https://platform.openai.com/api-keys)")
    api_key = Prompt.ask("API Key (leave empty to use OPENAI_API_KEY)", password=True, default="")
    if api_key:
        config.openai_api_key = api_key

    console.print()
    console.print("[bold]Storage[/bold]")
    console.print()
    console.print("Where should saved sessions go?")
    console.print("  1. This computer (recommended)")
    console.print("  2. A Voicepool API server")
    console.print()

    storage_choice = Prompt.ask("Select option", choices=["1", "2"], default="2" if config.server_url else "1")

    if storage_choice == "2":
        console.print()
        config.server_url = Prompt.ask("Server URL", default=config.server_url or "http://localhost:8000")
        token = Prompt.ask("Server token (optional)", password=True, default="")
        config.server_token = token or None
    else:
        config.server_url = None

    console.print()
    config.upload_audio = Confirm.ask("Keep the raw audio of every segment?", default=config.upload_audio)
    config.generate_social_posts = Confirm.ask(
        "Generate social media posts when saving a session?",
        default=config.generate_social_posts,
    )
    config.detect_emotion = Confirm.ask(
        "Detect the overall emotion of each session?",
        default=config.detect_emotion,
    )

    console.print()
    console.print("[bold green]✓ Setup Complete![/bold green]")
    console.print()

    summary = Table(show_header=False, box=None, padding=(0, 2))
    summary.add_column(style="cyan")
    summary.add_column()

    summary.add_row("User:", config.user_id)
    summary.add_row("Speaker name:", config.display_name or "User")
    summary.add_row("Storage:", config.server_url or "local")
    summary.add_row("Keep audio:", "yes" if config.upload_audio else "no")
    summary.add_row("Social posts:", "yes" if config.generate_social_posts else "no")
    summary.add_row("Emotion:", "yes" if config.detect_emotion else "no")

    console.print(Panel(summary, title="Your Configuration", border_style="green"))
    console.print()

    if Confirm.ask("Save this configuration?", default=True):
        save_config(config)
        console.print("[green]Configuration saved to[/green]", CONFIG_PATH)
        console.print()
        console.print("[bold]To start a session, run:[/bold]")
        console.print("  [cyan]voicepool record[/cyan]")
        console.print()
        return config

    console.print("[yellow]Configuration not saved. Run 'voicepool setup' to try again.[/yellow]")
    return config
