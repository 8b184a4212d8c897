#!/usr/bin/env python3
import os
import subprocess
import sys
from typing import List

import typer
from dotenv import load_dotenv

from tools.simulate_votes import simulate as run_simulation

app = typer.Typer(
    help="UnionVote CLI: confidential voting orchestrator toolkit",
    add_completion=False,
    rich_markup_mode="rich",
)


def run_cmd(command: List[str], env: dict | None = None):
    """Executes a shell command with consistent environment handling."""
    if env is None:
        load_dotenv()
        env = os.environ.copy()

    try:
        subprocess.run(command, check=True, env=env)
    except subprocess.CalledProcessError as e:
        sys.exit(e.returncode)
    except KeyboardInterrupt:
        sys.exit(0)


def get_base_env(env_name: str = "development") -> dict:
    """
    Prepares the environment for sub-commands.
    Loads .env and then overrides with .env.{env_name} if it exists.
    """
    load_dotenv(".env")
    env_file = f".env.{env_name}"
    if os.path.exists(env_file):
        load_dotenv(env_file, override=True)

    env = os.environ.copy()
    env["UNIONVOTE_ENV"] = env_name
    return env


@app.command()
def dev():
    """[bold cyan]START[/bold cyan] dev server (in-memory ledger) with hot-reload."""
    env = get_base_env("development")
    run_cmd(["uvicorn", "unionvote.main:app", "--reload"], env=env)


@app.command()
def prod(workers: int = 1):
    """[bold magenta]START[/bold magenta] production server (Gunicorn)."""
    env = get_base_env("production")
    run_cmd(
        [
            "gunicorn",
            "-k",
            "uvicorn.workers.UvicornWorker",
            "-w",
            str(workers),
            "--bind",
            "0.0.0.0:8000",
            "unionvote.main:app",
        ],
        env=env,
    )


@app.command()
def simulate(
    votes: int = 5,
    wallet: str = typer.Option(
        "0x" + "ab" * 20, help="Wallet address reported to the orchestrator"
    ),
    base_url: str = "http://localhost:8000",
):
    """[bold white]SIMULATE[/bold white] creating and revealing votes."""
    run_simulation(votes, wallet=wallet, base_url=base_url)


@app.command(
    context_settings={"allow_extra_args": True, "ignore_unknown_options": True}
)
def test(ctx: typer.Context):
    """[bold green]RUN[/bold green] the test suite."""
    env = get_base_env("testing")
    run_cmd([sys.executable, "-m", "pytest"] + ctx.args, env=env)


if __name__ == "__main__":
    app()
