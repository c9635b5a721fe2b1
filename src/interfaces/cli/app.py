"""
Typer ベースの CLI。
"""

from __future__ import annotations

import typer

from .commands import mongo, settings


def create_cli() -> typer.Typer:
    app = typer.Typer(help="layered-settings CLI")
    app.add_typer(settings.app, name="settings")
    app.add_typer(mongo.app, name="mongo")
    return app


def main() -> None:
    create_cli()()
