"""
設定確認用 CLI コマンド。
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import List, Optional

import typer

from domain.settings import DEFAULT_NAMESPACE, SettingsError, declaration_registry
from infrastructure.settings import SettingsBuilder
from runtime import build_settings_builder

app = typer.Typer(help="レイヤ化された設定の確認コマンド")


def _parse_assignments(values: list[str]) -> list[tuple[str, str]]:
    assignments: list[tuple[str, str]] = []
    for item in values:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise typer.BadParameter(f"--set は key=value 形式で指定してください: {item}")
        assignments.append((key, value))
    return assignments


def _builder(namespace: str, files: list[Path], values: list[str], redis_url: str | None) -> SettingsBuilder:
    for path in files:
        if not path.exists():
            raise typer.BadParameter(f"設定ファイルが存在しません: {path}")
    assignments = _parse_assignments(values)
    builder = build_settings_builder(namespace, files=files, redis_url=redis_url)
    # 値は引数として解析しない
    for key, value in assignments:
        builder.add(key, value)
    return builder


NamespaceOption = typer.Option(DEFAULT_NAMESPACE, "--namespace", "-n", help="名前空間")
FileOption = typer.Option(None, "--file", "-f", help="追加で読み込む設定ファイル (.properties / .yaml)")
SetOption = typer.Option(None, "--set", help="key=value 形式で値を上書き（環境変数より優先）")
RedisOption = typer.Option(None, "--redis-url", help="設定を格納した Redis ハッシュの URL")


@app.command("show")
def show(
    namespace: str = NamespaceOption,
    files: Optional[List[Path]] = FileOption,
    values: Optional[List[str]] = SetOption,
    redis_url: Optional[str] = RedisOption,
    as_json: bool = typer.Option(False, "--json", help="JSON で出力"),
) -> None:
    """
    全レイヤを統合した設定値を表示する。
    """

    try:
        builder = _builder(namespace, files or [], values or [], redis_url)
        try:
            resolved = builder.build().to_dict()
        finally:
            builder.on_shutdown()()
    except SettingsError as exc:
        typer.secho(f"設定の読み込みに失敗しました: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc

    if as_json:
        typer.echo(json.dumps(resolved, ensure_ascii=False, indent=2, sort_keys=True))
        return
    for key in sorted(resolved):
        typer.echo(f"{key}={resolved[key]}")


@app.command("get")
def get(
    key: str = typer.Argument(..., help="取得するキー"),
    namespace: str = NamespaceOption,
    files: Optional[List[Path]] = FileOption,
    values: Optional[List[str]] = SetOption,
) -> None:
    """
    単一のキーの値を表示する。存在しない場合は終了コード 1。
    """

    try:
        builder = _builder(namespace, files or [], values or [], None)
        try:
            value = builder.build().get_string(key)
        finally:
            builder.on_shutdown()()
    except SettingsError as exc:
        typer.secho(f"設定の読み込みに失敗しました: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc
    if value is None:
        typer.secho(f"キー '{key}' は設定されていません。", fg=typer.colors.YELLOW, err=True)
        raise typer.Exit(code=1)
    typer.echo(value)


@app.command("describe")
def describe(
    namespace: str = NamespaceOption,
    files: Optional[List[Path]] = FileOption,
) -> None:
    """
    宣言済みの設定項目と、読み込まれた設定ソースを表示する。
    """

    try:
        builder = _builder(namespace, files or [], [], None)
    except SettingsError as exc:
        typer.secho(f"設定の読み込みに失敗しました: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc
    typer.echo(repr(builder))

    declarations = declaration_registry().declarations_for(namespace)
    if not declarations:
        typer.echo(f"名前空間 '{namespace}' に宣言済みの設定はありません。")
        return
    typer.echo("")
    for declaration in declarations:
        default = declaration.default_value if declaration.default_value is not None else "-"
        shortcut = f" (-{declaration.shortcut})" if declaration.shortcut else ""
        typer.echo(
            f"{declaration.name}{shortcut} [{declaration.value_type.value}, {declaration.tier.value}] "
            f"default={default}"
        )
        if declaration.description:
            typer.echo(f"    {declaration.description}")
