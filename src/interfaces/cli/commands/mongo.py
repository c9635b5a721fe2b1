"""
MongoDB の初期化・マイグレーション確認用 CLI コマンド。
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, List, Optional

import typer
import yaml
from pymongo.errors import PyMongoError

from domain.settings import DEFAULT_NAMESPACE, SettingsError
from infrastructure.mongodb import CollectionInitializationError, CollectionsInfo
from runtime import build_database_service, build_mongo_provider, build_settings

app = typer.Typer(help="MongoDB のコレクション初期化とマイグレーション履歴")


def _load_collections(path: Path) -> CollectionsInfo:
    if not path.exists():
        raise typer.BadParameter(f"collections 定義が存在しません: {path}")
    try:
        content = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise typer.BadParameter(f"collections 定義の解析に失敗しました: {exc}") from exc
    if not isinstance(content, dict):
        raise typer.BadParameter("collections 定義のトップレベルは Mapping である必要があります。")
    try:
        return CollectionsInfo.from_mapping(content)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc


@app.command("init")
def init(
    collections_file: Path = typer.Option(..., "--collections", help="コレクション定義 (YAML / JSON)"),
    namespace: str = typer.Option(DEFAULT_NAMESPACE, "--namespace", "-n", help="名前空間"),
    files: Optional[List[Path]] = typer.Option(None, "--file", "-f", help="追加で読み込む設定ファイル"),
) -> None:
    """
    定義ファイルに従ってコレクションとインデックスを作成する。
    """

    collections = _load_collections(collections_file)
    provider = None
    try:
        provider = build_mongo_provider(build_settings(namespace, files=files or []))
        results = build_database_service(provider).initialize_collections(collections)
    except (SettingsError, CollectionInitializationError, PyMongoError, ValueError) as exc:
        typer.secho(f"コレクションの初期化に失敗しました: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc
    finally:
        if provider is not None:
            provider.close()

    for result in results:
        status = "created" if result.created else "exists"
        indexes = ",".join(result.indexes_created) or "-"
        typer.echo(f"{result.collection}\t{status}\tindexes={indexes}\tinserted={result.documents_inserted}")


@app.command("migrations")
def migrations(
    namespace: str = typer.Option(DEFAULT_NAMESPACE, "--namespace", "-n", help="名前空間"),
    files: Optional[List[Path]] = typer.Option(None, "--file", "-f", help="追加で読み込む設定ファイル"),
    as_json: bool = typer.Option(False, "--json", help="JSON で出力"),
) -> None:
    """
    実行済みマイグレーションの記録を開始時刻順に表示する。
    """

    provider = None
    try:
        provider = build_mongo_provider(build_settings(namespace, files=files or []))
        records = build_database_service(provider).list_migrations()
    except (SettingsError, PyMongoError, ValueError) as exc:
        typer.secho(f"マイグレーション履歴の取得に失敗しました: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc
    finally:
        if provider is not None:
            provider.close()

    if as_json:
        typer.echo(json.dumps(records, ensure_ascii=False, indent=2, default=_json_default))
        return
    if not records:
        typer.echo("実行済みのマイグレーションはありません。")
        return
    for record in records:
        status = "success" if record.get("success") else "failed"
        typer.echo(f"{record.get('migration')}\tv{record.get('version')}\t{status}\t{record.get('start')}")


def _json_default(value: Any) -> str:
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)
