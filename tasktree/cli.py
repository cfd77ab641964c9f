"""Command line entry point: serve the store, or show/export/import a state."""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys
from pathlib import Path

from tasktree.auth import LocalAuthService
from tasktree.blob_store import FileBlobStore
from tasktree.config import ConfigError, load_sync_config
from tasktree.errors import TaskTreeError
from tasktree.remote import HttpBlobStore, LocalBlobStore
from tasktree.sync import SyncSession, SyncStatus, polling_session

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 18170


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="tasktree")
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the blob store service.")
    serve.add_argument("--host", default=DEFAULT_HOST)
    serve.add_argument("--port", type=int, default=DEFAULT_PORT)
    serve.add_argument("--store-path", type=Path)

    for name, help_text in (
        ("show", "Print the stored state as JSON."),
        ("export", "Write a TaskTree_Backup.json file."),
        ("import", "Upload a backup file, replacing the stored state."),
    ):
        command = subparsers.add_parser(name, help=help_text)
        command.add_argument("--user", required=True)
        command.add_argument(
            "--store-path",
            type=Path,
            help="Use an on-disk store directly instead of TASKTREE_SERVER_URL.",
        )
        if name == "export":
            command.add_argument("--output", type=Path, default=Path.cwd())
        if name == "import":
            command.add_argument("file", type=Path)
    return parser


def _serve(args: argparse.Namespace) -> int:
    import uvicorn

    if args.store_path is not None:
        os.environ["TASKTREE_STORE_PATH"] = str(args.store_path)
    uvicorn.run("tasktree.main:app", host=args.host, port=args.port)
    return 0


async def _open_session(args: argparse.Namespace) -> tuple[SyncSession, HttpBlobStore | None]:
    config = load_sync_config()
    auth = LocalAuthService(args.user)
    http_store = None
    if args.store_path is not None:
        store = LocalBlobStore(FileBlobStore(args.store_path))
    else:
        http_store = HttpBlobStore(
            config.server_url,
            auth,
            service_token=config.service_token,
            timeout=config.request_timeout,
        )
        store = http_store
    session = polling_session(auth, store, config)
    await session.start()
    return session, http_store


async def _run_session_command(args: argparse.Namespace) -> int:
    session, http_store = await _open_session(args)
    try:
        if session.status == SyncStatus.SIGNED_OUT:
            print(session.message, file=sys.stderr)
            return 1
        if args.command == "show":
            print(json.dumps(session.export_state(), ensure_ascii=False, indent=2))
        elif args.command == "export":
            print(session.export_file(args.output))
        else:
            session.import_file(args.file)
            await session.flush()
            if session.status == SyncStatus.SIGNED_OUT:
                print(session.message, file=sys.stderr)
                return 1
            print(f"imported {args.file}")
        return 0
    finally:
        await session.close()
        if http_store is not None:
            await http_store.close()


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    try:
        if args.command == "serve":
            return _serve(args)
        return asyncio.run(_run_session_command(args))
    except (ConfigError, TaskTreeError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
