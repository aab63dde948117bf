from __future__ import annotations

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, NoReturn, Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .models import Contact
from .repository import dynamo_contacts, json_contacts, memory_contacts
from .services.contacts import ContactService

console = Console()

COLUMNS = ["id", "first_name", "last_name", "email", "phone", "account_id"]


def get_service(db_path: Optional[str] = None, backend: Optional[str] = None) -> ContactService:
    # backend resolution order: flag > env CONTACTS_BACKEND > default json
    backend = (backend or os.environ.get("CONTACTS_BACKEND") or "json").lower()
    if backend in ("ddb", "dynamodb"):
        repo = dynamo_contacts(os.environ.get("DDB_TABLE"), os.environ.get("AWS_REGION"))
    elif backend == "memory":
        repo = memory_contacts()
    else:
        path = db_path or os.environ.get("CONTACTS_DB_PATH") or "data/contacts.json"
        repo = json_contacts(path)
    return ContactService(repo)


def _run(coro):
    return asyncio.run(coro)


def _row(c: Contact) -> Dict[str, Any]:
    d = c.to_dict()
    return {k: d[k] for k in COLUMNS if d.get(k) is not None}


def _fail(msg: str) -> NoReturn:
    console.print(f"error: {msg}", style="bold red")
    raise SystemExit(1)


@click.group(help="contact store cli")
@click.option("--db", "db_path", default=None, help="path to json db file (default: data/contacts.json)")
@click.option("--backend", type=click.Choice(["json", "memory", "ddb"], case_sensitive=False), default=None, help="storage backend")
@click.option("-v", "--verbose", is_flag=True, help="debug logging")
@click.pass_context
def cli(ctx: click.Context, db_path: Optional[str], backend: Optional[str], verbose: bool):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )
    # attach the service to context so subcommands can use it
    ctx.obj = {"service": get_service(db_path, backend), "backend": (backend or os.environ.get("CONTACTS_BACKEND") or "json")}


def contact_options(required: bool):
    def wrap(f):
        for opt in reversed([
            click.option("--first", "first_name", required=required, help="first name (1-50 chars)"),
            click.option("--last", "last_name", required=required, help="last name (1-50 chars)"),
            click.option("--email", required=required, help="email address"),
            click.option("--phone", required=required, help="phone number (7-20 chars)"),
            click.option("--account", "account_id", required=False, help="owning account id, optional"),
        ]):
            f = opt(f)
        return f
    return wrap


@cli.command("create", help="create a new contact")
@contact_options(required=True)
@click.pass_context
def create_cmd(ctx: click.Context, **fields: Optional[str]):
    svc: ContactService = ctx.obj["service"]
    try:
        created = _run(svc.create(fields))
    except (ValueError, OSError) as e:
        _fail(str(e))
    console.print(_row(created))


@cli.command("get", help="get a contact by id")
@click.argument("contact_id")
@click.pass_context
def get_cmd(ctx: click.Context, contact_id: str):
    svc: ContactService = ctx.obj["service"]
    try:
        item = _run(svc.get(contact_id))
    except (ValueError, OSError) as e:
        _fail(str(e))
    if item is None:
        console.print("not found", style="yellow")
        raise SystemExit(1)
    console.print(item.to_dict())


@cli.command("update", help="update fields of a contact")
@click.argument("contact_id")
@contact_options(required=False)
@click.pass_context
def update_cmd(ctx: click.Context, contact_id: str, **fields: Optional[str]):
    svc: ContactService = ctx.obj["service"]
    try:
        updated = _run(svc.update(contact_id, fields))
    except (ValueError, OSError) as e:
        _fail(str(e))
    if updated is None:
        console.print("not found", style="yellow")
        raise SystemExit(1)
    console.print(_row(updated))


@cli.command("upsert", help="create or replace a contact with a known id")
@click.argument("contact_id")
@contact_options(required=True)
@click.pass_context
def upsert_cmd(ctx: click.Context, contact_id: str, **fields: Optional[str]):
    svc: ContactService = ctx.obj["service"]
    try:
        stored = _run(svc.upsert({"id": contact_id, **fields}))
    except (ValueError, OSError) as e:
        _fail(str(e))
    console.print(_row(stored))


@cli.command("delete", help="delete a contact by id")
@click.argument("contact_id")
@click.pass_context
def delete_cmd(ctx: click.Context, contact_id: str):
    svc: ContactService = ctx.obj["service"]
    try:
        ok = _run(svc.delete(contact_id))
    except (ValueError, OSError) as e:
        _fail(str(e))
    console.print("deleted" if ok else "not found")
    if not ok:
        raise SystemExit(1)


@cli.command("list", help="list all contacts")
@click.pass_context
def list_cmd(ctx: click.Context):
    svc: ContactService = ctx.obj["service"]
    try:
        rows = _run(svc.list_all())
    except (ValueError, OSError) as e:
        _fail(str(e))
    table = Table(title="contacts")
    for col in COLUMNS:
        table.add_column(col)
    for c in rows:
        table.add_row(c.id, c.first_name, c.last_name, c.email, c.phone, c.account_id or "")
    console.print(table)


@cli.command("search", help="search by name, email or phone")
@click.argument("query")
@click.pass_context
def search_cmd(ctx: click.Context, query: str):
    svc: ContactService = ctx.obj["service"]
    try:
        rows = _run(svc.search(query))
    except (ValueError, OSError) as e:
        _fail(str(e))
    console.print(f"found {len(rows)} result(s)")
    for c in rows:
        console.print(_row(c))


@cli.command("count", help="number of stored contacts")
@click.pass_context
def count_cmd(ctx: click.Context):
    svc: ContactService = ctx.obj["service"]
    try:
        n = _run(svc.count())
    except (ValueError, OSError) as e:
        _fail(str(e))
    console.print(n)


@cli.command("clear", help="remove every contact")
@click.option("--yes", is_flag=True, help="do not ask for confirmation")
@click.pass_context
def clear_cmd(ctx: click.Context, yes: bool):
    svc: ContactService = ctx.obj["service"]
    if not yes:
        click.confirm("remove every contact?", abort=True)
    try:
        _run(svc.clear())
    except OSError as e:
        _fail(str(e))
    console.print("cleared")


@cli.command("import-json", help="import contacts from a json file (array or object keyed by id)")
@click.option("--file", "file_path", required=True, help="path to source json file")
@click.option("--mode", type=click.Choice(["create", "upsert"], case_sensitive=False), default="create", show_default=True, help="create = always new ids; upsert = keep ids from the file")
@click.option("--dry-run", is_flag=True, help="validate only, no writes")
@click.pass_context
def import_json_cmd(ctx: click.Context, file_path: str, mode: str, dry_run: bool):
    svc: ContactService = ctx.obj["service"]
    backend = ctx.obj.get("backend", "json")

    # load file
    try:
        with open(file_path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        _fail(f"reading {file_path}: {e}")

    if isinstance(data, dict):
        data = [{"id": k, **v} if isinstance(v, dict) else v for k, v in data.items()]
    if not isinstance(data, list):
        _fail("json must be an array of objects or an object keyed by id")

    imported = 0
    failed = 0

    async def _import():
        nonlocal imported, failed
        for row in data:
            # only a bad input row is skipped; storage errors abort the import
            try:
                if not isinstance(row, dict):
                    raise ValueError("row is not an object")
                Contact.from_dict(row)
            except ValueError as e:
                failed += 1
                console.print(f"skip: {e}", style="yellow")
                continue
            if not dry_run:
                await (svc.upsert(row) if mode == "upsert" else svc.create(row))
            imported += 1

    try:
        _run(_import())
    except (ValueError, OSError) as e:
        _fail(str(e))

    verb = "validated" if dry_run else "imported"
    console.print(f"done on backend={backend}. {verb}={imported}, failed={failed}, total={len(data)}")


@cli.command("export-json", help="export contacts to a json array file from the selected backend")
@click.option("--file", "file_path", default="export/contacts-export.json", show_default=True, help="output path for json file")
@click.option("--pretty/--compact", default=True, show_default=True, help="pretty print json with indent=2")
@click.option("--force", is_flag=True, help="overwrite the output file if it already exists")
@click.pass_context
def export_json_cmd(ctx: click.Context, file_path: str, pretty: bool, force: bool):
    svc: ContactService = ctx.obj["service"]
    backend = ctx.obj.get("backend", "json")

    try:
        rows = _run(svc.list_all())
    except (ValueError, OSError) as e:
        _fail(str(e))

    # prepare filesystem
    out = Path(file_path)
    out.parent.mkdir(parents=True, exist_ok=True)
    if out.exists() and not force:
        _fail(f"{file_path} already exists. use --force to overwrite.")

    # sort for stable output (last name, then first name)
    rows_sorted = sorted(rows, key=lambda c: (c.last_name.lower(), c.first_name.lower()))

    try:
        with out.open("w", encoding="utf-8") as f:
            json.dump([c.to_dict() for c in rows_sorted], f, ensure_ascii=False, indent=(2 if pretty else None))
    except OSError as e:
        _fail(f"writing {file_path}: {e}")
    console.print(f"exported {len(rows_sorted)} record(s) to {file_path} from backend={backend}")
