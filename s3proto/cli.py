"""Command-line interface for s3proto.

Provides argument parsing and the main entry point for running bucket and
object operations against a configured endpoint.
"""

import argparse
import asyncio
import logging
import sys
from typing import Optional

from rich import box
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from s3proto import __version__
from s3proto.config import DEFAULT_CONFIG_PATH, ConfigError, load_config
from s3proto.errors import S3Error
from s3proto.s3_client import S3Client, build_client
from s3proto.validation import MIN_PART_SIZE


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Args:
        argv: Command-line arguments (defaults to sys.argv[1:])

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(
        prog="s3proto",
        description="Talk to an S3-compatible endpoint",
    )
    parser.add_argument(
        "-c", "--config",
        default=DEFAULT_CONFIG_PATH,
        help="Path to configuration file (default: s3proto.json)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase log verbosity (-v info, -vv debug)",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("buckets", help="List buckets")

    ls = commands.add_parser("ls", help="List objects in a bucket")
    ls.add_argument("bucket")
    ls.add_argument("--prefix", default="")
    ls.add_argument("--recursive", action="store_true", help="Do not group by '/'")

    mb = commands.add_parser("mb", help="Create a bucket")
    mb.add_argument("bucket")
    mb.add_argument("--region")
    mb.add_argument("--with-lock", action="store_true", help="Enable object lock")

    rb = commands.add_parser("rb", help="Remove an empty bucket")
    rb.add_argument("bucket")

    put = commands.add_parser("put", help="Upload a file (multipart above one part)")
    put.add_argument("bucket")
    put.add_argument("key")
    put.add_argument("file")
    put.add_argument("--part-size", type=int, default=None, metavar="BYTES",
                     help=f"Part size (default: smallest valid, at least {MIN_PART_SIZE})")
    put.add_argument("--concurrency", type=int, default=4)

    get = commands.add_parser("get", help="Download an object to a file")
    get.add_argument("bucket")
    get.add_argument("key")
    get.add_argument("file")

    uploads = commands.add_parser("uploads", help="List in-progress multipart uploads")
    uploads.add_argument("bucket")

    listen = commands.add_parser("listen", help="Print bucket notifications as they arrive")
    listen.add_argument("bucket")
    listen.add_argument("--event", action="append", dest="events", metavar="EVENT",
                        help="Event to subscribe to (repeatable)")
    listen.add_argument("--prefix", default="")
    listen.add_argument("--suffix", default="")

    return parser.parse_args(argv)


def configure_logging(verbosity: int) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=False, show_path=False)],
    )


def _size(value: int) -> str:
    for unit in ("B", "KiB", "MiB", "GiB"):
        if value < 1024:
            return f"{value:.0f} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} TiB"


async def cmd_buckets(client: S3Client, args: argparse.Namespace, console: Console) -> None:
    table = Table(title="Buckets", box=box.ASCII)
    table.add_column("Name", style="cyan")
    table.add_column("Created")
    for bucket in await client.list_buckets():
        created = bucket.creation_date.isoformat() if bucket.creation_date else ""
        table.add_row(bucket.name, created)
    console.print(table)


async def cmd_ls(client: S3Client, args: argparse.Namespace, console: Console) -> None:
    table = Table(title=f"{args.bucket}/{args.prefix}", box=box.ASCII)
    table.add_column("Key", style="cyan")
    table.add_column("Size", justify="right")
    table.add_column("Last modified")
    async for item in client.list_objects(args.bucket, prefix=args.prefix, recursive=args.recursive):
        if item.is_prefix:
            table.add_row(f"[bold]{item.key}[/bold]", "PRE", "")
        else:
            modified = item.last_modified.isoformat() if item.last_modified else ""
            table.add_row(item.key, _size(item.size), modified)
    console.print(table)


async def cmd_mb(client: S3Client, args: argparse.Namespace, console: Console) -> None:
    location = await client.create_bucket(args.bucket, region=args.region, object_lock=args.with_lock)
    console.print(f"[green]Bucket created:[/green] {location or args.bucket}")


async def cmd_rb(client: S3Client, args: argparse.Namespace, console: Console) -> None:
    await client.delete_bucket(args.bucket)
    console.print(f"[green]Bucket removed:[/green] {args.bucket}")


async def cmd_put(client: S3Client, args: argparse.Namespace, console: Console) -> None:
    with open(args.file, "rb") as f:
        f.seek(0, 2)
        size = f.tell()
        f.seek(0)
        if size < MIN_PART_SIZE and args.part_size is None:
            etag = await client.put_object(args.bucket, args.key, f)
        else:
            result = await client.upload_stream(
                args.bucket,
                args.key,
                f,
                size=size,
                part_size=args.part_size,
                concurrency=args.concurrency,
            )
            etag = result.etag
    console.print(f"[green]Uploaded[/green] {args.file} -> {args.bucket}/{args.key} ({_size(size)}, ETag {etag})")


async def cmd_get(client: S3Client, args: argparse.Namespace, console: Console) -> None:
    async with client.open_object(args.bucket, args.key) as (response, info):
        with open(args.file, "wb") as f:
            async for chunk in response.aiter_bytes():
                f.write(chunk)
    console.print(f"[green]Downloaded[/green] {args.bucket}/{args.key} -> {args.file} ({_size(info.size)})")


async def cmd_uploads(client: S3Client, args: argparse.Namespace, console: Console) -> None:
    table = Table(title=f"Multipart uploads in {args.bucket}", box=box.ASCII)
    table.add_column("Key", style="cyan")
    table.add_column("Upload ID")
    table.add_column("Initiated")
    async for upload in client.list_multipart_uploads(args.bucket):
        initiated = upload.initiated.isoformat() if upload.initiated else ""
        table.add_row(upload.key, upload.upload_id, initiated)
    console.print(table)


async def cmd_listen(client: S3Client, args: argparse.Namespace, console: Console) -> None:
    kwargs = {"prefix": args.prefix, "suffix": args.suffix}
    if args.events:
        kwargs["events"] = args.events
    console.print(f"[dim]Listening on {args.bucket} (Ctrl+C to stop)[/dim]")
    async for event in client.listen_bucket_notifications(args.bucket, **kwargs):
        console.print(f"{event.event_time}  [cyan]{event.event_name}[/cyan]  {event.bucket_name}/{event.key}")


COMMANDS = {
    "buckets": cmd_buckets,
    "ls": cmd_ls,
    "mb": cmd_mb,
    "rb": cmd_rb,
    "put": cmd_put,
    "get": cmd_get,
    "uploads": cmd_uploads,
    "listen": cmd_listen,
}


async def run_command(client: S3Client, args: argparse.Namespace, console: Console) -> None:
    async with client:
        await COMMANDS[args.command](client, args, console)


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point.

    Args:
        argv: Command-line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code: 0 for success, 1 for S3 errors, 2 for configuration errors
    """
    args = parse_args(argv)
    configure_logging(args.verbose)
    console = Console(legacy_windows=True)

    try:
        config = load_config(args.config)
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    client = build_client(config)
    try:
        asyncio.run(run_command(client, args, console))
    except S3Error as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 130
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
