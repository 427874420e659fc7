import asyncio
import logging
import sys
import typing as t
from collections import Counter
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from batchstream.cli.callbacks import load_file_callback, positive_int_callback
from batchstream.config import Settings
from batchstream.exceptions import BatchStreamError
from batchstream.logging import logging_context, setup_logging
from batchstream.models import CallDescriptor, DecodeErrorResult
from batchstream.pipeline import BatchPipeline
from batchstream.utils.files import dump_result, read_call_descriptors

app = typer.Typer(no_args_is_help=True)
err_console = Console(stderr=True)


async def _write_results(
    pipeline: BatchPipeline,
    descriptors: list[CallDescriptor],
    out: t.TextIO,
) -> Counter:
    counts: Counter = Counter()
    async for result in pipeline.pipeline()(descriptors):
        out.write(dump_result(result) + "\n")
        counts["decode_errors" if isinstance(result, DecodeErrorResult) else "results"] += 1
    return counts


@app.command(name="run")
def run(
    ctx: typer.Context,
    input_path: Annotated[
        Path,
        typer.Argument(
            help="JSONL file with one call descriptor per line",
            callback=load_file_callback,
        ),
    ],
    output_path: Annotated[
        Path | None,
        typer.Option("--output", "-o", help="JSONL file receiving the results, stdout if omitted"),
    ] = None,
    token: Annotated[
        str | None,
        typer.Option(help="Bearer token, defaults to BATCHSTREAM_ACCESS_TOKEN", show_default=False),
    ] = None,
    batch_size: Annotated[
        int | None, typer.Option(help="Calls per batch", callback=positive_int_callback)
    ] = None,
    parallel_requests: Annotated[
        int | None,
        typer.Option(help="Max in-flight batch calls", callback=positive_int_callback),
    ] = None,
    user_quota: Annotated[
        int | None, typer.Option(help="Quota units per window", callback=positive_int_callback)
    ] = None,
    quota_cost_per_item: Annotated[
        int | None, typer.Option(help="Quota units per call", callback=positive_int_callback)
    ] = None,
    filter_errors: Annotated[
        bool | None,
        typer.Option(
            "--filter-errors/--keep-errors",
            help="Drop failed and undecodable sub-responses",
            show_default=False,
        ),
    ] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable debug logs")] = False,
):
    """Send call descriptors as batched requests and write the decoded results"""
    setup_logging(level=logging.DEBUG if verbose else logging.WARNING)
    try:
        settings = Settings.from_env(
            access_token=token,
            batch_size=batch_size,
            parallel_requests=parallel_requests,
            user_quota=user_quota,
            quota_cost_per_item=quota_cost_per_item,
            filter_errors=filter_errors,
        )
        if not settings.access_token:
            err_console.print(
                "[red]No access token: pass --token or set BATCHSTREAM_ACCESS_TOKEN[/red]"
            )
            raise typer.Exit(1)
        descriptors = read_call_descriptors(input_path)
        pipeline = BatchPipeline(
            token=settings.access_token,
            settings=settings,
            client_factory=(ctx.obj or {}).get("client_factory"),
        )
        with logging_context(input_path=input_path.as_posix()):
            if output_path is None:
                counts = asyncio.run(_write_results(pipeline, descriptors, sys.stdout))
            else:
                output_path.parent.mkdir(parents=True, exist_ok=True)
                with open(output_path, "w") as out:
                    counts = asyncio.run(_write_results(pipeline, descriptors, out))
    except BatchStreamError as error:
        err_console.print(f"[red]{type(error).__name__}: {error}[/red]")
        raise typer.Exit(1)

    missing = len(descriptors) - counts["results"] - counts["decode_errors"]
    summary = "\n".join(
        [
            f"Calls submitted: {len(descriptors)}",
            f"Results written: [green]{counts['results']}[/green]",
            f"Decode errors: [yellow]{counts['decode_errors']}[/yellow]",
            f"Suppressed or missing: {missing}",
        ]
    )
    err_console.print(Panel(summary, title="batchstream", expand=False, highlight=True))


@app.command(name="check")
def check(
    input_path: Annotated[
        Path,
        typer.Argument(
            help="JSONL file with one call descriptor per line",
            callback=load_file_callback,
        ),
    ],
    batch_size: Annotated[
        int, typer.Option(help="Calls per batch", callback=positive_int_callback)
    ] = 100,
):
    """Validate a call descriptor file without sending anything"""
    try:
        descriptors = read_call_descriptors(input_path)
    except BatchStreamError as error:
        err_console.print(f"[red]{error}[/red]")
        raise typer.Exit(1)

    table = Table("Method", "URL", "Calls", title="Call descriptors")
    for (method, url), count in sorted(
        Counter((descriptor.method, descriptor.url) for descriptor in descriptors).items()
    ):
        table.add_row(method, url, str(count))
    console = Console()
    console.print(table)
    batch_count = -(-len(descriptors) // batch_size)
    console.print(f"{len(descriptors)} calls in [green]{batch_count}[/green] batch(es)")


if __name__ == "__main__":
    app()
