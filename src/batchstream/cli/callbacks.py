from pathlib import Path

import typer


def load_file_callback(ctx: typer.Context, value: Path):
    if ctx.resilient_parsing:
        return
    if not value.exists():
        raise typer.BadParameter(
            message=f"file at path: '{value.as_posix()}' does not exist",
        )
    return value


def positive_int_callback(ctx: typer.Context, value: int | None):
    if ctx.resilient_parsing or value is None:
        return value
    if value < 1:
        raise typer.BadParameter(message=f"'{value}' must be a positive integer")
    return value
