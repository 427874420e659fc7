import json
import typing as t
from pathlib import Path

from pydantic import ValidationError

from batchstream.exceptions import ConfigurationError
from batchstream.models import CallDescriptor, call_descriptor_list_adapter


def read_jsonl_file(file_path: str | Path) -> list[dict]:
    """Read a JSONL file and return one dict per non-blank line

    Args:
        file_path (str | Path): The path to the file to read
    """
    with open(file_path, "r") as f:
        return [json.loads(line) for line in f.readlines() if line.strip()]


def read_call_descriptors(file_path: str | Path) -> list[CallDescriptor]:
    """Read call descriptors from a JSONL file

    Args:
        file_path (str | Path): The path to the file to read

    Raises:
        ConfigurationError: If a line is not a valid call descriptor
    """
    try:
        return call_descriptor_list_adapter.validate_python(read_jsonl_file(file_path))
    except (ValidationError, json.JSONDecodeError) as error:
        raise ConfigurationError(f"invalid call descriptor file '{file_path}': {error}") from error


def dump_result(result: t.Any) -> str:
    """Serialize one pipeline result as a JSON line (without the line break)"""
    if hasattr(result, "model_dump"):
        result = result.model_dump()
    return json.dumps(result)
