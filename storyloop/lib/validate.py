"""
JSON Schema checks for PRD files and progress records.

    prd       every file under the PRD directory, on load
    progress  every <domain>.json record, on load and before each write

A PRD file is checked in full and all of its problems are reported
together, so an author fixing a file doesn't go round one error at a time.
"""

import json
from pathlib import Path

import jsonschema

from storyloop.lib.errors import StoryloopError

SCHEMAS_DIR = Path(__file__).parent.parent / "schemas"
MAX_REPORTED_ERRORS = 5


class ValidationError(StoryloopError):
    """A PRD file or progress record doesn't match its schema."""

    def __init__(self, schema_name: str, message: str, path: str = None):
        self.schema_name = schema_name
        self.message = message
        self.path = path
        super().__init__(f"[{schema_name}] {message}" + (f" at {path}" if path else ""))


_validators: dict = {}


def _validator(schema_name: str):
    """Compiled validator for prd.schema.json / progress.schema.json."""
    if schema_name not in _validators:
        schema_path = SCHEMAS_DIR / f"{schema_name}.schema.json"
        if not schema_path.exists():
            raise ValidationError(schema_name, f"Schema file not found: {schema_path}")
        schema = json.loads(schema_path.read_text())
        cls = jsonschema.validators.validator_for(schema)
        cls.check_schema(schema)
        _validators[schema_name] = cls(schema)
    return _validators[schema_name]


def _json_path(error: jsonschema.ValidationError) -> str:
    # stories.2.passes rather than deque(['stories', 2, 'passes'])
    return ".".join(str(p) for p in error.absolute_path) or "(root)"


def validate(data: dict, schema_name: str) -> None:
    """Check data against the named schema.

    Raises:
        ValidationError: path of the first problem; message lists up to
            MAX_REPORTED_ERRORS problems
    """
    errors = sorted(
        _validator(schema_name).iter_errors(data),
        key=lambda e: [str(p) for p in e.absolute_path],
    )
    if not errors:
        return

    first = errors[0]
    if len(errors) == 1:
        raise ValidationError(schema_name, first.message, _json_path(first))

    lines = [f"{_json_path(e)}: {e.message}" for e in errors[:MAX_REPORTED_ERRORS]]
    if len(errors) > MAX_REPORTED_ERRORS:
        lines.append(f"... and {len(errors) - MAX_REPORTED_ERRORS} more")
    raise ValidationError(schema_name, f"{len(errors)} problems: " + "; ".join(lines), _json_path(first))


def validate_file(filepath: Path, schema_name: str) -> dict:
    """Read a PRD file or progress record and check it.

    Errors name the file so a bad PRD among many is easy to find.
    """
    if not filepath.exists():
        raise ValidationError(schema_name, f"File not found: {filepath}")

    try:
        data = json.loads(filepath.read_text())
    except json.JSONDecodeError as e:
        raise ValidationError(schema_name, f"Invalid JSON in {filepath}: {e}") from None

    try:
        validate(data, schema_name)
    except ValidationError as e:
        raise ValidationError(schema_name, f"{filepath.name}: {e.message}", e.path) from None
    return data


def validate_before_write(data: dict, schema_name: str, filepath: Path) -> None:
    """Refuse to persist a progress record that wouldn't load back."""
    try:
        validate(data, schema_name)
    except ValidationError as e:
        raise ValidationError(
            schema_name,
            f"Refusing to write invalid data to {filepath}: {e}"
        ) from None
