from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any, Mapping, Sequence

import yaml
from jinja2 import Environment, StrictUndefined, TemplateError

from ..db.models import Operation, OperationType
from ..errors import DefinitionError
from .models import Definition

logger = logging.getLogger(__name__)

SUPPORTED_VERSIONS = (0, 1)

# Go template forms used by older definition files:
# {{ .params.x }} and {{ index .params "x" }}
_DOT_PARAMS = re.compile(r"({{-?\s*)\.params\b")
_INDEX_PARAMS = re.compile(r"({{-?\s*)index\s+\.params\s+(\"[^\"]*\"|'[^']*')\s*(-?}})")

_NULL_TAG = "tag:yaml.org,2002:null"

_jinja = Environment(undefined=StrictUndefined, autoescape=False, keep_trailing_newline=True)


def load_definition(path: str | Path) -> Definition:
    return load_definitions([path])


def load_definitions(paths: Sequence[str | Path]) -> Definition:
    """
    Load, merge, validate and render one or more YAML definition files.

    Later files override params of earlier ones; operations are concatenated
    in file order.

    Raises:
        DefinitionError: If a file cannot be read or parsed, or the merged
                         definition is invalid
    """
    if not paths:
        raise DefinitionError("no definition files given")

    merged = parse_definition(_read(paths[0]), source=str(paths[0]))
    for path in paths[1:]:
        merge_definitions(merged, parse_definition(_read(path), source=str(path)))

    validate_definition(merged)
    render_templates(merged)
    logger.debug("loaded %d operations from %d file(s)", len(merged.operations), len(paths))
    return merged


def _read(path: str | Path) -> str:
    try:
        return Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        raise DefinitionError(f"failed to read config file: {path}: {exc}") from exc


def parse_definition(content: str, source: str = "<string>") -> Definition:
    """Build an unvalidated Definition from YAML text."""
    try:
        loader = yaml.SafeLoader(content)
        try:
            root = loader.get_single_node()
            raw = loader.construct_document(root) if root is not None else None
        finally:
            loader.dispose()
    except yaml.YAMLError as exc:
        raise DefinitionError(f"failed to parse YAML in {source}: {exc}") from exc

    if raw is None:
        raw = {}
    if not isinstance(raw, Mapping):
        raise DefinitionError(f"{source}: top level must be a mapping")

    version = raw.get("version", 0)
    if not isinstance(version, int) or isinstance(version, bool):
        raise DefinitionError(f"{source}: version must be an integer")

    params = raw.get("params") or {}
    if not isinstance(params, Mapping):
        raise DefinitionError(f"{source}: params must be a mapping")

    raw_operations = raw.get("operations") or []
    if not isinstance(raw_operations, list):
        raise DefinitionError(f"{source}: operations must be a list")

    return Definition(
        version=version,
        params=_param_text(root, source),
        operations=[_parse_operation(item, i, source) for i, item in enumerate(raw_operations)],
    )


def _param_text(root: yaml.Node | None, source: str) -> dict[str, str]:
    """
    Params exactly as written in the file.

    Values are read from the YAML nodes rather than the constructed objects so
    that `true`, `0x10` or `1.50` reach the SQL template unchanged.
    """
    if not isinstance(root, yaml.MappingNode):
        return {}
    for key_node, value_node in root.value:
        if key_node.value != "params" or not isinstance(value_node, yaml.MappingNode):
            continue
        params: dict[str, str] = {}
        for name_node, node in value_node.value:
            if not isinstance(node, yaml.ScalarNode):
                raise DefinitionError(f"{source}: params.{name_node.value} must be a scalar")
            params[str(name_node.value)] = "" if node.tag == _NULL_TAG else node.value
        return params
    return {}


def _parse_operation(item: Any, index: int, source: str) -> Operation:
    if not isinstance(item, Mapping):
        raise DefinitionError(f"{source}: operation[{index}] must be a mapping")

    expected = item.get("expected") or []
    if not isinstance(expected, list) or not all(isinstance(r, Mapping) for r in expected):
        raise DefinitionError(f"{source}: operation[{index}]: expected must be a list of mappings")

    expected_changes = item.get("expected_changes") or {}
    if not isinstance(expected_changes, Mapping):
        raise DefinitionError(f"{source}: operation[{index}]: expected_changes must be a mapping")
    for key, count in expected_changes.items():
        if not isinstance(count, int) or isinstance(count, bool):
            raise DefinitionError(
                f"{source}: operation[{index}]: expected_changes.{key} must be an integer"
            )

    return Operation(
        id=str(item.get("id") or ""),
        description=str(item.get("description") or ""),
        type=str(item.get("type") or "").lower(),
        statement=str(item.get("sql") or ""),
        expected_rows=[dict(row) for row in expected],
        expected_changes={str(k): v for k, v in expected_changes.items()},
    )


def merge_definitions(base: Definition, additional: Definition) -> None:
    """
    Merge `additional` into `base` in place.

    Raises:
        DefinitionError: On version mismatch or duplicate explicit operation IDs
    """
    if base.version != additional.version:
        raise DefinitionError(
            f"version mismatch: {base.version} and {additional.version}"
        )

    seen = {op.id for op in base.operations if op.id}
    for op in additional.operations:
        if op.id and op.id in seen:
            raise DefinitionError(f"duplicate operation ID: {op.id}")
        if op.id:
            seen.add(op.id)

    base.params.update(additional.params)
    base.operations.extend(additional.operations)


def validate_definition(definition: Definition) -> None:
    """
    Check the definition and fill in defaults: missing IDs become
    `operation_<index>`, missing types are detected from the SQL.
    """
    if definition.version not in SUPPORTED_VERSIONS:
        raise DefinitionError(f"unsupported version: {definition.version}")

    seen: set[str] = set()
    for i, op in enumerate(definition.operations):
        if not op.statement.strip():
            raise DefinitionError(f"operation[{i}]: sql is required")

        if not op.id:
            op.id = f"operation_{i}"
        if op.id in seen:
            raise DefinitionError(f"duplicate operation ID: {op.id}", operation_id=op.id)
        seen.add(op.id)

        if not op.type:
            detected = OperationType.detect(op.statement)
            if detected is None:
                raise DefinitionError(
                    f"operation[{op.id}]: unable to detect SQL type from query",
                    operation_id=op.id,
                )
            op.type = detected
        else:
            try:
                op.type = OperationType(op.type)
            except ValueError:
                allowed = ", ".join(t.value for t in OperationType)
                raise DefinitionError(
                    f"operation[{op.id}]: unsupported type: {op.type} (allowed: {allowed})",
                    operation_id=op.id,
                ) from None

        if op.type is OperationType.SELECT and not op.expected_rows:
            raise DefinitionError(
                f"operation[{op.id}]: expected is required for SELECT", operation_id=op.id
            )
        if op.type.is_dml and not op.expected_changes:
            raise DefinitionError(
                f"operation[{op.id}]: expected_changes is required for DML", operation_id=op.id
            )


def _to_jinja(sql: str) -> str:
    sql = _INDEX_PARAMS.sub(r"\1params[\2] \3", sql)
    return _DOT_PARAMS.sub(r"\1params", sql)


def render_templates(definition: Definition) -> None:
    """Render every operation's SQL with `params` in scope."""
    context = {"params": definition.params}
    for op in definition.operations:
        try:
            template = _jinja.from_string(_to_jinja(op.statement))
            op.statement = template.render(context)
        except TemplateError as exc:
            raise DefinitionError(
                f"operation[{op.id}]: failed to render SQL template: {exc}",
                operation_id=op.id,
            ) from exc
