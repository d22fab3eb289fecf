"""Generate a defaults file for the manager from a template.

Placeholders such as ``{{.Version}}`` in the template are replaced with the
values given on the command line.
"""

from __future__ import annotations

import argparse
import math
import re
import sys
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TextIO, Union

import yaml

from loadtestinfra.defaults import Defaults, DefaultsError

_ACTION = re.compile(r"\{\{(.*?)\}\}", re.S)
_FIELD = re.compile(r"\.([A-Za-z_][A-Za-z0-9_]*)")
_VALIDATE_FLAG = re.compile(r"^--?validate(?:=(.*))?$", re.S)
_TRUE = {"1", "t", "T", "true", "TRUE", "True"}
_FALSE = {"0", "f", "F", "false", "FALSE", "False"}


class TemplateError(ValueError):
    """Raised when a template cannot be parsed or executed."""


@dataclass
class DefaultsData:
    """Values available to the defaults template."""

    version: str = "latest"
    init_image_prefix: str = ""
    build_image_prefix: str = ""
    run_image_prefix: str = ""
    kill_after: float = math.nan

    def _fields(self) -> dict[str, str]:
        return {
            "Version": self.version,
            "InitImagePrefix": self.init_image_prefix,
            "BuildImagePrefix": self.build_image_prefix,
            "RunImagePrefix": self.run_image_prefix,
            "KillAfter": _format_float(self.kill_after),
        }


@dataclass(frozen=True)
class _Field:
    name: str


_Part = Union[str, _Field]


def _format_float(value: float) -> str:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    if value.is_integer() and abs(value) < 1e21:
        return str(int(value))
    return repr(value)


def _parse(template: str) -> list[_Part]:
    parts: list[_Part] = []
    trim_next = False
    position = 0
    for match in _ACTION.finditer(template):
        text = template[position:match.start()]
        inner = match.group(1)
        left_trim = inner.startswith("-") and (len(inner) == 1 or inner[1].isspace())
        right_trim = inner.endswith("-") and (len(inner) == 1 or inner[-2].isspace())
        if trim_next:
            text = text.lstrip()
        if left_trim:
            text = text.rstrip()
            inner = inner[1:]
        if right_trim and inner:
            inner = inner[:-1]
        if text:
            parts.append(text)
        trim_next = right_trim
        position = match.end()

        action = inner.strip()
        if action.startswith("/*") and action.endswith("*/") and len(action) >= 4:
            continue
        field_match = _FIELD.fullmatch(action)
        if field_match is None:
            raise TemplateError(f"unsupported action {{{{{action}}}}}")
        parts.append(_Field(field_match.group(1)))

    rest = template[position:]
    if "{{" in rest:
        raise TemplateError("unclosed action")
    if trim_next:
        rest = rest.lstrip()
    if rest:
        parts.append(rest)
    return parts


def _execute(parts: list[_Part], data: DefaultsData) -> str:
    values = data._fields()
    pieces = []
    for part in parts:
        if isinstance(part, _Field):
            if part.name not in values:
                raise TemplateError(f"can't evaluate field {part.name} in the template data")
            pieces.append(values[part.name])
        else:
            pieces.append(part)
    return "".join(pieces)


def render_template(template: str, data: DefaultsData) -> str:
    """Replace the placeholders in a template with values from data."""
    return _execute(_parse(template), data)


def _validate_output(output: str) -> None:
    try:
        defaults = Defaults.from_dict(yaml.safe_load(output))
    except (yaml.YAMLError, DefaultsError) as exc:
        raise DefaultsError(f"generated config is not parsable as YAML: {exc}") from exc
    try:
        defaults.validate()
    except DefaultsError as exc:
        raise DefaultsError(f"generated config is invalid: {exc}") from exc


def generate(template: str, data: DefaultsData, validate: bool = True) -> str:
    """Render a defaults template, optionally checking that the result is valid."""
    output = render_template(template, data)
    if validate:
        _validate_output(output)
    return output


_DESCRIPTION = """\
Generates a defaults file for the manager. It accepts a template file and
replaces placeholders with data that may change based on where the manager
and container images will live and run.

The first argument, <template-file>, is the input YAML file with placeholders
for string interpolation, written as {{.Field}}. The second, <output-file>, is
the path to write the output on disk. All flags passed to the script (except
-validate) are accessible within the template as Version, InitImagePrefix,
BuildImagePrefix, RunImagePrefix and KillAfter."""


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="configure",
        usage="%(prog)s [flags] <template-file> <output-file>",
        description=_DESCRIPTION,
        formatter_class=argparse.RawDescriptionHelpFormatter,
        allow_abbrev=False,
    )
    parser.add_argument(
        "-version", "--version", dest="version", default="latest",
        help="version of all docker images to use",
    )
    parser.add_argument(
        "-init-image-prefix", "--init-image-prefix", dest="init_image_prefix", default="",
        help="prefix to apply to all init container images (optional)",
    )
    parser.add_argument(
        "-build-image-prefix", "--build-image-prefix", dest="build_image_prefix", default="",
        help="prefix to apply to all build container images (optional)",
    )
    parser.add_argument(
        "-run-image-prefix", "--run-image-prefix", dest="run_image_prefix", default="",
        help="prefix to apply to all run container images (optional)",
    )
    parser.add_argument(
        "-kill-after", "--kill-after", dest="kill_after", type=float, default=math.nan,
        help="time allowed for pod to respond after timeout, in seconds",
    )
    parser.add_argument("files", nargs="*", help=argparse.SUPPRESS)
    return parser


def _extract_validate(argv: Sequence[str]) -> tuple[bool, list[str]]:
    validate = True
    rest: list[str] = []
    items = list(argv)
    for index, arg in enumerate(items):
        if arg == "--":
            rest.extend(items[index:])
            break
        match = _VALIDATE_FLAG.match(arg)
        if match is None:
            rest.append(arg)
            continue
        value = match.group(1)
        if value is None or value in _TRUE:
            validate = True
        elif value in _FALSE:
            validate = False
        else:
            raise ValueError(f"invalid boolean value {value!r} for -validate")
    return validate, rest


def _fail(parser: argparse.ArgumentParser, stream: TextIO, show_usage: bool, message: str) -> int:
    if show_usage:
        stream.write(parser.format_help())
        stream.write("  -validate, --validate  validate the output configuration for correctness "
                     "(default true)\n\n")
    stream.write(message + "\n")
    return 1


def main(argv: Sequence[str] | None = None) -> int:
    """Run the command line tool and return its exit status."""
    parser = _build_parser()
    stderr = sys.stderr
    try:
        validate, remaining = _extract_validate(sys.argv[1:] if argv is None else argv)
    except ValueError as exc:
        stderr.write(f"{exc}\n")
        return 2
    args = parser.parse_args(remaining)

    if len(args.files) != 2:
        return _fail(parser, stderr, True, "missing required arguments")
    if math.isnan(args.kill_after):
        return _fail(parser, stderr, True, "missing required flag: kill-after")

    template_path, output_path = args.files
    try:
        with open(template_path, encoding="utf-8") as handle:
            parts = _parse(handle.read())
    except (OSError, TemplateError) as exc:
        return _fail(parser, stderr, True, f"could not open and parse <template-file>: {exc}")

    try:
        output_file = open(output_path, "w", encoding="utf-8")
    except OSError as exc:
        return _fail(parser, stderr, True, f"could not create <output-file>: {exc}")

    data = DefaultsData(
        version=args.version,
        init_image_prefix=args.init_image_prefix,
        build_image_prefix=args.build_image_prefix,
        run_image_prefix=args.run_image_prefix,
        kill_after=args.kill_after,
    )

    with output_file:
        try:
            output = _execute(parts, data)
        except TemplateError as exc:
            return _fail(parser, stderr, False, f"could not generate config from template: {exc}")

        if validate:
            try:
                _validate_output(output)
            except DefaultsError as exc:
                return _fail(parser, stderr, False, str(exc))

        try:
            output_file.write(output)
        except OSError as exc:
            return _fail(parser, stderr, False, f"could not write config to output file: {exc}")

    return 0


if __name__ == "__main__":
    raise SystemExit(main())