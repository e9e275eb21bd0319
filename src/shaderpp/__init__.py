import argparse
import json
import logging
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import TextIO, cast

import moderngl

from shaderpp.diag import ShaderError
from shaderpp.gl_backend import ModernGLBackend
from shaderpp.normalizer import normalize_source
from shaderpp.options import PreprocessOptions
from shaderpp.preprocessor import PreprocessResult, preprocess_file, preprocess_source
from shaderpp.shader import Shader, compile_shader

__all__ = [
    "PreprocessOptions",
    "PreprocessResult",
    "Shader",
    "ShaderError",
    "compile_shader",
    "main",
    "normalize_source",
    "preprocess_file",
    "preprocess_source",
]


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Expand #include directives and include guards in GLSL stage files."
    )
    parser.add_argument(
        "inputs",
        nargs="+",
        help="shader stage file, or - to read from stdin; several stage files with --link",
    )
    parser.add_argument("-I", dest="include_dirs", action="append", default=[], help="include path")
    parser.add_argument(
        "--no-env-includes",
        action="store_true",
        help="ignore include directories listed in SHADERPP_INCLUDE_PATH",
    )
    parser.add_argument(
        "--diag-format",
        choices=("human", "json"),
        default="human",
        help="diagnostic output format",
    )
    parser.add_argument(
        "--dump-include-trace",
        action="store_true",
        help="print include resolution trace",
    )
    parser.add_argument(
        "--dump-line-map",
        action="store_true",
        help="print the source location of every output line",
    )
    parser.add_argument(
        "--link",
        action="store_true",
        help="compile and link the stage files with an offscreen OpenGL context",
    )
    parser.add_argument("--name", default=None, help="shader program name used with --link")
    parser.add_argument("-o", "--output", default=None, help="write preprocessed source to a file")
    parser.add_argument("-v", "--verbose", action="store_true", help="log preprocessing steps")
    return parser


def _read_input(path: str, *, stdin: TextIO | None = None) -> tuple[str, str]:
    if path == "-":
        stream = sys.stdin if stdin is None else stdin
        return "<stdin>", stream.read()
    return path, Path(path).read_text(encoding="utf-8")


def _report(error: ShaderError, diag_format: str) -> None:
    if diag_format == "json":
        print(json.dumps(error.to_dict(), separators=(",", ":")), file=sys.stderr)
    else:
        print(error, file=sys.stderr)


def _link(args: argparse.Namespace, options: PreprocessOptions) -> int:
    try:
        backend = ModernGLBackend.standalone()
    except moderngl.Error as error:
        print(f"shaderpp: could not create an OpenGL context: {error}", file=sys.stderr)
        return 1
    try:
        shader = compile_shader(args.name, args.inputs, backend=backend, options=options)
    except ShaderError as error:
        _report(error, options.diag_format)
        return 1
    print(f"shaderpp: ok: {shader.name}")
    shader.release()
    return 0


def main(argv: Sequence[str] | None = None, *, stdin: TextIO | None = None) -> int:
    parser = _build_arg_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit as error:
        return cast(int, error.code)
    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(name)s: %(message)s")
    options = PreprocessOptions(
        include_dirs=tuple(args.include_dirs),
        use_env_include_dirs=not args.no_env_includes,
        diag_format=args.diag_format,
    )
    if args.link:
        return _link(args, options)
    if len(args.inputs) != 1:
        print("shaderpp: error: preprocessing takes exactly one input file", file=sys.stderr)
        return 2
    try:
        filename, source = _read_input(args.inputs[0], stdin=stdin)
    except (OSError, UnicodeError) as error:
        print(f"shaderpp: I/O error: {error}", file=sys.stderr)
        return 1
    try:
        result = preprocess_source(source, filename=filename, options=options)
    except ShaderError as error:
        _report(error, options.diag_format)
        return 1
    if args.dump_include_trace:
        for line in result.include_trace:
            print(line)
    if args.dump_line_map:
        for index, (origin, line_number) in enumerate(result.line_map, start=1):
            print(f"{index}\t{origin}:{line_number}")
    if args.dump_include_trace or args.dump_line_map:
        return 0
    if args.output is not None:
        Path(args.output).write_text(result.source + "\n", encoding="utf-8")
        return 0
    print(result.source)
    return 0
