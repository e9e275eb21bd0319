import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Protocol

from shaderpp.diag import CompileError, ConfigurationError, LinkError
from shaderpp.options import PreprocessOptions, normalize_options
from shaderpp.preprocessor import preprocess_file

logger = logging.getLogger(__name__)


class StageKind(Enum):
    VERTEX = "vertex"
    FRAGMENT = "fragment"
    GEOMETRY = "geometry"


_STAGE_EXTENSIONS = {
    ".vert": StageKind.VERTEX,
    ".frag": StageKind.FRAGMENT,
    ".geom": StageKind.GEOMETRY,
}


@dataclass(frozen=True)
class CompiledStage:
    kind: StageKind
    path: str
    source: str
    line_map: tuple[tuple[str, int], ...] = ()


class BackendError(Exception):
    def __init__(self, log: str, stage: StageKind | None = None) -> None:
        super().__init__(log)
        self.log = log
        self.stage = stage


class GraphicsBackend(Protocol):
    def create_program(self, stages: Sequence[CompiledStage]) -> Any: ...

    def release_program(self, program: Any) -> None: ...

    def bind_program(self, program: Any) -> None: ...

    def unbind_program(self) -> None: ...

    def set_uniform(self, program: Any, name: str, value: object) -> None: ...


def stage_kind_from_path(path: str | Path) -> StageKind:
    suffix = Path(path).suffix
    if not suffix:
        raise ConfigurationError(f"Could not find shader extension on file: '{path}'")
    kind = _STAGE_EXTENSIONS.get(suffix)
    if kind is None:
        raise ConfigurationError(f"Unknown or unsupported shader of type: '{suffix[1:]}' ({path})")
    return kind


def asset_name(path: str | Path) -> str:
    filename = re.split(r"[\\/]", str(path))[-1]
    stem, _, _ = filename.partition(".")
    return stem or filename


def preprocess_stage(path: str | Path, options: PreprocessOptions | None = None) -> CompiledStage:
    kind = stage_kind_from_path(path)
    result = preprocess_file(path, options=options)
    return CompiledStage(kind, str(path), result.source, result.line_map)


class Shader:
    def __init__(
        self,
        name: str | None,
        stage_paths: Sequence[str | Path],
        *,
        backend: GraphicsBackend,
        options: PreprocessOptions | None = None,
    ) -> None:
        if not stage_paths:
            raise ConfigurationError("A shader program needs at least one stage file")
        self._stage_paths = tuple(str(path) for path in stage_paths)
        self._name = name if name is not None else asset_name(self._stage_paths[0])
        self._backend = backend
        self._options = normalize_options(options)
        self._program, self._stages = self._build_program()

    @property
    def name(self) -> str:
        return self._name

    @property
    def program(self) -> Any:
        return self._program

    @property
    def stage_paths(self) -> tuple[str, ...]:
        return self._stage_paths

    @property
    def stages(self) -> tuple[CompiledStage, ...]:
        return self._stages

    def recompile(self) -> Any:
        program, stages = self._build_program()
        previous = self._program
        self._program = program
        self._stages = stages
        if previous is not None:
            self._backend.release_program(previous)
        return program

    def bind(self) -> None:
        self._backend.bind_program(self._program)

    def unbind(self) -> None:
        self._backend.unbind_program()

    def set_uniform(self, name: str, value: object) -> None:
        self._backend.set_uniform(self._program, name, value)

    def release(self) -> None:
        if self._program is None:
            return
        self._backend.release_program(self._program)
        self._program = None

    def _preprocess_stages(self) -> tuple[CompiledStage, ...]:
        owners: dict[StageKind, str] = {}
        stages: list[CompiledStage] = []
        for path in self._stage_paths:
            kind = stage_kind_from_path(path)
            if kind in owners:
                raise ConfigurationError(
                    f"Shader: {self._name} has more than one {kind.value} stage: "
                    f"'{owners[kind]}' and '{path}'"
                )
            owners[kind] = path
            stages.append(preprocess_stage(path, self._options))
        return tuple(stages)

    def _build_program(self) -> tuple[Any, tuple[CompiledStage, ...]]:
        stages = self._preprocess_stages()
        try:
            program = self._backend.create_program(stages)
        except BackendError as error:
            raise self._wrap_backend_error(error, stages) from error
        logger.info("linked shader program %s from %d stages", self._name, len(stages))
        return program, stages

    def _wrap_backend_error(
        self,
        error: BackendError,
        stages: tuple[CompiledStage, ...],
    ) -> CompileError | LinkError:
        if error.stage is None:
            return LinkError(
                f"Shader: {self._name} failed to link. Provided error information: {error.log}"
            )
        path = next((stage.path for stage in stages if stage.kind is error.stage), "<unknown>")
        return CompileError(
            f"Shader: {self._name} failed to compile {error.stage.name} component ({path}). "
            f"Provided error information: {error.log}"
        )


def compile_shader(
    name: str | None,
    stage_paths: Sequence[str | Path],
    *,
    backend: GraphicsBackend,
    options: PreprocessOptions | None = None,
) -> Shader:
    return Shader(name, stage_paths, backend=backend, options=options)
