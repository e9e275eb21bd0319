import logging
from collections.abc import Sequence

import moderngl

from shaderpp.shader import BackendError, CompiledStage, StageKind

logger = logging.getLogger(__name__)

_STAGE_KEYWORDS = {
    StageKind.VERTEX: "vertex_shader",
    StageKind.FRAGMENT: "fragment_shader",
    StageKind.GEOMETRY: "geometry_shader",
}


def _failed_stage(message: str) -> StageKind | None:
    titles = {line.strip() for line in message.splitlines()}
    for kind, keyword in _STAGE_KEYWORDS.items():
        if keyword in titles:
            return kind
    return None


class ModernGLBackend:
    def __init__(self, ctx: moderngl.Context) -> None:
        self.ctx = ctx
        self.bound_program: moderngl.Program | None = None

    @classmethod
    def standalone(cls) -> "ModernGLBackend":
        return cls(moderngl.create_standalone_context())

    def create_program(self, stages: Sequence[CompiledStage]) -> moderngl.Program:
        sources = {_STAGE_KEYWORDS[stage.kind]: stage.source for stage in stages}
        if "vertex_shader" not in sources:
            raise BackendError("a moderngl program requires a vertex stage")
        try:
            return self.ctx.program(**sources)
        except moderngl.Error as error:
            message = str(error)
            raise BackendError(message, _failed_stage(message)) from error

    def release_program(self, program: moderngl.Program) -> None:
        if self.bound_program is program:
            self.bound_program = None
        program.release()

    def bind_program(self, program: moderngl.Program) -> None:
        self.bound_program = program

    def unbind_program(self) -> None:
        self.bound_program = None

    def set_uniform(self, program: moderngl.Program, name: str, value: object) -> None:
        if name not in program:
            logger.debug("uniform %s is not active in the program, ignoring", name)
            return
        uniform = program[name]
        tobytes = getattr(value, "tobytes", None)
        if tobytes is not None:
            uniform.write(tobytes())
            return
        uniform.value = value
