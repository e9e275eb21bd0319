from dataclasses import dataclass
from typing import Literal

DiagFormat = Literal["human", "json"]


@dataclass(frozen=True)
class PreprocessOptions:
    include_dirs: tuple[str, ...] = ()
    use_env_include_dirs: bool = True
    diag_format: DiagFormat = "human"

    def __post_init__(self) -> None:
        if isinstance(self.include_dirs, str):
            raise ValueError("include_dirs must be a sequence of directories, not a string")
        if self.diag_format not in {"human", "json"}:
            raise ValueError(f"Unsupported diagnostic format: {self.diag_format}")


def normalize_options(options: PreprocessOptions | None) -> PreprocessOptions:
    return PreprocessOptions() if options is None else options
