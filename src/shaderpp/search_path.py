import os

from shaderpp.options import PreprocessOptions

INCLUDE_PATH_ENV = "SHADERPP_INCLUDE_PATH"


def env_include_dirs() -> tuple[str, ...]:
    return _split_search_path(os.environ.get(INCLUDE_PATH_ENV, ""))


def _split_search_path(value: str) -> tuple[str, ...]:
    return tuple(item for item in value.split(os.pathsep) if item.strip())


def _dedupe_in_order(items: list[str]) -> tuple[str, ...]:
    seen: set[str] = set()
    out: list[str] = []
    for item in items:
        if item in seen:
            continue
        seen.add(item)
        out.append(item)
    return tuple(out)


def include_search_dirs(options: PreprocessOptions) -> tuple[str, ...]:
    dirs = list(options.include_dirs)
    if options.use_env_include_dirs:
        dirs.extend(env_include_dirs())
    return _dedupe_in_order(dirs)
