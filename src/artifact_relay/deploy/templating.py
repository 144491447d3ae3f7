"""Post-transfer command templating.

Supported variables:
    ${filename} -- name of the first ``*.tar.gz`` file in the uploaded tree
                   with the suffix stripped, or the artifact name when the
                   tree has no tarball.
"""

from __future__ import annotations

from pathlib import Path

from loguru import logger

from ..transfer.filters import walk_files

log = logger.bind(stage="templating")

FILENAME_TOKEN = "${filename}"
TARBALL_SUFFIX = ".tar.gz"


def resolve_filename(artifact_root: Path, artifact_name: str) -> str:
    if artifact_root.is_file():
        names = [artifact_root.name]
    else:
        try:
            names = [f.name for f in walk_files(artifact_root)]
        except OSError as e:
            log.warning(f"Cannot scan {artifact_root} for {TARBALL_SUFFIX}: {e}")
            names = []

    for name in names:
        if name.endswith(TARBALL_SUFFIX) and len(name) > len(TARBALL_SUFFIX):
            return name[: -len(TARBALL_SUFFIX)]
    return artifact_name


def render_command(template: str, variables: dict[str, str]) -> str:
    command = template
    for key, value in variables.items():
        command = command.replace("${" + key + "}", value)
    return command


def render_commands(templates: list[str], artifact_root: Path, artifact_name: str) -> list[str]:
    """Substitute variables into every non-blank command template."""
    templates = [t for t in templates if t.strip()]
    if not templates:
        return []
    variables: dict[str, str] = {}
    if any(FILENAME_TOKEN in t for t in templates):
        variables["filename"] = resolve_filename(artifact_root, artifact_name)
        log.debug(f"${{filename}} -> {variables['filename']}")
    return [render_command(t, variables) for t in templates]
