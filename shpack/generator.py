"""Bundle source generation.

Renders :data:`shpack.launcher.RUNTIME_TEMPLATE` into a standalone Python
program that embeds every script's bytes.
"""

import base64
import logging
import pathlib
import re

from shpack import launcher
from shpack.config import BundleConfig
from shpack.discover import ScriptRecord
from shpack.errors import BundleIOError, TemplateError
from shpack.identifiers import assign_identifiers

_B64_WIDTH: int = 76


def render_bundle_source(
    *,
    config: BundleConfig,
    records: list[ScriptRecord],
    entry_relpath: str,
) -> str:
    """Render the bundle program.

    Records are emitted in relative-path order so identical inputs always
    produce identical text.

    :param config: Bundle config (supplies the tool name and version).
    :param records: Scripts to embed.
    :param entry_relpath: Entry script path relative to the scripts root.
    :returns: Python source code for the bundle.
    :raises TemplateError: If the template is malformed or a script cannot be embedded.
    """

    ordered: list[ScriptRecord] = sorted(records, key=lambda r: r.relpath)
    relpaths: list[str] = [r.relpath for r in ordered]
    if len(relpaths) != len(set(relpaths)):
        raise TemplateError("Duplicate relative script paths in bundle input.")
    if entry_relpath not in relpaths:
        raise TemplateError(f"Entry script {entry_relpath!r} is not among the embedded scripts.")

    symbols: dict[str, str] = assign_identifiers(relpaths)

    embedded: list[str] = []
    table: list[str] = []
    for record in ordered:
        symbol: str = symbols[record.relpath]
        embedded.append(_embed_statement(symbol, record.content))
        table.append(f"    {record.relpath!r}: {symbol},")

    replacements: dict[str, str] = {
        launcher.NAME_MARKER: repr(config.name),
        launcher.VERSION_MARKER: repr(config.version),
        launcher.ENTRY_MARKER: repr(entry_relpath),
        launcher.EMBEDDED_MARKER: "\n\n".join(embedded),
        launcher.TABLE_MARKER: "\n".join(table),
    }
    return _fill_template(launcher.RUNTIME_TEMPLATE, replacements)


def write_bundle_source(
    *,
    output_path: pathlib.Path,
    config: BundleConfig,
    records: list[ScriptRecord],
    entry_relpath: str,
    logger: logging.Logger | None = None,
) -> None:
    """Render the bundle program and write it to ``output_path``.

    :raises TemplateError: If rendering fails.
    :raises BundleIOError: If the file cannot be written.
    """

    if logger is None:
        logger = logging.getLogger("shpack")

    source: str = render_bundle_source(config=config, records=records, entry_relpath=entry_relpath)
    try:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(source, encoding="utf-8")
    except OSError as exc:
        raise BundleIOError(f"Failed to write bundle source {output_path}: {exc}") from exc

    if logger.isEnabledFor(logging.DEBUG) is True:
        logger.debug(f"shpack: wrote {output_path} ({len(source)} chars, {len(records)} scripts)")


def _fill_template(template: str, replacements: dict[str, str]) -> str:
    """Substitute every marker in a single pass.

    Substituted values are never rescanned, so a tool name that happens to
    contain a marker string cannot corrupt the output.

    :param template: Template text.
    :param replacements: Mapping of marker to replacement text.
    :returns: Filled template.
    :raises TemplateError: If a marker is missing from the template.
    """

    for marker in replacements:
        if marker not in template:
            raise TemplateError(f"Internal error: runtime template missing {marker} marker.")

    pattern: re.Pattern[str] = re.compile("|".join(re.escape(m) for m in replacements))
    return pattern.sub(lambda m: replacements[m.group(0)], template)


def _embed_statement(symbol: str, content: bytes) -> str:
    """Render the statement that binds one script's bytes.

    :param symbol: Variable name.
    :param content: Script bytes.
    :returns: Python assignment statement.
    """

    b64: str = base64.b64encode(content).decode("ascii")
    if len(b64) == 0:
        return f'{symbol}: bytes = b""'

    lines: list[str] = [f"{symbol}: bytes = base64.b64decode("]
    for i in range(0, len(b64), _B64_WIDTH):
        lines.append(f'    "{b64[i : i + _B64_WIDTH]}"')
    lines.append(")")
    return "\n".join(lines)
