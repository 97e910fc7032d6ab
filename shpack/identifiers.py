"""Symbol naming for embedded scripts."""

from shpack.errors import IdentifierCollisionError

_SYMBOL_PREFIX: str = "script_"


def sanitize(relpath: str) -> str:
    """Map a relative script path to an identifier fragment.

    Path separators, dots and hyphens become underscores; every other
    character is kept as-is.

    :param relpath: Script path relative to the scripts root.
    :returns: Sanitized fragment.
    """

    return relpath.replace("/", "_").replace("\\", "_").replace(".", "_").replace("-", "_")


def symbol_for(relpath: str) -> str:
    """Return the variable name that binds a script's embedded bytes.

    :param relpath: Script path relative to the scripts root.
    :returns: Python variable name.
    """

    return _SYMBOL_PREFIX + sanitize(relpath)


def assign_identifiers(relpaths: list[str]) -> dict[str, str]:
    """Assign a unique embedded symbol to every relative path.

    :param relpaths: Relative script paths (duplicates are ignored).
    :returns: Mapping from relative path to symbol name.
    :raises IdentifierCollisionError: If two paths share a symbol, or a symbol is not a valid identifier.
    """

    owners: dict[str, str] = {}
    symbols: dict[str, str] = {}
    for relpath in sorted(set(relpaths)):
        symbol: str = symbol_for(relpath)
        if symbol.isidentifier() is False:
            raise IdentifierCollisionError(
                f"Script path {relpath!r} cannot be embedded: {symbol!r} is not a valid identifier."
            )
        other: str | None = owners.get(symbol)
        if other is not None:
            raise IdentifierCollisionError(
                f"Script paths {other!r} and {relpath!r} both map to identifier {symbol!r}; rename one of them."
            )
        owners[symbol] = relpath
        symbols[relpath] = symbol
    return symbols
