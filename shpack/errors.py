"""Build-time error taxonomy.

Errors raised inside a generated bundle at run time are defined in the
launcher template instead, since the bundle carries no dependency on this
package.
"""


class ShpackError(RuntimeError):
    """Base class for every error reported by the ``shpack`` command."""


class ConfigError(ShpackError):
    """Raised when ``shpack.yaml`` cannot be read or parsed."""


class NoScriptsFound(ShpackError):
    """Raised when discovery yields an empty script set."""


class EntryNotFound(ShpackError):
    """Raised when the declared entry script cannot be bundled."""


class BundleIOError(ShpackError):
    """Raised when a copy, read, write or create fails during a build."""


class TemplateError(ShpackError):
    """Raised when the bundle source cannot be rendered."""


class IdentifierCollisionError(TemplateError):
    """Raised when two script paths map to the same embedded symbol."""


class ToolchainError(ShpackError):
    """Raised when an external toolchain invocation fails.

    :ivar output: Combined stdout/stderr captured from the failed command.
    """

    def __init__(self, message: str, output: str = "") -> None:
        super().__init__(message)
        self.output: str = output

    def __str__(self) -> str:
        base: str = super().__str__()
        if len(self.output.strip()) == 0:
            return base
        return f"{base}\n{self.output.rstrip()}"


class ModuleInitError(ToolchainError):
    """Raised when the build module descriptor cannot be initialized."""


class CompileError(ToolchainError):
    """Raised when the external compiler fails to produce the executable."""
