"""Template-driven file scaffolding.

Quick usage::

    from kubeforge.scaffolder import TemplateFile, TemplateScaffolder, IfExists

    files = [TemplateFile("go/init/Makefile.j2", "Makefile", IfExists.ERROR)]
    written = await TemplateScaffolder(root, files).scaffold(config)
"""

from kubeforge.scaffolder.machinery import (
    IfExists,
    ScaffoldError,
    Scaffolder,
    TemplateFile,
    TemplateScaffolder,
)
from kubeforge.scaffolder.templates import TemplateRenderer

__all__ = [
    "IfExists",
    "ScaffoldError",
    "Scaffolder",
    "TemplateFile",
    "TemplateRenderer",
    "TemplateScaffolder",
]
