"""Back end of the pipeline: render compiled routes and write them out.

* :mod:`~routegen.codegen.emitter` -- compiled tree to Python source, via
  Jinja2 templates.
* :mod:`~routegen.codegen.writer` -- atomic file output.
"""

from routegen.codegen.emitter import emit_package
from routegen.codegen.writer import write_package

__all__ = ["emit_package", "write_package"]
