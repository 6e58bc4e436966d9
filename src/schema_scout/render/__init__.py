"""
Renderers over exported graph snapshots.
"""

from schema_scout.render.markdown import render_markdown
from schema_scout.render.mermaid import render_mermaid

__all__ = ["render_markdown", "render_mermaid"]
