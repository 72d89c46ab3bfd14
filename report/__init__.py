"""
Report package: text, Markdown, HTML and JSON renderings of a changelog.
"""

from .renderer import render

__all__ = ["render"]
