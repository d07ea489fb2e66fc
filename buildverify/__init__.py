"""buildverify package root.

Keep this file small so `import buildverify` stays lightweight; the pipeline
lives in ``buildverify.core`` and the per-project data in ``buildverify.projects``.
"""

__version__ = "1.2.0"

__all__ = ["__version__"]
