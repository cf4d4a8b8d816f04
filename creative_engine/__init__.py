"""Ad creative generation core: asset readiness, prompt templates and staged Gemini pipelines."""

__version__ = "0.1.0"
