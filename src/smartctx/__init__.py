"""smartctx — learn insights from prompts and reasoning, inject them back as context."""

__version__ = "0.1.0"
