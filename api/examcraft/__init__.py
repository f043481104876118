"""ExamCraft: AI-assisted exam authoring and grading."""

__version__ = "1.0.0"
