"""Built-in prompt templates, loaded via ``pkg:codebase_rag.prompts:default.json``."""
