"""repo_rag.generation

Prompt assembly and synthesis interfaces.

Modules
-------
prompt_builder
    Named Jinja2 prompt templates and the context assembler.
llm_interface
    Synthesis service abstraction and factory.
"""
