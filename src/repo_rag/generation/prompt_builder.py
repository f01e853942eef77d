"""repo_rag.generation.prompt_builder

Prompt template definitions, rendering utilities and context assembly.

This module provides lightweight abstractions for defining, registering and
rendering named prompt templates, and the :class:`ContextAssembler` that
merges retrieved snippets and a question into a single synthesis prompt.
Templates are rendered with Jinja2.

Classes
-------
PromptTemplate
    Represents a single named prompt template.
PromptBuilder
    Registry and factory for prompt templates.
ContextAssembler
    Joins retrieved snippets and renders the synthesis prompt.
"""
from typing import Optional, List, Dict, Any, Sequence, Union
from pathlib import Path
import json
from jinja2 import Template
import warnings
from importlib import resources

DEFAULT_PROMPT_SOURCE = "pkg:repo_rag.generation:prompts/codebase_qa.json"
DEFAULT_PROMPT_NAME = "codebase_qa"
SNIPPET_SEPARATOR = "\n---\n"


class PromptTemplate:
    """Represents a single named prompt template.

    A prompt template is composed of an optional system message, zero or more
    few-shot examples, and a user instruction block. The full prompt is
    rendered by joining these parts with newlines and applying Jinja2.

    Parameters
    ----------
    name : str
        Name of the template.
    system : str or None, optional
        System-level instructions for the template.
    few_shot : list[dict[str, str]] or None, optional
        Few-shot examples. Each entry is expected to contain a ``"content"`` key.
    user : str, optional
        User instruction part of the template.
    """

    def __init__(self,
                 name: str,
                 system: Optional[str] = None,
                 few_shot: Optional[List[Dict[str, str]]] = None,
                 user: Optional[str] = ''
        ):
        self.name = name
        self.system = system
        self.few_shot = few_shot or []
        self.user = user

    def render(self, **kwargs) -> str:
        """Render the full prompt by filling in placeholders."""
        parts = []
        if self.system:
            parts.append(self.system)
        for example in self.few_shot:
            parts.append(example.get('content', ''))
        if self.user:
            parts.append(self.user)
        template_str = "\n".join(parts)
        return Template(template_str, keep_trailing_newline=True).render(**kwargs)


class PromptBuilder:
    """Registry and factory for prompt templates."""

    def __init__(self):
        self.templates: Dict[str, PromptTemplate] = {}

    def register_from_dict(self, data: Dict[str, Any]):
        """Register a new template from a dictionary.

        Parameters
        ----------
        data : dict[str, Any]
            Template definition with keys ``"name"``, ``"system"``,
            ``"few_shot"`` and ``"user"``.

        Raises
        ------
        KeyError
            If ``"name"`` is missing from ``data``.
        TypeError
            If fields are of invalid types.
        ValueError
            If ``"name"`` is empty.
        """
        if "name" not in data:
            raise KeyError("Template definition missing required key: 'name'")
        name = data["name"]
        if not isinstance(name, str):
            raise TypeError(f"Template 'name' must be a str, got {type(name)!r}")
        if not name.strip():
            raise ValueError("Template 'name' must be a non-empty string")

        few_shot = data.get("few_shot")
        if few_shot is not None and not isinstance(few_shot, list):
            raise TypeError(f"Template 'few_shot' must be a list or None, got {type(few_shot)!r}")
        user = data.get("user") or ""

        template = PromptTemplate(name=name, system=data.get("system"), few_shot=few_shot, user=user)
        if name in self.templates:
            warnings.warn(f"Overwriting existing prompt template: {name}")
        self.templates[name] = template

    def _register_payload(self, data: Any, origin: str) -> List[str]:
        registered: List[str] = []
        if isinstance(data, dict):
            self.register_from_dict(data)
            registered.append(data["name"])
        elif isinstance(data, list):
            for item in data:
                if not isinstance(item, dict):
                    raise TypeError(f"Template list items must be dicts, got {type(item)!r}")
                self.register_from_dict(item)
                registered.append(item["name"])
        else:
            raise TypeError(f"{origin} must contain an object or list of objects, got {type(data)!r}")
        return registered

    def register_from_file(self, path: Union[Path, str], base_dir: Optional[Path] = None) -> List[str]:
        """Load and register templates from a JSON file.

        Relative paths are resolved against ``base_dir`` when given.

        Raises
        ------
        FileNotFoundError
            If the file does not exist.
        ValueError
            If the file extension is not ``.json``.
        """
        p = Path(path)
        if not p.is_absolute() and base_dir is not None:
            p = base_dir / p
        p = p.resolve()
        if not p.exists():
            raise FileNotFoundError(f"Prompt file not found: {p}")
        if p.suffix.lower() != ".json":
            raise ValueError(f"Unsupported file type: {p.suffix}")

        with p.open("r", encoding="utf-8") as f:
            data = json.load(f)

        return self._register_payload(data, "Prompt file")

    def register_from_package(self, package: str, resource_path: str) -> List[str]:
        """Load and register templates from a JSON package resource."""
        if not resource_path.lower().endswith(".json"):
            raise ValueError(f"Unsupported resource type: {resource_path}")

        try:
            res = resources.files(package).joinpath(resource_path)
        except ModuleNotFoundError as e:
            raise FileNotFoundError(f"Could not locate resource '{resource_path}' in package '{package}'") from e

        if not res.is_file():
            raise FileNotFoundError(f"Prompt resource not found: pkg:{package}:{resource_path}")

        data = json.loads(res.read_text(encoding="utf-8"))
        return self._register_payload(data, "Prompt resource")

    def register_from_source(self, source: str, base_dir: Optional[Path] = None) -> List[str]:
        """Register templates from a source spec.

        Supported formats are ``pkg:<package>:<resource_path>``,
        ``file:<path>`` and a plain filesystem path.
        """
        if not isinstance(source, str):
            raise TypeError(f"source must be a str, got {type(source)!r}")

        if source.startswith("pkg:"):
            rest = source[len("pkg:"):]
            if ":" not in rest:
                raise ValueError("pkg: sources must be of the form 'pkg:<package>:<resource_path>'")
            package, resource_path = rest.split(":", 1)
            return self.register_from_package(package.strip(), resource_path.strip())

        if source.startswith("file:"):
            path_str = source[len("file:"):].strip()
            return self.register_from_file(Path(path_str), base_dir=base_dir)

        return self.register_from_file(Path(source), base_dir=base_dir)

    def list_prompts(self) -> List[str]:
        """Return a sorted list of registered prompt template names."""
        return sorted(self.templates.keys())

    def has_prompt(self, name: str) -> bool:
        return name in self.templates

    def get_template(self, name: str) -> PromptTemplate:
        """Get a registered PromptTemplate by name.

        Raises
        ------
        KeyError
            If no template is registered under ``name``.
        """
        if name not in self.templates:
            available = ", ".join(self.list_prompts())
            raise KeyError(f"No template registered under name: {name}. Available: [{available}]")
        return self.templates[name]

    def build(self, name: str, **kwargs) -> str:
        """Render the template registered under ``name`` with ``kwargs``."""
        return self.get_template(name).render(**kwargs)


class ContextAssembler:
    """Merge retrieved snippets and a question into one synthesis prompt.

    Snippets are joined with :data:`SNIPPET_SEPARATOR` in the order received
    (similarity rank, most relevant first) and rendered through a named
    template with ``context`` and ``question`` variables. No truncation is
    applied.

    Parameters
    ----------
    prompt_builder : PromptBuilder or None, optional
        Registry holding the template. When ``None``, a builder loaded with
        the bundled default template is used.
    prompt_name : str, optional
        Template to render. Defaults to ``"codebase_qa"``.
    separator : str, optional
        Delimiter placed between snippets.
    """

    def __init__(
            self,
            prompt_builder: Optional[PromptBuilder] = None,
            prompt_name: str = DEFAULT_PROMPT_NAME,
            separator: str = SNIPPET_SEPARATOR,
        ):
        if prompt_builder is None:
            prompt_builder = PromptBuilder()
            prompt_builder.register_from_source(DEFAULT_PROMPT_SOURCE)
        if not prompt_builder.has_prompt(prompt_name):
            available = ", ".join(prompt_builder.list_prompts())
            raise ValueError(f"Prompt {prompt_name!r} is not registered. Available: [{available}]")

        self.prompt_builder = prompt_builder
        self.prompt_name = prompt_name
        self.separator = separator

    def join(self, snippets: Sequence[str]) -> str:
        return self.separator.join(snippets)

    def assemble(self, snippets: Sequence[str], question: str) -> str:
        """Return the synthesis prompt for ``question`` grounded on ``snippets``."""
        return self.prompt_builder.build(
            name=self.prompt_name,
            context=self.join(snippets),
            question=question,
        )


__all__ = [
    "PromptTemplate",
    "PromptBuilder",
    "ContextAssembler",
    "DEFAULT_PROMPT_NAME",
    "DEFAULT_PROMPT_SOURCE",
    "SNIPPET_SEPARATOR",
]
