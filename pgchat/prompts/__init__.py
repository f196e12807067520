"""Prompt loading and rendering utilities."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from jinja2 import Environment, FileSystemLoader, TemplateNotFound

TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"
SYSTEM_PROMPT = "system/sql_expert.md"


@dataclass(frozen=True)
class PromptEntry:
    """Loaded prompt content and metadata."""

    content: str
    metadata: dict[str, Any]


def _split_front_matter(source: str) -> tuple[dict[str, Any], str]:
    if source.startswith("---"):
        parts = source.split("---", 2)
        if len(parts) == 3:
            return yaml.safe_load(parts[1]) or {}, parts[2].lstrip()
    return {}, source


class FrontMatterLoader(FileSystemLoader):
    """Jinja2 loader that strips YAML front matter."""

    def get_source(self, environment: Environment, template: str):  # type: ignore[override]
        source, filename, uptodate = super().get_source(environment, template)
        _, body = _split_front_matter(source)
        return body, filename, uptodate


class PromptLoader:
    """Load and render prompt templates shipped with the package."""

    def __init__(self, prompts_dir: str | Path | None = None) -> None:
        self.prompts_dir = Path(prompts_dir) if prompts_dir else TEMPLATES_DIR
        self.cache: dict[str, PromptEntry] = {}
        self._env = Environment(
            loader=FrontMatterLoader(str(self.prompts_dir)),
            keep_trailing_newline=True,
        )

    def load(self, prompt_path: str) -> str:
        """
        Load prompt from file.

        Args:
            prompt_path: Relative path (e.g., "system/sql_expert.md")

        Returns:
            Prompt content as string
        """
        if prompt_path in self.cache:
            return self.cache[prompt_path].content

        file_path = self.prompts_dir / prompt_path
        if not file_path.exists():
            raise FileNotFoundError(f"Prompt not found: {file_path}")

        metadata, content = _split_front_matter(file_path.read_text(encoding="utf-8"))
        self.cache[prompt_path] = PromptEntry(content=content, metadata=metadata)
        return content

    def render(self, prompt_path: str, **variables: Any) -> str:
        """Load prompt and substitute variables using Jinja2."""
        try:
            template = self._env.get_template(prompt_path)
        except TemplateNotFound as exc:
            raise FileNotFoundError(f"Prompt not found: {prompt_path}") from exc
        return template.render(**variables)

    def get_metadata(self, prompt_path: str) -> dict[str, Any]:
        """Return metadata for a prompt (loads if needed)."""
        if prompt_path not in self.cache:
            self.load(prompt_path)
        return self.cache[prompt_path].metadata


def render_system_prompt(tool_names: list[str], loader: PromptLoader | None = None) -> str:
    """Render the SQL expert system prompt for the given exposed tools."""
    return (loader or PromptLoader()).render(SYSTEM_PROMPT, tools=tool_names).strip()


__all__ = ["PromptEntry", "PromptLoader", "SYSTEM_PROMPT", "render_system_prompt"]
