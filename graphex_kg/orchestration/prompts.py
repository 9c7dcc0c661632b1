"""
Prompt Templates

Versioned system/user prompt pairs per prompt kind, plus the model
recommendation used when a caller does not pick a model.

Templates use a small placeholder syntax:
    {{name}}                    context value (dicts/lists render as JSON)
    {{object.field}}            nested lookup
    {{#if name}}...{{/if}}      block kept only when the value is truthy

Example:
    >>> prompt = build_prompt(
    ...     "graph-generation",
    ...     {"documentTitle": "Transformers", "documentText": text},
    ... )
    >>> print(prompt.system_prompt[:40])
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any

from graphex_kg.errors import PromptTemplateError

LARGE_DOCUMENT_CHARS = 40_000
DEFAULT_MODEL = "claude-haiku"
STRONG_MODEL = "claude-sonnet-4"

_VARIABLE = re.compile(r"\{\{([a-zA-Z0-9_.]+)\}\}")
_CONDITIONAL = re.compile(r"\{\{#if\s+([\w.]+)\}\}(.*?)\{\{/if\}\}", re.DOTALL)


@dataclass(frozen=True)
class PromptTemplate:
    """One versioned prompt for a prompt kind."""

    kind: str
    version: str
    system_prompt: str
    template: str
    required_context: tuple[str, ...] = ()
    description: str = ""


@dataclass
class BuiltPrompt:
    """Prompt text ready to send."""

    kind: str
    version: str
    system_prompt: str
    user_prompt: str
    metadata: dict[str, Any] = field(default_factory=dict)


# -----------------------------------------------------------------------------
# Templates
# -----------------------------------------------------------------------------

_GRAPH_SYSTEM = (
    "You build knowledge graphs from documents for learners. You extract the "
    "central concepts of a text and the specific relationships between them, "
    "and you never add concepts the text does not state."
)

_GRAPH_TEMPLATE = """# Task: Extract a Knowledge Graph

Read the document below and extract its key concepts and how they relate.

## Document
Title: {{documentTitle}}

Content:
{{documentText}}

## Concepts
{{#if maxNodes}}- Extract at most {{maxNodes}} concepts (at least 5 when the text allows it)
{{/if}}- Every concept must be explicitly discussed in the document
- Prefer concepts that carry the document's main ideas over minor details
- Titles are short noun phrases (2-50 characters); put detail in "description"

## Relationships
Use specific verbs such as "is-a", "part-of", "requires", "enables",
"produces", "implements", "precedes", "leads to" or "contradicts".
Avoid vague labels such as "relates to" or "associated with".

## Output Format
Return one JSON object with exactly this structure:

{
  "mermaidCode": "flowchart TD\\n  A[Concept 1] --> B[Concept 2]",
  "nodes": [
    {
      "id": "A",
      "title": "Concept Name",
      "description": "One or two sentences taken from the document",
      "nodeType": "concept",
      "summary": "Optional one-line summary"
    }
  ],
  "edges": [
    {"fromNodeId": "A", "toNodeId": "B", "relationship": "enables"}
  ]
}

## Constraints
- Node ids are unique (A, B, C, ...)
- Every edge references ids present in "nodes"
- Use fromNodeId and toNodeId, not "from" and "to"
- Every node takes part in at least one edge
- The Mermaid code starts with "flowchart TD"

Return ONLY the JSON object.
"""

_EXPLANATION_SYSTEM = (
    "You are an educator who explains why two concepts are connected, in "
    "clear language grounded in the source document."
)

_EXPLANATION_TEMPLATE = """# Task: Explain a Connection

## Concept A
Title: {{nodeA.title}}
Description: {{nodeA.description}}

## Concept B
Title: {{nodeB.title}}
Description: {{nodeB.description}}

## Stated Relationship
"{{nodeA.title}}" {{relationship}} "{{nodeB.title}}"
{{#if userHypothesis}}
## Learner's Hypothesis
"{{userHypothesis}}"
{{/if}}{{#if documentText}}
## Source Document
{{documentText}}
{{/if}}
## Instructions
Write 2-4 sentences (100-500 characters) explaining why the relationship
holds, citing evidence from the document.

## Output Format
{
  "explanation": "...",
  "sourceQuotes": ["verbatim quote supporting the relationship"],
  "nodeReferences": ["{{nodeA.title}}", "{{nodeB.title}}"],
  "confidence": 0.9
}

Return ONLY the JSON object.
"""

_QUIZ_SYSTEM = (
    "You design multiple-choice questions that test understanding of a "
    "knowledge graph rather than recall of wording."
)

_QUIZ_TEMPLATE = """# Task: Generate Quiz Questions

## Graph
{{graphData}}

## Instructions
- Write 3-5 questions: concepts first, then relationships, then synthesis
- Each question has exactly 4 distinct options and one correct answer
- Difficulty progresses from easy to hard

## Output Format
{
  "questions": [
    {
      "questionText": "...",
      "options": ["...", "...", "...", "..."],
      "correctAnswerIndex": 1,
      "explanation": "Why the correct option is right",
      "difficulty": "easy"
    }
  ]
}

Return ONLY the JSON object.
"""

PROMPT_TEMPLATES: dict[tuple[str, str], PromptTemplate] = {
    ("graph-generation", "production"): PromptTemplate(
        kind="graph-generation",
        version="production",
        system_prompt=_GRAPH_SYSTEM,
        template=_GRAPH_TEMPLATE,
        required_context=("documentText", "documentTitle"),
        description="Graph extraction with strict grounding",
    ),
    ("connection-explanation", "production"): PromptTemplate(
        kind="connection-explanation",
        version="production",
        system_prompt=_EXPLANATION_SYSTEM,
        template=_EXPLANATION_TEMPLATE,
        required_context=("nodeA", "nodeB", "relationship"),
        description="Explains one edge with optional hypothesis feedback",
    ),
    ("quiz-generation", "production"): PromptTemplate(
        kind="quiz-generation",
        version="production",
        system_prompt=_QUIZ_SYSTEM,
        template=_QUIZ_TEMPLATE,
        required_context=("graphData",),
        description="Comprehension quiz from a graph",
    ),
}


# -----------------------------------------------------------------------------
# Rendering
# -----------------------------------------------------------------------------


def get_template(kind: str, version: str = "production") -> PromptTemplate:
    """Look up a template, raising PromptTemplateError when absent."""
    template = PROMPT_TEMPLATES.get((kind, version))
    if template is None:
        raise PromptTemplateError(f"No template found for kind={kind}, version={version}")
    return template


def _lookup(context: dict[str, Any], path: str) -> Any:
    current: Any = context
    for part in path.split("."):
        if not isinstance(current, dict):
            return None
        current = current.get(part)
    return current


def _format_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, (dict, list)):
        return json.dumps(value, indent=2, ensure_ascii=False)
    return str(value)


def render_template(template: str, context: dict[str, Any]) -> str:
    """Expand conditionals, then substitute placeholders."""
    def _conditional(match: re.Match[str]) -> str:
        return match.group(2) if _lookup(context, match.group(1)) else ""

    expanded = _CONDITIONAL.sub(_conditional, template)
    return _VARIABLE.sub(lambda m: _format_value(_lookup(context, m.group(1))), expanded)


def build_prompt(
    kind: str,
    context: dict[str, Any],
    version: str = "production",
) -> BuiltPrompt:
    """
    Render the prompt for a kind.

    Raises:
        PromptTemplateError: Unknown kind/version or missing required context
    """
    template = get_template(kind, version)
    missing = [name for name in template.required_context if name not in context]
    if missing:
        raise PromptTemplateError(
            f"Missing required context fields for {kind}/{version}: {', '.join(missing)}"
        )

    return BuiltPrompt(
        kind=kind,
        version=version,
        system_prompt=template.system_prompt,
        user_prompt=render_template(template.template, context),
        metadata={"description": template.description},
    )


def recommended_model(kind: str, context: dict[str, Any]) -> str:
    """Large graph-generation inputs start on the strong tier; all else on the cheap tier."""
    if kind == "graph-generation":
        text = context.get("documentText") or ""
        if len(text) > LARGE_DOCUMENT_CHARS:
            return STRONG_MODEL
    return DEFAULT_MODEL
