"""
Output Validator

Scores a model-generated artifact against kind-specific rules and turns the
problems it finds into fix instructions for the next attempt.

Artifact kinds:
    - graph-generation: Mermaid code plus node/edge lists
    - connection-explanation: Explanation text with quotes and node refs
    - quiz-generation: Multiple-choice questions

Unknown kinds pass with a warning.

Scoring:
    Start at 100 and subtract a penalty per issue by severity
    (critical 40, high 20, medium 10, low 5), floored at 0.
    passed = score >= threshold.

Example:
    >>> validator = OutputValidator()
    >>> result = validator.validate(artifact, "graph-generation")
    >>> if not result.passed:
    ...     feedback = validator.generate_feedback(result.issues)
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from typing import Any

from graphex_kg.types.graph import edge_endpoints
from graphex_kg.types.validation import (
    SEVERITY_PENALTIES,
    Issue,
    QualityScore,
    Severity,
    ValidationMode,
    ValidationResult,
)

logger = logging.getLogger(__name__)

NODE_COUNT_MIN = 5
NODE_COUNT_MAX = 15
LABEL_MIN_LENGTH = 2
LABEL_MAX_LENGTH = 100
EXPLANATION_MIN_LENGTH = 50
EXPLANATION_MAX_LENGTH = 1000
QUIZ_OPTIONS = 4
QUIZ_DIFFICULTIES = ("easy", "medium", "hard")
HALLUCINATION_THRESHOLD_PCT = 20
LOW_GROUNDING_WARNING_PCT = 80

_GRAPH_DECLARATION = re.compile(r"^\s*(graph|flowchart)\s+(TD|TB|BT|RL|LR)", re.IGNORECASE | re.MULTILINE)
_NODE_DEFINITION = re.compile(r"\w+\[.+?\]")


def _as_list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []


def _node_id(node: Any) -> str | None:
    if isinstance(node, dict):
        value = node.get("id")
        return str(value) if value is not None else None
    return None


def _node_title(node: Any) -> str:
    if isinstance(node, dict) and isinstance(node.get("title"), str):
        return node["title"]
    return ""


def _preview(items: list[str], limit: int = 3) -> str:
    text = ", ".join(items[:limit])
    return text + ("..." if len(items) > limit else "")


class OutputValidator:
    """
    Rule-based validator for generated artifacts.

    Args:
        node_count_min: Fewest nodes a graph may have
        node_count_max: Most nodes a graph may have
    """

    def __init__(
        self,
        node_count_min: int = NODE_COUNT_MIN,
        node_count_max: int = NODE_COUNT_MAX,
    ) -> None:
        self.node_count_min = node_count_min
        self.node_count_max = node_count_max

    def validate(
        self,
        artifact: Any,
        kind: str,
        *,
        mode: ValidationMode | str = ValidationMode.QUICK,
        threshold: int = 60,
        source_document: str | None = None,
    ) -> ValidationResult:
        """
        Validate an artifact of the given kind.

        Args:
            artifact: Decoded model output (normally a dict)
            kind: Artifact kind (prompt kind that produced it)
            mode: quick for structure only, full to add grounding
            threshold: Minimum passing score
            source_document: Source text for the grounding check

        Returns:
            ValidationResult with score, issues and warnings
        """
        mode = ValidationMode(mode)
        data = artifact if isinstance(artifact, dict) else {}

        if kind == "graph-generation":
            issues, warnings = self._validate_graph(data, mode, source_document)
        elif kind == "connection-explanation":
            issues, warnings = self._validate_explanation(data)
        elif kind == "quiz-generation":
            issues, warnings = self._validate_quiz(data)
        else:
            return ValidationResult(
                passed=True,
                score=100,
                warnings=[f"Unknown output type: {kind}, skipping validation"],
            )

        score = self.calculate_quality_score(issues).score
        result = ValidationResult(
            passed=score >= threshold,
            score=score,
            issues=issues,
            warnings=warnings,
        )
        logger.debug(
            f"Validated {kind} ({mode.value}): score={score}, "
            f"issues={[issue.kind for issue in issues]}"
        )
        return result

    # -------------------------------------------------------------------------
    # Graph
    # -------------------------------------------------------------------------

    def _validate_graph(
        self,
        graph: dict[str, Any],
        mode: ValidationMode,
        source_document: str | None,
    ) -> tuple[list[Issue], list[str]]:
        mermaid = graph.get("mermaidCode", graph.get("mermaid_code"))
        nodes = graph.get("nodes")
        edges = graph.get("edges")
        warnings: list[str] = []

        checks = [
            self._check_mermaid(mermaid),
            self._check_node_count(nodes),
            self._check_node_fields(_as_list(nodes)),
            self._check_connectivity(_as_list(nodes), _as_list(edges)),
            self._check_labels(_as_list(nodes)),
            self._check_edges(_as_list(nodes), edges),
        ]

        if mode == ValidationMode.FULL and source_document:
            grounding_issue, grounding_pct = self._check_grounding(
                _as_list(nodes), source_document
            )
            checks.append(grounding_issue)
            if grounding_issue is None and grounding_pct < LOW_GROUNDING_WARNING_PCT:
                warnings.append(
                    f"Grounding is {grounding_pct}% - some concepts may not be in source"
                )

        return [issue for issue in checks if issue is not None], warnings

    def _check_mermaid(self, code: Any) -> Issue | None:
        if not isinstance(code, str) or not code.strip():
            return Issue(
                severity=Severity.CRITICAL,
                kind="invalid-mermaid",
                message="Mermaid code is empty",
                fix="Provide valid Mermaid graph syntax",
            )
        if not _GRAPH_DECLARATION.search(code):
            return Issue(
                severity=Severity.CRITICAL,
                kind="invalid-mermaid",
                message='Missing graph declaration. Must start with "graph TD" or similar.',
                fix="Start with a graph declaration like: graph TD\n    A[Node 1] --> B[Node 2]",
                metadata={"code_length": len(code)},
            )
        if not _NODE_DEFINITION.search(code):
            return Issue(
                severity=Severity.CRITICAL,
                kind="invalid-mermaid",
                message="No valid node definitions found. Nodes must be in format: A[Label]",
                fix="Add nodes like: A[Node Label]",
                metadata={"code_length": len(code)},
            )
        return None

    def _check_node_count(self, nodes: Any) -> Issue | None:
        if not isinstance(nodes, list):
            return Issue(
                severity=Severity.CRITICAL,
                kind="invalid-node-structure",
                message="Nodes is not an array",
                fix="Provide an array of nodes",
            )

        count = len(nodes)
        expected = {"min": self.node_count_min, "max": self.node_count_max}
        if count < self.node_count_min:
            return Issue(
                severity=Severity.HIGH,
                kind="too-few-nodes",
                message=f"Only {count} nodes. Need at least {self.node_count_min}.",
                fix=(
                    f"Identify at least {self.node_count_min} key concepts from the document. "
                    "Focus on main ideas, definitions, and important relationships."
                ),
                metadata={"actual_count": count, "expected_range": expected},
            )
        if count > self.node_count_max:
            return Issue(
                severity=Severity.HIGH,
                kind="too-many-nodes",
                message=f"{count} nodes. Maximum is {self.node_count_max}.",
                fix=(
                    f"Reduce to the {self.node_count_max} most important concepts only. "
                    "Remove minor details and combine related concepts."
                ),
                metadata={"actual_count": count, "expected_range": expected},
            )
        return None

    def _check_node_fields(self, nodes: list[Any]) -> Issue | None:
        """Optional text fields must be strings and metadata an object."""
        problems: list[str] = []
        for node in nodes:
            if not isinstance(node, dict):
                problems.append("node is not an object")
                continue
            node_id = _node_id(node) or "unknown"
            for field in ("description", "summary", "nodeType"):
                value = node.get(field)
                if value is not None and not isinstance(value, str):
                    problems.append(f"{field} of {node_id} is {type(value).__name__}, not text")
            metadata = node.get("metadata")
            if metadata is not None and not isinstance(metadata, dict):
                problems.append(f"metadata of {node_id} is not an object")

        if not problems:
            return None
        return Issue(
            severity=Severity.HIGH,
            kind="invalid-node-structure",
            message=f"{len(problems)} node fields have the wrong type",
            fix=(
                "description, summary and nodeType must be strings, and metadata "
                "must be an object"
            ),
            metadata={"problems": problems},
        )

    def _check_connectivity(self, nodes: list[Any], edges: list[Any]) -> Issue | None:
        connected: set[str] = set()
        for edge in edges:
            source, target = edge_endpoints(edge)
            if source:
                connected.add(source)
            if target:
                connected.add(target)

        orphans = [node for node in nodes if _node_id(node) not in connected]
        if not orphans:
            return None

        titles = [_node_title(node) for node in orphans]
        return Issue(
            severity=Severity.MEDIUM,
            kind="disconnected-nodes",
            message=f"{len(orphans)} disconnected nodes: {_preview(titles)}",
            fix=(
                "Either connect these nodes to the main graph by identifying their "
                "relationships, or remove them if they are not central concepts."
            ),
            metadata={
                "orphaned_node_ids": [_node_id(node) for node in orphans],
                "orphaned_titles": titles,
            },
        )

    def _check_labels(self, nodes: list[Any]) -> Issue | None:
        empty: list[str] = []
        too_long: list[str] = []

        for node in nodes:
            if not isinstance(node, dict):
                continue
            title = _node_title(node)
            if len(title.strip()) < LABEL_MIN_LENGTH:
                empty.append(_node_id(node) or "unknown")
            if len(title) > LABEL_MAX_LENGTH:
                too_long.append(_node_id(node) or "unknown")

        if empty:
            return Issue(
                severity=Severity.HIGH,
                kind="empty-labels",
                message=f"{len(empty)} nodes with invalid labels",
                fix=(
                    "Each node must have a clear, descriptive label (2-50 characters). "
                    "Use concise titles, not full sentences."
                ),
                metadata={"node_ids": empty},
            )
        if too_long:
            return Issue(
                severity=Severity.MEDIUM,
                kind="empty-labels",
                message=f"{len(too_long)} nodes with excessively long labels",
                fix=(
                    "Node labels should be concise titles (2-50 characters), not full "
                    "descriptions. Use the description field for details."
                ),
                metadata={"node_ids": too_long},
            )
        return None

    def _check_edges(self, nodes: list[Any], edges: Any) -> Issue | None:
        if not isinstance(edges, list):
            return Issue(
                severity=Severity.CRITICAL,
                kind="invalid-edge-structure",
                message="Edges is not an array",
                fix="Provide an array of edges",
            )

        node_ids = {_node_id(node) for node in nodes} - {None}
        problems: list[str] = []
        for edge in edges:
            source, target = edge_endpoints(edge)
            if not source or not target:
                problems.append("missing fromNodeId or toNodeId")
                continue
            if source not in node_ids:
                problems.append(f"fromNodeId {source} does not exist")
            if target not in node_ids:
                problems.append(f"toNodeId {target} does not exist")

        if problems:
            return Issue(
                severity=Severity.HIGH,
                kind="invalid-edge-structure",
                message=f"{len(problems)} invalid edges found",
                fix=(
                    "Ensure all edges have fromNodeId and toNodeId, and that they "
                    "reference existing nodes"
                ),
                metadata={"problems": problems},
            )
        return None

    def _check_grounding(
        self,
        nodes: list[Any],
        source_document: str,
    ) -> tuple[Issue | None, int]:
        """Share of node titles with at least one significant word in the source."""
        source = source_document.lower()
        not_found: list[str] = []

        for node in nodes:
            title = _node_title(node)
            significant = [word for word in title.lower().split() if len(word) > 3]
            if not significant:
                continue
            if not any(word in source for word in significant):
                not_found.append(title)

        total = len(nodes)
        not_found_pct = (len(not_found) / total) * 100 if total else 0.0
        grounding_pct = round(100 - not_found_pct)

        if not_found_pct > HALLUCINATION_THRESHOLD_PCT:
            return (
                Issue(
                    severity=Severity.HIGH,
                    kind="possible-hallucination",
                    message=(
                        f"{len(not_found)}/{total} ({round(not_found_pct)}%) concepts not "
                        f"found in source: {_preview(not_found)}"
                    ),
                    fix=(
                        "Only extract concepts that are explicitly mentioned in the source "
                        "document. Do not infer or create concepts that are not directly "
                        "stated in the text."
                    ),
                    metadata={
                        "unfound_concepts": not_found,
                        "total_concepts": total,
                        "grounding_percentage": grounding_pct,
                    },
                ),
                grounding_pct,
            )
        return None, grounding_pct

    # -------------------------------------------------------------------------
    # Explanation
    # -------------------------------------------------------------------------

    def _validate_explanation(self, data: dict[str, Any]) -> tuple[list[Issue], list[str]]:
        issues: list[Issue] = []
        warnings: list[str] = []
        explanation = data.get("explanation")
        text = explanation.strip() if isinstance(explanation, str) else ""

        if not text:
            issues.append(
                Issue(
                    severity=Severity.CRITICAL,
                    kind="empty-explanation",
                    message="Explanation is empty",
                    fix="Provide a meaningful explanation of the connection between the concepts",
                )
            )

        if len(text) < EXPLANATION_MIN_LENGTH:
            issues.append(
                Issue(
                    severity=Severity.HIGH,
                    kind="explanation-too-short",
                    message=(
                        f"Explanation too short ({len(text)} chars). "
                        f"Need at least {EXPLANATION_MIN_LENGTH}."
                    ),
                    fix="Provide a more detailed explanation with examples and context from the source",
                )
            )
        elif len(text) > EXPLANATION_MAX_LENGTH:
            issues.append(
                Issue(
                    severity=Severity.MEDIUM,
                    kind="explanation-too-long",
                    message=(
                        f"Explanation too long ({len(text)} chars). "
                        f"Maximum is {EXPLANATION_MAX_LENGTH}."
                    ),
                    fix="Keep explanation concise and focused. Aim for 100-500 characters.",
                )
            )

        if not data.get("sourceQuotes"):
            warnings.append("No source quotes provided - explanation may lack grounding")
        if not data.get("nodeReferences"):
            warnings.append("No node references - cannot verify which nodes are being explained")

        return issues, warnings

    # -------------------------------------------------------------------------
    # Quiz
    # -------------------------------------------------------------------------

    def _validate_quiz(self, data: dict[str, Any]) -> tuple[list[Issue], list[str]]:
        questions = data.get("questions")
        if not isinstance(questions, list):
            return [
                Issue(
                    severity=Severity.CRITICAL,
                    kind="invalid-quiz-structure",
                    message="Questions is not an array",
                    fix="Provide an array of questions",
                )
            ], []

        issues: list[Issue] = []
        for number, question in enumerate(questions, start=1):
            issues.extend(self._check_question(number, question if isinstance(question, dict) else {}))
        return issues, []

    def _check_question(self, number: int, question: dict[str, Any]) -> Iterable[Issue]:
        text = question.get("questionText")
        if not isinstance(text, str) or not text.strip():
            yield Issue(
                severity=Severity.CRITICAL,
                kind="invalid-node-structure",
                message=f"Question {number} has empty question text",
                fix="Provide a clear question for each quiz item",
            )

        options = question.get("options")
        option_count = len(options) if isinstance(options, list) else 0
        if option_count != QUIZ_OPTIONS:
            yield Issue(
                severity=Severity.CRITICAL,
                kind="invalid-options-count",
                message=f"Question {number} has {option_count} options instead of {QUIZ_OPTIONS}",
                fix="Each question must have exactly 4 answer options",
            )

        answer = question.get("correctAnswerIndex")
        if not isinstance(answer, int) or isinstance(answer, bool) or not 0 <= answer < QUIZ_OPTIONS:
            yield Issue(
                severity=Severity.CRITICAL,
                kind="invalid-answer-index",
                message=f"Question {number} has invalid answer index: {answer}",
                fix="correctAnswerIndex must be 0, 1, 2, or 3",
            )

        explanation = question.get("explanation")
        if not isinstance(explanation, str) or not explanation.strip():
            yield Issue(
                severity=Severity.HIGH,
                kind="missing-explanation",
                message=f"Question {number} is missing an explanation",
                fix="Provide an explanation for why the correct answer is correct",
            )

        difficulty = question.get("difficulty")
        if difficulty not in QUIZ_DIFFICULTIES:
            yield Issue(
                severity=Severity.MEDIUM,
                kind="missing-difficulty",
                message=f"Question {number} has invalid difficulty: {difficulty}",
                fix="difficulty must be 'easy', 'medium', or 'hard'",
            )

    # -------------------------------------------------------------------------
    # Scoring and feedback
    # -------------------------------------------------------------------------

    @staticmethod
    def calculate_quality_score(issues: list[Issue]) -> QualityScore:
        """Severity-weighted score, floored at 0, with issue counts."""
        counts = {severity: 0 for severity in Severity}
        penalty = 0
        for issue in issues:
            counts[issue.severity] += 1
            penalty += SEVERITY_PENALTIES[issue.severity]

        return QualityScore(
            score=max(0, 100 - penalty),
            critical=counts[Severity.CRITICAL],
            high=counts[Severity.HIGH],
            medium=counts[Severity.MEDIUM],
            low=counts[Severity.LOW],
        )

    @staticmethod
    def generate_feedback(issues: list[Issue]) -> list[str]:
        """Numbered fix instructions for issues that carry a fix hint."""
        actionable = [issue for issue in issues if issue.fix]
        return [
            f"{index}. {issue.kind}: {issue.fix}"
            for index, issue in enumerate(actionable, start=1)
        ]
