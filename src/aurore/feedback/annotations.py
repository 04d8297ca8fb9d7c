"""Review annotations and their ``<aurore-feedback>`` XML form.

The XML is what gets fed back to the assistant as a prompt; the parser
lets a client recognise such a prompt in the conversation and render it
as a structured card instead of raw markup.
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

AnnotationKind = Literal["action", "question"]

FEEDBACK_OPEN = "<aurore-feedback>"
FEEDBACK_CLOSE = "</aurore-feedback>"


class _Annotation(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = ""
    comment: str
    kind: AnnotationKind = "action"


class CodeAnnotation(_Annotation):
    """Comment on a file (``line_start == 0``), a line, or a line range."""

    target: Literal["code"] = "code"
    file: str
    line_start: int = Field(alias="lineStart", ge=0)
    line_end: int | None = Field(default=None, alias="lineEnd")


class ConversationAnnotation(_Annotation):
    target: Literal["conversation"] = "conversation"
    message_id: str = Field(alias="messageId")
    quote: str | None = None


class ToolCallAnnotation(_Annotation):
    target: Literal["tool-call"] = "tool-call"
    tool_use_id: str = Field(alias="toolUseId")
    tool_label: str = Field(default="", alias="toolLabel")


Annotation = Annotated[
    CodeAnnotation | ConversationAnnotation | ToolCallAnnotation,
    Field(discriminator="target"),
]

ANNOTATIONS_ADAPTER: TypeAdapter[list[Annotation]] = TypeAdapter(list[Annotation])


# ------------------------------------------------------------------ #
# Emitter
# ------------------------------------------------------------------ #


def escape_xml(text: str) -> str:
    return (
        text.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
        .replace("'", "&apos;")
    )


def sort_annotations(annotations: Iterable[CodeAnnotation]) -> list[CodeAnnotation]:
    """File-level annotations first, then ascending start line (stable)."""
    return sorted(annotations, key=lambda a: (a.line_start != 0, a.line_start))


def group_annotations_by_file(
    annotations: Iterable[CodeAnnotation],
) -> dict[str, list[CodeAnnotation]]:
    """Group by path, keeping first-seen file order."""
    by_file: dict[str, list[CodeAnnotation]] = {}
    for ann in annotations:
        by_file.setdefault(ann.file, []).append(ann)
    return by_file


def _format_code_section(by_file: dict[str, list[CodeAnnotation]], indent: str) -> list[str]:
    lines: list[str] = []
    for path, file_annotations in by_file.items():
        lines.append(f'{indent}<file path="{escape_xml(path)}">')
        for ann in sort_annotations(file_annotations):
            if ann.line_start == 0:
                attrs = 'type="file"'
            elif ann.line_end and ann.line_end != ann.line_start:
                attrs = f'type="range" start="{ann.line_start}" end="{ann.line_end}"'
            else:
                attrs = f'type="line" line="{ann.line_start}"'
            lines.append(f'{indent}  <annotation {attrs} kind="{ann.kind}">')
            lines.append(f"{indent}    <comment>{escape_xml(ann.comment)}</comment>")
            lines.append(f"{indent}  </annotation>")
        lines.append(f"{indent}</file>")
    return lines


def _format_conversation_section(
    items: Iterable[ConversationAnnotation | ToolCallAnnotation], indent: str
) -> list[str]:
    lines: list[str] = []
    for ann in items:
        if isinstance(ann, ConversationAnnotation):
            selection = f' selection="{escape_xml(ann.quote)}"' if ann.quote else ""
            lines.append(
                f'{indent}<annotation message-id="{escape_xml(ann.message_id)}"'
                f'{selection} kind="{ann.kind}">'
            )
        else:
            lines.append(
                f'{indent}<annotation type="tool-call" '
                f'tool-use-id="{escape_xml(ann.tool_use_id)}" kind="{ann.kind}">'
            )
        lines.append(f"{indent}  <comment>{escape_xml(ann.comment)}</comment>")
        lines.append(f"{indent}</annotation>")
    return lines


def format_annotations_as_xml(
    annotations: Iterable[CodeAnnotation | ConversationAnnotation | ToolCallAnnotation],
) -> str:
    """Render annotations as one ``<aurore-feedback>`` document ("" when empty)."""
    annotations = list(annotations)
    if not annotations:
        return ""

    code = [a for a in annotations if isinstance(a, CodeAnnotation)]
    conversation = [a for a in annotations if not isinstance(a, CodeAnnotation)]
    questions = sum(1 for a in annotations if a.kind == "question")
    actions = len(annotations) - questions
    by_file = group_annotations_by_file(code)

    lines = [FEEDBACK_OPEN]
    if code:
        lines.append("  <code>")
        lines.extend(_format_code_section(by_file, "    "))
        lines.append("  </code>")
    if conversation:
        lines.append("  <conversation>")
        lines.extend(_format_conversation_section(conversation, "    "))
        lines.append("  </conversation>")
    lines.append(
        f'  <summary actions="{actions}" questions="{questions}" files="{len(by_file)}" />'
    )
    lines.append(FEEDBACK_CLOSE)
    return "\n".join(lines)


# ------------------------------------------------------------------ #
# Parser
# ------------------------------------------------------------------ #


@dataclass(frozen=True)
class ParsedAnnotation:
    file: str
    line: str
    type: str
    comment: str
    kind: AnnotationKind
    source: Literal["code", "conversation", "tool-call"]


@dataclass
class ParsedFeedback:
    actions: list[ParsedAnnotation] = field(default_factory=list)
    questions: list[ParsedAnnotation] = field(default_factory=list)
    additional_context: str = ""
    files: int = 0

    @property
    def conversation_annotations(self) -> int:
        return sum(1 for a in (*self.actions, *self.questions) if a.source != "code")


def is_aurore_feedback(content: str) -> bool:
    return FEEDBACK_OPEN in content


def _kind(element: ET.Element) -> AnnotationKind:
    return "question" if element.get("kind") == "question" else "action"


def _comment(element: ET.Element) -> str:
    node = element.find("comment")
    if node is None:
        return ""
    return "".join(node.itertext()).strip()


def parse_annotation_xml(content: str) -> ParsedFeedback | None:
    """Recover annotations from a feedback prompt.

    Text after the closing tag is returned as ``additional_context``.
    Returns ``None`` for non-feedback text, malformed XML, or a document
    with no annotations.
    """
    start = content.find(FEEDBACK_OPEN)
    if start < 0:
        return None
    end = content.find(FEEDBACK_CLOSE, start)
    if end >= 0:
        end += len(FEEDBACK_CLOSE)
        xml, additional = content[start:end], content[end:].strip()
    else:
        xml, additional = content[start:], ""

    try:
        root = ET.fromstring(xml)
    except ET.ParseError:
        return None

    feedback = ParsedFeedback(additional_context=additional)
    files: set[str] = set()

    def push(ann: ParsedAnnotation) -> None:
        (feedback.questions if ann.kind == "question" else feedback.actions).append(ann)

    code = root.find("code")
    if code is not None:
        for file_node in code.iter("file"):
            path = file_node.get("path", "")
            files.add(path)
            for ann in file_node.iter("annotation"):
                push(
                    ParsedAnnotation(
                        file=path,
                        line=ann.get("line") or ann.get("start") or "",
                        type=ann.get("type", ""),
                        comment=_comment(ann),
                        kind=_kind(ann),
                        source="code",
                    )
                )

    conversation = root.find("conversation")
    if conversation is not None:
        for ann in conversation.iter("annotation"):
            source = "tool-call" if ann.get("type") == "tool-call" else "conversation"
            push(
                ParsedAnnotation(
                    file="",
                    line="",
                    type=source,
                    comment=_comment(ann),
                    kind=_kind(ann),
                    source=source,
                )
            )

    if not feedback.actions and not feedback.questions:
        return None
    feedback.files = len(files)
    return feedback
