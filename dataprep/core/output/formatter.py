"""
Output formatter: serializes processed records into training-data encodings.

Formats:
    conversational_jsonl: one line per conversation, records grouped by
        conversation_id (falling back to id, then to a fresh per-record key)
    qa_pairs_jsonl: one line per adjacent customer -> agent message pair
    raw_json: the full record array, pretty-printed
"""

import json
import uuid
from collections.abc import Iterable, Mapping, Sequence
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field

from dataprep.core.errors import BadRequestError
from dataprep.core.mapping.transformations import stringify
from dataprep.core.models.output_artifact import OutputArtifact
from dataprep.core.models.processing_run import OutputFormat

QUESTION_ROLES = frozenset({"customer", "user"})
ANSWER_ROLES = frozenset({"agent", "assistant"})
DEFAULT_ROLE = "user"


class FormattedOutput(BaseModel):
    """
    Serialized output plus the number of units it holds.

    record_count counts conversations, QA pairs or records depending on format.
    """

    format: OutputFormat
    content: bytes
    record_count: int = Field(..., ge=0)

    @property
    def file_size(self) -> int:
        return len(self.content)


def resolve_format(output_format: OutputFormat | str) -> OutputFormat:
    """
    Raises:
        BadRequestError: If the format is not supported
    """
    try:
        return OutputFormat(output_format)
    except ValueError as e:
        raise BadRequestError(f"Unsupported output format: {output_format}") from e


def _dumps_line(obj: Any) -> str:
    return json.dumps(obj, ensure_ascii=False, separators=(",", ":"), default=str)


def group_conversations(records: Iterable[Mapping[str, Any]]) -> list[dict[str, Any]]:
    """
    Group records into conversations in first-seen order.

    Records without a truthy conversation_id or id become single-message
    conversations of their own.
    """
    conversations: dict[str, list[Mapping[str, Any]]] = {}
    for record in records:
        key = record.get("conversation_id") or record.get("id") or uuid.uuid4().hex
        conversations.setdefault(stringify(key), []).append(record)

    grouped = []
    for conversation_id, messages in conversations.items():
        rendered = []
        for message in messages:
            entry = {
                "role": message.get("role") or DEFAULT_ROLE,
                "content": message.get("content") or "",
            }
            if message.get("timestamp"):
                entry["timestamp"] = message["timestamp"]
            rendered.append(entry)
        grouped.append({"conversation_id": conversation_id, "messages": rendered})
    return grouped


def extract_qa_pairs(records: Sequence[Mapping[str, Any]]) -> list[dict[str, str]]:
    """
    Pair each customer/user record with an immediately following agent/assistant record.

    Adjacency only: no threading, and a repeated role yields no pair at that position.
    """
    pairs = []
    for current, following in zip(records, records[1:]):
        current_role = stringify(current.get("role") or "").lower()
        following_role = stringify(following.get("role") or "").lower()
        if current_role in QUESTION_ROLES and following_role in ANSWER_ROLES:
            pairs.append(
                {
                    "question": stringify(current.get("content") or ""),
                    "answer": stringify(following.get("content") or ""),
                }
            )
    return pairs


def format_records(records: Sequence[Mapping[str, Any]], output_format: OutputFormat | str) -> FormattedOutput:
    """
    Serialize records in the requested format.

    Args:
        records: Mapped, de-identified records in processing order
        output_format: Target encoding

    Returns:
        FormattedOutput with UTF-8 content and the emitted unit count

    Raises:
        BadRequestError: If the format is not supported
    """
    fmt = resolve_format(output_format)
    records = list(records)

    if fmt is OutputFormat.CONVERSATIONAL_JSONL:
        units = group_conversations(records)
        text = "\n".join(_dumps_line(unit) for unit in units)
    elif fmt is OutputFormat.QA_PAIRS_JSONL:
        units = extract_qa_pairs(records)
        text = "\n".join(_dumps_line(unit) for unit in units)
    else:
        units = records
        text = json.dumps(records, ensure_ascii=False, indent=2, default=str)

    return FormattedOutput(format=fmt, content=text.encode("utf-8"), record_count=len(units))


def build_filename(run_id: int, output_format: OutputFormat | str, created_at: datetime | None = None) -> str:
    """Download filename: output-<run_id>-<YYYY-MM-DDTHH-MM-SS>.<json|jsonl> (UTC)."""
    fmt = resolve_format(output_format)
    created_at = created_at or datetime.now(timezone.utc)
    if created_at.tzinfo is not None:
        created_at = created_at.astimezone(timezone.utc)
    return f"output-{run_id}-{created_at.strftime('%Y-%m-%dT%H-%M-%S')}.{fmt.extension}"


def parse_output(content: bytes, output_format: OutputFormat | str, limit: int | None = None) -> list[Any]:
    """Decode serialized output back into its units, optionally only the first `limit`."""
    fmt = resolve_format(output_format)
    text = content.decode("utf-8")

    if fmt is OutputFormat.RAW_JSON:
        data = json.loads(text) if text.strip() else []
        units = data if isinstance(data, list) else [data]
        return units if limit is None else units[:limit]

    units = []
    for line in text.splitlines():
        if not line.strip():
            continue
        if limit is not None and len(units) >= limit:
            break
        units.append(json.loads(line))
    return units


def preview_artifact(artifact: OutputArtifact, limit: int = 10) -> list[Any]:
    """First `limit` units of a stored artifact."""
    return parse_output(artifact.content, artifact.format, limit)
