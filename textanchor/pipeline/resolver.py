"""
Candidate parser for raw model responses.

Turns one chunk's response text into ordered CandidateRecords plus a
ValidationReport. Never raises on bad input: malformed JSON/YAML is
recovered where possible and always reported, and the raw text stays
attached to the report.
"""

import json
import re
from typing import Any, Optional

import structlog
import yaml

from textanchor.config import settings
from textanchor.exceptions import ParseError, PersistenceError
from textanchor.models.enums import FormatType
from textanchor.observability.metrics import raw_outputs_persisted_total, responses_parsed_total
from textanchor.schemas.contracts import CandidateRecord, ValidationReport
from textanchor.storage.artifact_store import ArtifactStore

logger = structlog.get_logger(__name__)


# ── Constants ────────────────────────────────────────────────

CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F]")
FENCE_OPEN = re.compile(r"```[ \t]*([A-Za-z]*)[^\n]*\n?")
TRAILING_COMMA = re.compile(r",\s*([}\]])")
EMBEDDED_JSON = re.compile(r"[\[{]\s*[\"{\[]")
JSON_OPENER = re.compile(r"[\[{]")
YAML_LIST_ITEM = re.compile(r"^\s*-\s")

WRAPPER_KEYS = ("extractions", "data", "results")
ATTRIBUTES_SUFFIX = "_attributes"
INDEX_SUFFIX = "_index"
MAX_RECOVERY_ATTEMPTS = 50

_CLOSER_FOR = {"{": "}", "[": "]"}


def validate_and_parse(
    raw_text: str,
    expected_fields: Optional[list[str]] = None,
    store: Optional[ArtifactStore] = None,
    persist_raw: Optional[bool] = None,
) -> tuple[list[CandidateRecord], ValidationReport]:
    """
    Parse a raw response into candidate records.

    Args:
        raw_text: the model's response, optionally fenced.
        expected_fields: extraction classes configured for the run; used
            only for warnings.
        store: where raw responses are persisted.
        persist_raw: force raw-output persistence on/off. Invalid reports
            are always persisted.
    """
    report = ValidationReport(raw_text=raw_text)
    expected = list(expected_fields or [])

    content = _sanitize(raw_text or "")
    content, fence_tag = _strip_fence(content)
    fmt = _detect_format(content, fence_tag)
    report.format_detected = fmt

    parsed = None
    recovery = None
    if not content.strip():
        report.is_valid = False
        report.errors.append("empty response: nothing to parse")
    else:
        try:
            if fmt == FormatType.JSON:
                parsed, recovery = _parse_json(content, report)
            else:
                parsed, recovery = _parse_yaml(content)
        except ParseError as e:
            report.is_valid = False
            report.errors.append(f"{e.error_code}: {e.message}")
        else:
            if recovery:
                report.is_valid = False
                report.errors.append(f"malformed {fmt.value} recovered: {recovery}")

    records = _extract_records(parsed, report) if parsed is not None else []
    report.record_count = len(records)
    _check_structure(records, expected, report)

    if parsed is None:
        outcome = "failed"
    elif recovery:
        outcome = "recovered"
    else:
        outcome = "valid"
    responses_parsed_total.labels(outcome=outcome).inc()

    if persist_raw is None:
        persist_raw = settings.SAVE_RAW_OUTPUTS or settings.DEBUG
    if persist_raw or not report.is_valid:
        _persist_raw(raw_text or "", store, report, label=outcome)

    logger.info(
        "response_parsed",
        outcome=outcome,
        format=fmt.value,
        record_count=len(records),
        is_valid=report.is_valid,
        error_count=len(report.errors),
        warning_count=len(report.warnings),
    )
    return records, report


# ── Pre-processing ───────────────────────────────────────────

def _sanitize(text: str) -> str:
    """Drop ASCII control characters except TAB, LF and CR."""
    sanitized = CONTROL_CHARS.sub("", text)
    if len(sanitized) != len(text):
        logger.debug("control_chars_removed", count=len(text) - len(sanitized))
    return sanitized


def _strip_fence(text: str) -> tuple[str, Optional[str]]:
    """
    Return the body of the first fenced block and its language tag.
    An unterminated fence takes everything after the opener.
    """
    opener = FENCE_OPEN.search(text)
    if opener is None:
        return text, None
    tag = opener.group(1).lower() or None
    body_start = opener.end()
    closer = text.find("```", body_start)
    body = text[body_start:] if closer == -1 else text[body_start:closer]
    return body.strip(), tag


def _detect_format(content: str, fence_tag: Optional[str]) -> FormatType:
    if fence_tag == "json":
        return FormatType.JSON
    if fence_tag in ("yaml", "yml"):
        return FormatType.YAML
    stripped = content.lstrip()
    if stripped.startswith(("{", "[")):
        return FormatType.JSON
    if EMBEDDED_JSON.search(content) and not _yaml_yields_records(content):
        return FormatType.JSON
    return FormatType.YAML


def _yaml_yields_records(content: str) -> bool:
    """
    YAML flow collections look like embedded JSON, and so does a prose
    line ending in a JSON object. Whichever reading produces records wins.
    """
    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError:
        data = _recover_truncated_yaml(content)
    if not isinstance(data, (dict, list)):
        return False
    return bool(_extract_records(data, ValidationReport(raw_text=content)))


# ── JSON ─────────────────────────────────────────────────────

def _parse_json(content: str, report: ValidationReport) -> tuple[Any, Optional[str]]:
    """
    Returns (data, recovery) where recovery names the repair applied, if any.
    Raises ParseError when nothing parseable remains.

    Every `{` or `[` is a possible payload start, so brackets in leading
    prose ("Found [2] items:") do not hide the real payload. The first
    start that decodes to something holding records wins; otherwise the
    first start that decodes at all.
    """
    starts = [m.start() for m in JSON_OPENER.finditer(content)][:MAX_RECOVERY_ATTEMPTS]
    if not starts:
        raise ParseError("no JSON object or array found")

    chosen = None
    for start in starts:
        decoded = _decode_payload(content[start:])
        if decoded is None:
            continue
        if chosen is None:
            chosen = (start, decoded)
        if _holds_records(decoded[0]):
            chosen = (start, decoded)
            break

    if chosen is None:
        try:
            json.loads(content[starts[0]:])
        except json.JSONDecodeError as e:
            raise ParseError(f"invalid JSON: {e.msg} at line {e.lineno} column {e.colno}") from e
        raise ParseError("invalid JSON")

    start, (data, has_trailing_text, recovery) = chosen
    if content[:start].strip():
        report.warnings.append("ignored text before JSON payload")
    if has_trailing_text:
        report.warnings.append("ignored text after JSON payload")
    return data, recovery


def _decode_payload(payload: str) -> Optional[tuple[Any, bool, Optional[str]]]:
    """(data, has_trailing_text, recovery) for the JSON value at the start of payload."""
    decoded = _decode_prefix(payload)
    if decoded is not None:
        return decoded[0], decoded[1], None

    without_commas = TRAILING_COMMA.sub(r"\1", payload)
    if without_commas != payload:
        decoded = _decode_prefix(without_commas)
        if decoded is not None:
            return decoded[0], decoded[1], "removed trailing commas"

    data = _recover_truncated_json(without_commas)
    if data is not None:
        return data, False, "truncated JSON trimmed to last complete record"
    return None


def _decode_prefix(payload: str) -> Optional[tuple[Any, bool]]:
    try:
        data, end = json.JSONDecoder().raw_decode(payload)
    except json.JSONDecodeError:
        return None
    return data, bool(payload[end:].strip())


def _holds_records(data: Any) -> bool:
    if isinstance(data, dict):
        return True
    if isinstance(data, list):
        return any(isinstance(item, (dict, str)) for item in data)
    return False


def _recover_truncated_json(payload: str) -> Any:
    """
    Cut the payload after the last bracket that closes a complete value,
    then close whatever is still open.
    """
    cuts: list[tuple[int, str]] = []
    stack: list[str] = []
    in_string = False
    escaped = False

    for i, ch in enumerate(payload):
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in _CLOSER_FOR:
            stack.append(ch)
        elif ch in "}]":
            if not stack or _CLOSER_FOR[stack[-1]] != ch:
                break
            stack.pop()
            if not stack:
                # A complete document; nothing to recover beyond this
                cuts.append((i + 1, ""))
                break
            cuts.append((i + 1, "".join(_CLOSER_FOR[b] for b in reversed(stack))))

    for cut, closing in reversed(cuts[-MAX_RECOVERY_ATTEMPTS:]):
        try:
            return json.loads(payload[:cut] + closing)
        except json.JSONDecodeError:
            continue
    return None


# ── YAML ─────────────────────────────────────────────────────

def _parse_yaml(content: str) -> tuple[Any, Optional[str]]:
    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        data = _recover_truncated_yaml(content)
        if data is None:
            raise ParseError(f"invalid YAML: {_yaml_problem(e)}") from e
        return data, "YAML trimmed to last complete list item"

    if data is None:
        raise ParseError("YAML document is empty")
    if not isinstance(data, (dict, list)):
        raise ParseError(f"expected a mapping or list, got {type(data).__name__}")
    return data, None


def _recover_truncated_yaml(content: str) -> Any:
    lines = content.splitlines()
    item_starts = [i for i, line in enumerate(lines) if YAML_LIST_ITEM.match(line)]
    for line_no in reversed(item_starts[-MAX_RECOVERY_ATTEMPTS:]):
        candidate = "\n".join(lines[:line_no])
        try:
            data = yaml.safe_load(candidate)
        except yaml.YAMLError:
            continue
        if isinstance(data, (dict, list)) and data:
            return data
    return None


def _yaml_problem(error: yaml.YAMLError) -> str:
    problem = getattr(error, "problem", None) or str(error).splitlines()[0]
    mark = getattr(error, "problem_mark", None)
    if mark is not None:
        return f"{problem} at line {mark.line + 1} column {mark.column + 1}"
    return problem


# ── Record Extraction ────────────────────────────────────────

def _extract_records(parsed: Any, report: ValidationReport) -> list[CandidateRecord]:
    items = _unwrap(parsed)
    if items is None:
        report.warnings.append(f"unrecognized response shape: {type(parsed).__name__}")
        return []

    indexed: list[tuple[Optional[int], CandidateRecord]] = []
    for position, item in enumerate(items):
        if isinstance(item, str):
            indexed.append((None, CandidateRecord(
                extraction_class=f"item_{position}",
                extraction_text=item,
                group_index=position,
            )))
        elif isinstance(item, dict):
            if "extraction_class" in item:
                entry = _explicit_record(item, position, report)
                if entry is not None:
                    indexed.append(entry)
            else:
                indexed.extend(_keyed_records(item, position, report))
        else:
            report.warnings.append(
                f"ignored item {position}: unsupported type {type(item).__name__}"
            )

    if any(index is not None for index, _ in indexed):
        indexed.sort(key=lambda pair: (pair[0] is None, pair[0] or 0))
    return [record for _, record in indexed]


def _unwrap(parsed: Any) -> Optional[list]:
    if isinstance(parsed, list):
        return parsed
    if isinstance(parsed, dict):
        for key in WRAPPER_KEYS:
            if isinstance(parsed.get(key), list):
                return parsed[key]
        return [parsed]
    return None


def _explicit_record(
    item: dict, position: int, report: ValidationReport
) -> Optional[tuple[Optional[int], CandidateRecord]]:
    extraction_class = item.get("extraction_class")
    text = item.get("extraction_text")
    if not isinstance(extraction_class, str) or not extraction_class:
        report.warnings.append(f"ignored item {position}: extraction_class is not a string")
        return None
    if text is None or isinstance(text, (dict, list)):
        report.warnings.append(
            f"ignored item {position} ('{extraction_class}'): extraction_text missing or not a scalar"
        )
        return None

    description = item.get("description")
    record = CandidateRecord(
        extraction_class=extraction_class,
        extraction_text=_scalar(text),
        description=_scalar(description) if description is not None else None,
        attributes=_attributes(item.get("attributes"), extraction_class, report),
        group_index=position,
    )
    return _as_index(item.get("extraction_index")), record


def _keyed_records(
    item: dict, position: int, report: ValidationReport
) -> list[tuple[Optional[int], CandidateRecord]]:
    """Records from the `{"<class>": text, "<class>_attributes": {...}}` form."""
    entries = []
    for key, value in item.items():
        key = str(key)
        if key.endswith(ATTRIBUTES_SUFFIX) or key.endswith(INDEX_SUFFIX):
            continue
        if value is None:
            continue

        if isinstance(value, list) and all(not isinstance(v, (dict, list)) for v in value):
            texts = [_scalar(v) for v in value if v is not None]
        elif isinstance(value, (dict, list)):
            report.warnings.append(f"ignored '{key}' in item {position}: nested value")
            continue
        else:
            texts = [_scalar(value)]

        attributes = _attributes(item.get(key + ATTRIBUTES_SUFFIX), key, report)
        index = _as_index(item.get(key + INDEX_SUFFIX))
        for text in texts:
            entries.append((index, CandidateRecord(
                extraction_class=key,
                extraction_text=text,
                attributes=dict(attributes),
                group_index=position,
            )))
    return entries


def _attributes(raw: Any, extraction_class: str, report: ValidationReport) -> dict[str, str]:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        report.warnings.append(f"ignored attributes of '{extraction_class}': not a mapping")
        return {}
    return {str(k): _flatten(v) for k, v in raw.items() if v is not None}


def _flatten(value: Any) -> str:
    if isinstance(value, list):
        return ", ".join(_flatten(v) for v in value if v is not None)
    if isinstance(value, dict):
        return json.dumps(value, ensure_ascii=False, sort_keys=True)
    return _scalar(value)


def _scalar(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _as_index(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value)
    return None


# ── Structural Validation ────────────────────────────────────

def _check_structure(
    records: list[CandidateRecord], expected: list[str], report: ValidationReport
) -> None:
    """Field-presence checks. Everything here is a warning, never an error."""
    seen: dict[str, None] = {}
    for record in records:
        seen.setdefault(record.extraction_class, None)

    for field in expected:
        if field not in seen:
            report.warnings.append(f"expected field '{field}' not found in any record")
    if expected:
        for extraction_class in seen:
            if extraction_class not in expected:
                report.warnings.append(f"unexpected field '{extraction_class}'")

    max_chars = settings.VALIDATION_MAX_TEXT_CHARS
    for i, record in enumerate(records):
        if not record.extraction_text.strip():
            report.warnings.append(f"record {i} ('{record.extraction_class}') has empty text")
        elif len(record.extraction_text) > max_chars:
            report.warnings.append(
                f"record {i} ('{record.extraction_class}') text is very long "
                f"({len(record.extraction_text)} > {max_chars} chars)"
            )

    if expected and len(records) < len(expected) / 2:
        report.warnings.append(
            f"low extraction count: {len(records)} records for {len(expected)} expected fields"
        )


# ── Raw Output Persistence ───────────────────────────────────

def _persist_raw(
    raw_text: str, store: Optional[ArtifactStore], report: ValidationReport, label: str
) -> None:
    store = store or ArtifactStore()
    try:
        report.raw_output_reference = store.save_raw_output(raw_text, label=label)
    except PersistenceError as e:
        raw_outputs_persisted_total.labels(outcome="failed").inc()
        report.warnings.append(f"raw output not persisted: {e.message}")
        logger.warning("raw_output_persist_failed", error_code=e.error_code, error=e.message)
        return
    raw_outputs_persisted_total.labels(outcome="saved").inc()
