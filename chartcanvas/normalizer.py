"""Response normalizer for AI generated diagrams.

Turns whatever the AI service returned (a structured object, a string with
JSON somewhere inside it, or garbage) into a canonical diagram with
sequential node ids and resolved connection endpoints. It never raises: any
input that cannot be understood degrades to the fixed start/process/end
fallback diagram.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from .errors import MalformedResponseError

logger = logging.getLogger(__name__)

# Candidate field names, tried in priority order.
SOURCE_FIELDS: Tuple[str, ...] = ("from", "sourceId", "source")
TARGET_FIELDS: Tuple[str, ...] = ("to", "targetId", "target")
TEXT_FIELDS: Tuple[str, ...] = ("text", "label", "name")
RESPONSE_TEXT_FIELDS: Tuple[str, ...] = ("analysis", "content")

DEFAULT_NODE_TYPE = "process"

_JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")
_TRAILING_COMMA_RE = re.compile(r",(\s*[}\]])")
_BARE_KEY_RE = re.compile(r"([{,]\s*)([A-Za-z_]\w*)\s*:")
_NODES_ARRAY_RE = re.compile(r'"nodes"\s*:\s*(\[[\s\S]*?\])')
_CONNECTIONS_ARRAY_RE = re.compile(r'"connections"\s*:\s*(\[[\s\S]*?\])')


@dataclass
class NormalizedNode:
    id: str
    text: str
    type: str = DEFAULT_NODE_TYPE
    original_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"id": self.id, "text": self.text, "type": self.type}
        if self.original_id is not None:
            data["originalId"] = self.original_id
        return data


@dataclass
class NormalizedConnection:
    id: str
    source_id: str
    target_id: str
    label: str = ""
    original_source: Optional[str] = None
    original_target: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "sourceId": self.source_id,
            "targetId": self.target_id,
            "label": self.label,
            "originalSource": self.original_source,
            "originalTarget": self.original_target,
        }


@dataclass
class NormalizedDiagram:
    """Canonical diagram safe to hand to the layout engine."""

    nodes: List[NormalizedNode] = field(default_factory=list)
    connections: List[NormalizedConnection] = field(default_factory=list)
    explanation: str = ""
    is_fallback: bool = False
    is_error_recovery: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nodes": [node.to_dict() for node in self.nodes],
            "connections": [conn.to_dict() for conn in self.connections],
        }


def first_present(data: Mapping[str, Any], candidates: Sequence[str]) -> Any:
    """Return the first candidate field that holds a usable value."""
    for name in candidates:
        value = data.get(name)
        if value is not None and value != "":
            return value
    return None


def fallback_diagram(error: bool = False, explanation: str = "") -> NormalizedDiagram:
    """Return the fixed start -> process -> end diagram."""
    middle_text = "Error Processing Diagram" if error else "Process"
    first_label, second_label = ("Error", "Continue") if error else ("Start", "End")
    return NormalizedDiagram(
        nodes=[
            NormalizedNode(id="node1", text="Start", type="start"),
            NormalizedNode(id="node2", text=middle_text, type="process"),
            NormalizedNode(id="node3", text="End", type="end"),
        ],
        connections=[
            NormalizedConnection(id="conn1", source_id="node1", target_id="node2", label=first_label),
            NormalizedConnection(id="conn2", source_id="node2", target_id="node3", label=second_label),
        ],
        explanation=explanation,
        is_fallback=True,
        is_error_recovery=error,
    )


# --- JSON extraction ---------------------------------------------------------
def _loads_object(text: str) -> Optional[Dict[str, Any]]:
    try:
        value = json.loads(text)
    except (ValueError, TypeError):
        return None
    return value if isinstance(value, dict) else None


def _repair_json(text: str) -> str:
    repaired = _TRAILING_COMMA_RE.sub(r"\1", text)
    repaired = repaired.replace("\\'", "'").replace('\\"', '"')
    repaired = repaired.replace("'", '"')
    return _BARE_KEY_RE.sub(r'\1"\2":', repaired)


def _loads_array(text: str) -> List[Any]:
    try:
        value = json.loads(_repair_json(text))
    except ValueError:
        return []
    return value if isinstance(value, list) else []


def parse_json_from_text(text: str) -> Optional[Dict[str, Any]]:
    """Find a JSON object in free text.

    Tries the whole string, then the outermost ``{...}`` span, then a
    repaired version of that span, and finally pulls the ``nodes`` and
    ``connections`` arrays out individually.
    """
    parsed = _loads_object(text.strip())
    if parsed is not None:
        return parsed

    match = _JSON_OBJECT_RE.search(text)
    if match:
        parsed = _loads_object(match.group(0))
        if parsed is not None:
            return parsed
        parsed = _loads_object(_repair_json(match.group(0)))
        if parsed is not None:
            return parsed

    nodes_match = _NODES_ARRAY_RE.search(text)
    connections_match = _CONNECTIONS_ARRAY_RE.search(text)
    if nodes_match and connections_match:
        return {
            "diagram": {
                "nodes": _loads_array(nodes_match.group(1)),
                "connections": _loads_array(connections_match.group(1)),
            }
        }
    return None


def extract_diagram_payload(response: Any, _depth: int = 0) -> Tuple[Optional[Dict[str, Any]], str]:
    """Locate ``{nodes, connections}`` inside an AI response.

    Returns the payload (or None) and any explanation text found next to it.
    """
    if _depth > 3 or response is None:
        return None, ""

    if isinstance(response, str):
        parsed = parse_json_from_text(response)
        if parsed is None:
            return None, ""
        return extract_diagram_payload(parsed, _depth + 1)

    if not isinstance(response, Mapping):
        return None, ""

    explanation = response.get("explanation")
    explanation = explanation if isinstance(explanation, str) else ""

    diagram = response.get("diagram")
    if isinstance(diagram, Mapping):
        return dict(diagram), explanation

    suggestions = response.get("suggestions")
    if isinstance(suggestions, (Mapping, str)):
        payload, nested_explanation = extract_diagram_payload(suggestions, _depth + 1)
        if payload is not None:
            return payload, nested_explanation or explanation

    if isinstance(response.get("nodes"), list):
        return {"nodes": response["nodes"], "connections": response.get("connections")}, explanation

    for name in RESPONSE_TEXT_FIELDS:
        content = response.get(name)
        if isinstance(content, str):
            payload, nested_explanation = extract_diagram_payload(content, _depth + 1)
            if payload is not None:
                return payload, nested_explanation or explanation
    return None, explanation


# --- Normalization -----------------------------------------------------------
def _as_node_mapping(raw: Any) -> Optional[Mapping[str, Any]]:
    if isinstance(raw, Mapping):
        return raw
    if isinstance(raw, str) and raw.strip():
        return {"text": raw.strip()}
    return None


def _resolve_endpoint(
    value: Any,
    id_map: Dict[str, str],
    node_ids: Sequence[str],
    default: str,
) -> str:
    if value is None or value == "":
        return default
    key = str(value).strip()
    if key in id_map:
        return id_map[key]
    if key.isascii() and key.isdigit():
        candidate = f"node{int(key)}"
        if candidate in node_ids:
            return candidate
    if key in node_ids:
        return key
    return default


def normalize_nodes(raw_nodes: Any) -> List[NormalizedNode]:
    if not isinstance(raw_nodes, list):
        return []
    nodes: List[NormalizedNode] = []
    for raw in raw_nodes:
        mapping = _as_node_mapping(raw)
        if mapping is None:
            continue
        index = len(nodes) + 1
        original_id = mapping.get("id")
        text = first_present(mapping, TEXT_FIELDS)
        node_type = mapping.get("type")
        nodes.append(NormalizedNode(
            id=f"node{index}",
            text=str(text) if text is not None else f"Node {index}",
            type=str(node_type).strip() if node_type else DEFAULT_NODE_TYPE,
            original_id=str(original_id) if original_id is not None and original_id != "" else None,
        ))
    return nodes


def normalize_connections(raw_connections: Any, nodes: List[NormalizedNode]) -> List[NormalizedConnection]:
    if not isinstance(raw_connections, list) or not nodes:
        return []

    id_map: Dict[str, str] = {}
    for node in nodes:
        if node.original_id is not None:
            id_map.setdefault(node.original_id, node.id)
    node_ids = [node.id for node in nodes]
    default_source = node_ids[0]
    default_target = node_ids[1] if len(node_ids) > 1 else node_ids[0]

    connections: List[NormalizedConnection] = []
    for raw in raw_connections:
        if not isinstance(raw, Mapping):
            continue
        source = first_present(raw, SOURCE_FIELDS)
        target = first_present(raw, TARGET_FIELDS)
        source_id = _resolve_endpoint(source, id_map, node_ids, default_source)
        target_id = _resolve_endpoint(target, id_map, node_ids, default_target)
        label = raw.get("label")
        connections.append(NormalizedConnection(
            id=f"conn{len(connections) + 1}",
            source_id=source_id,
            target_id=target_id,
            label=str(label) if label else "",
            original_source=str(source) if source is not None else None,
            original_target=str(target) if target is not None else None,
        ))
    return connections


def chain_connections(nodes: List[NormalizedNode]) -> List[NormalizedConnection]:
    """Link nodes in list order: node1 -> node2 -> node3 ..."""
    return [
        NormalizedConnection(id=f"conn{index + 1}", source_id=nodes[index].id, target_id=nodes[index + 1].id)
        for index in range(len(nodes) - 1)
    ]


def normalize_diagram(raw_nodes: Any, raw_connections: Any, explanation: str = "") -> NormalizedDiagram:
    nodes = normalize_nodes(raw_nodes)
    if not nodes:
        logger.warning("Diagram response contained no usable nodes, using fallback diagram")
        return fallback_diagram(explanation=explanation)

    connections = normalize_connections(raw_connections, nodes)
    if not connections and len(nodes) > 1:
        logger.info("No usable connections in response, chaining %d nodes", len(nodes))
        connections = chain_connections(nodes)

    return NormalizedDiagram(nodes=nodes, connections=connections, explanation=explanation)


def require_diagram_payload(response: Any) -> Tuple[Dict[str, Any], str]:
    """Like extract_diagram_payload, but raises MalformedResponseError when nothing is found."""
    payload, explanation = extract_diagram_payload(response)
    if payload is None:
        raise MalformedResponseError("Could not find diagram data in AI response")
    return payload, explanation


def normalize_response(response: Any) -> NormalizedDiagram:
    """Normalize an arbitrary AI response into a valid diagram."""
    try:
        payload, explanation = require_diagram_payload(response)
        return normalize_diagram(payload.get("nodes"), payload.get("connections"), explanation)
    except MalformedResponseError as exc:
        logger.warning("%s, using fallback diagram", exc)
        return fallback_diagram()
    except Exception:
        logger.exception("Error processing diagram data, using error-recovery diagram")
        return fallback_diagram(error=True)
