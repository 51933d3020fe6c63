"""In-memory engine for testing.

``InMemoryEngine`` is an ``httpx`` transport that answers the subset of the
Elasticsearch REST API the client uses. Plug it into ``HttpTransport`` to run
the client without a server:

    client = ElasticsearchClient(transport=InMemoryEngine())

Text is analyzed by lowercasing and splitting on non-word characters, which
is close to the standard analyzer for ASCII input. Scoring is not modeled;
every hit scores 1.0 and unsorted hits come back in insertion order.
"""

from __future__ import annotations

import json
import math
import re
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple
from urllib.parse import unquote

import httpx

_TOKEN_RE = re.compile(r"\w+", re.UNICODE)
_DISTANCE_RE = re.compile(r"^\s*([0-9]*\.?[0-9]+)\s*([a-z]*)\s*$")

_UNIT_METERS = {
    "": 1.0,
    "m": 1.0,
    "meters": 1.0,
    "km": 1000.0,
    "kilometers": 1000.0,
    "cm": 0.01,
    "mm": 0.001,
    "mi": 1609.344,
    "miles": 1609.344,
    "yd": 0.9144,
    "ft": 0.3048,
    "in": 0.0254,
    "nmi": 1852.0,
}

_EARTH_RADIUS_M = 6371008.8
_SHARDS = {"total": 1, "successful": 1, "skipped": 0, "failed": 0}


class _EngineError(Exception):
    def __init__(self, status: int, error_type: str, reason: str, **extra: Any):
        self.status = status
        self.error: Dict[str, Any] = {"type": error_type, "reason": reason, **extra}
        super().__init__(reason)

    def payload(self) -> Dict[str, Any]:
        return {"error": {"root_cause": [dict(self.error)], **self.error}, "status": self.status}


@dataclass
class _Doc:
    type: str
    source: Dict[str, Any]
    version: int = 1


@dataclass
class _Index:
    name: str
    uuid: str
    settings: Dict[str, Any] = field(default_factory=dict)
    mappings: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    docs: Dict[str, _Doc] = field(default_factory=dict)


@dataclass
class _Scroll:
    remaining: List[Dict[str, Any]]
    size: int
    total: int


# ============================================================================
# Analysis helpers
# ============================================================================

def _flatten(value: Any) -> List[Any]:
    if isinstance(value, list):
        out: List[Any] = []
        for v in value:
            out.extend(_flatten(v))
        return out
    return [value]


def _values(source: Dict[str, Any], path: str) -> List[Any]:
    """Leaf values at a dotted path, with arrays flattened."""
    current: List[Any] = [source]
    for part in path.split("."):
        nxt: List[Any] = []
        for node in current:
            for item in _flatten(node):
                if isinstance(item, dict) and part in item:
                    nxt.append(item[part])
        current = nxt
    return [v for v in _flatten(current) if v is not None]


def _tokens(value: Any) -> List[str]:
    return _TOKEN_RE.findall(_as_text(value).lower())


def _as_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _single(clause: Any, name: str) -> Tuple[str, Any]:
    if not isinstance(clause, dict) or len(clause) != 1:
        raise _EngineError(400, "parsing_exception", f"[{name}] query malformed")
    ((key, value),) = clause.items()
    return key, value


def _unwrap(value: Any, key: str = "query") -> Any:
    if isinstance(value, dict):
        return value.get(key, value.get("value"))
    return value


def _contains_run(tokens: List[str], run: List[str]) -> bool:
    n = len(run)
    return any(tokens[i:i + n] == run for i in range(len(tokens) - n + 1))


def _wildcard_regex(pattern: str) -> "re.Pattern[str]":
    escaped = re.escape(pattern).replace(r"\*", ".*").replace(r"\?", ".")
    return re.compile(escaped, re.DOTALL)


def _compile(pattern: str) -> "re.Pattern[str]":
    try:
        return re.compile(pattern)
    except re.error as e:
        raise _EngineError(400, "query_shard_exception", f"invalid regex [{pattern}]: {e}")


def _parse_location(value: Any) -> Optional[Tuple[float, float]]:
    try:
        if isinstance(value, str):
            lat, lon = (float(p) for p in value.split(","))
            return lat, lon
        if isinstance(value, dict):
            return float(value["lat"]), float(value["lon"])
        if isinstance(value, (list, tuple)) and len(value) == 2:
            return float(value[1]), float(value[0])
    except (ValueError, KeyError, TypeError):
        return None
    return None


def _parse_distance(value: Any) -> float:
    if _is_number(value):
        return float(value)
    m = _DISTANCE_RE.match(str(value).lower())
    if not m or m.group(2) not in _UNIT_METERS:
        raise _EngineError(400, "parse_exception", f"failed to parse distance [{value}]")
    return float(m.group(1)) * _UNIT_METERS[m.group(2)]


def _haversine_m(a: Tuple[float, float], b: Tuple[float, float]) -> float:
    lat1, lon1 = map(math.radians, a)
    lat2, lon2 = map(math.radians, b)
    h = (
        math.sin((lat2 - lat1) / 2) ** 2
        + math.cos(lat1) * math.cos(lat2) * math.sin((lon2 - lon1) / 2) ** 2
    )
    return 2 * _EARTH_RADIUS_M * math.asin(math.sqrt(h))


def _doc_locations(source: Dict[str, Any], path: str) -> List[Tuple[float, float]]:
    raw = source
    for part in path.split("."):
        raw = raw.get(part) if isinstance(raw, dict) else None
    if raw is None:
        return []
    loc = _parse_location(raw)
    if loc is not None:
        return [loc]
    if isinstance(raw, list):
        return [loc for loc in (_parse_location(v) for v in raw) if loc is not None]
    return []


# ============================================================================
# Query matching
# ============================================================================

def _term_equal(doc_value: Any, value: Any) -> bool:
    if doc_value == value:
        return True
    if _as_text(doc_value) == _as_text(value):
        return True
    return isinstance(doc_value, str) and _as_text(value) in _tokens(doc_value)


def _in_range(doc_value: Any, bounds: Dict[str, Any]) -> bool:
    checks: List[Tuple[str, Callable[[Any, Any], bool]]] = [
        ("gt", lambda a, b: a > b),
        ("gte", lambda a, b: a >= b),
        ("lt", lambda a, b: a < b),
        ("lte", lambda a, b: a <= b),
    ]
    for key, op in checks:
        if key not in bounds:
            continue
        bound = bounds[key]
        try:
            if _is_number(doc_value):
                ok = op(float(doc_value), float(bound))
            else:
                ok = op(_as_text(doc_value), _as_text(bound))
        except (TypeError, ValueError):
            return False
        if not ok:
            return False
    return True


def _clauses(value: Any) -> List[Dict[str, Any]]:
    if value is None:
        return []
    return value if isinstance(value, list) else [value]


def _minimum_should_match(value: Any, count: int) -> int:
    """Resolve an integer or percentage against ``count`` should clauses.

    Negative values count the clauses that may be missing. Percentages round down.
    """
    text = str(value).strip()
    if text.endswith("%"):
        percent = int(text[:-1])
        required = count * abs(percent) // 100
        if percent < 0:
            required = count - required
    else:
        required = int(text)
        if required < 0:
            required = count + required
    return max(required, 0)


def matches(source: Dict[str, Any], query: Dict[str, Any]) -> bool:
    """Whether ``source`` satisfies the query DSL dict ``query``."""
    name, body = _single(query, "query")

    if name == "match_all":
        return True

    if name == "bool":
        must = _clauses(body.get("must")) + _clauses(body.get("filter"))
        if not all(matches(source, q) for q in must):
            return False
        if any(matches(source, q) for q in _clauses(body.get("must_not"))):
            return False
        should = _clauses(body.get("should"))
        if should:
            msm = body.get("minimum_should_match")
            required = _minimum_should_match(msm, len(should)) if msm is not None else (0 if must else 1)
            if sum(1 for q in should if matches(source, q)) < required:
                return False
        return True

    if name == "exists":
        if "field" not in body:
            raise _EngineError(400, "parsing_exception", "[exists] must be provided with a [field]")
        return bool(_values(source, body["field"]))

    if name == "geo_distance":
        limit = _parse_distance(body.get("distance"))
        fields = [k for k in body if k not in ("distance", "distance_type", "validation_method", "_name")]
        if len(fields) != 1:
            raise _EngineError(400, "parsing_exception", "[geo_distance] requires one field")
        center = _parse_location(body[fields[0]])
        if center is None:
            raise _EngineError(400, "parse_exception", "failed to parse geo point")
        return any(_haversine_m(loc, center) <= limit for loc in _doc_locations(source, fields[0]))

    field_name, spec = _single(body, name)
    doc_values = _values(source, field_name)

    if name == "term":
        value = _unwrap(spec, "value")
        return any(_term_equal(dv, value) for dv in doc_values)

    if name == "terms":
        return any(_term_equal(dv, v) for dv in doc_values for v in _clauses(spec))

    if name == "match":
        query_tokens = _tokens(_unwrap(spec))
        operator = spec.get("operator", "or") if isinstance(spec, dict) else "or"
        if not query_tokens:
            return False
        doc_tokens = {t for dv in doc_values for t in _tokens(dv)}
        if operator == "and":
            return all(t in doc_tokens for t in query_tokens)
        return any(t in doc_tokens for t in query_tokens)

    if name == "match_phrase":
        run = _tokens(_unwrap(spec))
        return bool(run) and any(_contains_run(_tokens(dv), run) for dv in doc_values)

    if name == "match_phrase_prefix":
        run = _tokens(_unwrap(spec))
        if not run:
            return False
        head, last = run[:-1], run[-1]
        for dv in doc_values:
            tokens = _tokens(dv)
            for i in range(len(tokens) - len(head)):
                if tokens[i:i + len(head)] == head and tokens[i + len(head)].startswith(last):
                    return True
        return False

    if name == "prefix":
        prefix = _as_text(_unwrap(spec, "value"))
        return any(
            _as_text(dv).startswith(prefix) or any(t.startswith(prefix) for t in _tokens(dv))
            for dv in doc_values
        )

    if name == "wildcard":
        rx = _wildcard_regex(_as_text(_unwrap(spec, "value")))
        return any(
            rx.fullmatch(_as_text(dv)) or any(rx.fullmatch(t) for t in _tokens(dv))
            for dv in doc_values
        )

    if name == "regexp":
        rx = _compile(_as_text(_unwrap(spec, "value")))
        return any(
            rx.fullmatch(_as_text(dv)) or any(rx.fullmatch(t) for t in _tokens(dv))
            for dv in doc_values
        )

    if name == "range":
        return any(_in_range(dv, spec) for dv in doc_values)

    raise _EngineError(400, "parsing_exception", f"no [query] registered for [{name}]")


# ============================================================================
# Engine
# ============================================================================

class InMemoryEngine(httpx.AsyncBaseTransport):
    """In-memory stand-in for an Elasticsearch node."""

    def __init__(self):
        self._indices: Dict[str, _Index] = {}
        self._scrolls: Dict[str, _Scroll] = {}

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        raw = await request.aread()
        path = request.url.raw_path.decode("ascii").split("?", 1)[0]
        segments = [unquote(s) for s in path.split("/") if s]
        params = dict(request.url.params)
        try:
            status, payload = self._dispatch(request.method, segments, params, raw)
        except _EngineError as e:
            status, payload = e.status, e.payload()
        except (KeyError, ValueError, TypeError) as e:
            err = _EngineError(400, "parsing_exception", f"malformed request: {e}")
            status, payload = err.status, err.payload()
        if request.method == "HEAD":
            return httpx.Response(status, request=request)
        return httpx.Response(status, json=payload, request=request)

    # ------------------------------------------------------------------
    # Routing
    # ------------------------------------------------------------------

    def _dispatch(
        self,
        method: str,
        segments: List[str],
        params: Dict[str, str],
        raw: bytes,
    ) -> Tuple[int, Dict[str, Any]]:
        if not segments:
            return 200, {
                "name": "in-memory",
                "cluster_name": "esrest",
                "version": {"number": "6.8.23"},
                "tagline": "You Know, for Search",
            }

        head = segments[0]
        if head == "_bulk" and method in ("POST", "PUT"):
            return self._bulk(raw)
        if segments[:2] == ["_search", "scroll"]:
            body = self._json(raw)
            if method == "DELETE":
                return self._clear_scroll(body)
            return self._scroll(body, params)
        if head == "_stats":
            return self._stats()
        if head.startswith("_"):
            raise _EngineError(400, "illegal_argument_exception", f"no handler found for uri [/{'/'.join(segments)}]")

        if len(segments) == 1:
            if method == "PUT":
                return self._create_index(head, self._json(raw))
            if method == "DELETE":
                return self._delete_index(head)
            if method == "HEAD":
                return (200 if head in self._indices else 404), {}
            if method == "GET":
                index = self._index(head)
                return 200, {head: {"settings": index.settings, "mappings": index.mappings}}

        action = segments[-1]
        if len(segments) == 2 and action == "_refresh":
            self._index(head)
            return 200, {"_shards": _SHARDS}
        if len(segments) == 3 and segments[1] == "_mapping" and method in ("PUT", "POST"):
            return self._put_mapping(head, segments[2], self._json(raw))

        if len(segments) in (2, 3) and action in ("_search", "_count", "_delete_by_query"):
            doc_type = segments[1] if len(segments) == 3 else None
            body = self._json(raw)
            if action == "_search":
                return self._search(head, doc_type, body, params)
            if action == "_count":
                return self._count(head, doc_type, body)
            return self._delete_by_query(head, doc_type, body)

        if len(segments) == 3:
            doc_type, doc_id = segments[1], segments[2]
            if method in ("PUT", "POST"):
                return self._put_doc(head, doc_type, doc_id, self._json(raw))
            if method == "GET":
                return self._get_doc(head, doc_type, doc_id)

        raise _EngineError(400, "illegal_argument_exception", f"no handler found for uri [/{'/'.join(segments)}] and method [{method}]")

    @staticmethod
    def _json(raw: bytes) -> Dict[str, Any]:
        if not raw:
            return {}
        try:
            body = json.loads(raw)
        except ValueError as e:
            raise _EngineError(400, "parse_exception", f"request body is not JSON: {e}")
        if not isinstance(body, dict):
            raise _EngineError(400, "parse_exception", "request body must be an object")
        return body

    def _index(self, name: str) -> _Index:
        index = self._indices.get(name)
        if index is None:
            raise _EngineError(404, "index_not_found_exception", "no such index", index=name)
        return index

    def _select(self, names: str, doc_type: Optional[str]) -> List[Tuple[_Index, str, _Doc]]:
        if names in ("_all", "*"):
            indices = list(self._indices.values())
        else:
            indices = [self._index(n) for n in names.split(",")]
        return [
            (index, doc_id, doc)
            for index in indices
            for doc_id, doc in index.docs.items()
            if doc_type is None or doc.type == doc_type
        ]

    # ------------------------------------------------------------------
    # Indices
    # ------------------------------------------------------------------

    def _create_index(self, name: str, body: Dict[str, Any]) -> Tuple[int, Dict[str, Any]]:
        if name != name.lower():
            raise _EngineError(400, "invalid_index_name_exception", "must be lowercase", index=name)
        if name in self._indices:
            existing = self._indices[name]
            raise _EngineError(
                400,
                "resource_already_exists_exception",
                f"index [{name}/{existing.uuid}] already exists",
                index_uuid=existing.uuid,
                index=name,
            )
        index = _Index(name=name, uuid=uuid.uuid4().hex[:22])
        index.settings = body.get("settings", {})
        for doc_type, mapping in (body.get("mappings") or {}).items():
            index.mappings[doc_type] = mapping
        self._indices[name] = index
        return 200, {"acknowledged": True, "shards_acknowledged": True, "index": name}

    def _delete_index(self, name: str) -> Tuple[int, Dict[str, Any]]:
        self._index(name)
        del self._indices[name]
        return 200, {"acknowledged": True}

    def _put_mapping(self, name: str, doc_type: str, body: Dict[str, Any]) -> Tuple[int, Dict[str, Any]]:
        index = self._index(name)
        # Accept both {"properties": ...} and {type: {"properties": ...}}
        if doc_type in body and len(body) == 1:
            body = body[doc_type]
        current = index.mappings.setdefault(doc_type, {})
        for key, value in body.items():
            if key == "properties":
                current.setdefault("properties", {}).update(value)
            else:
                current[key] = value
        return 200, {"acknowledged": True}

    def _stats(self) -> Tuple[int, Dict[str, Any]]:
        indices = {
            name: {
                "uuid": index.uuid,
                "primaries": {"docs": {"count": len(index.docs), "deleted": 0}},
                "total": {"docs": {"count": len(index.docs), "deleted": 0}},
            }
            for name, index in self._indices.items()
        }
        total = sum(len(index.docs) for index in self._indices.values())
        return 200, {
            "_shards": _SHARDS,
            "_all": {"primaries": {"docs": {"count": total, "deleted": 0}}},
            "indices": indices,
        }

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def _write_response(self, index: _Index, doc_type: str, doc_id: str, doc: _Doc, result: str) -> Dict[str, Any]:
        return {
            "_index": index.name,
            "_type": doc_type,
            "_id": doc_id,
            "_version": doc.version,
            "result": result,
            "_shards": {"total": 2, "successful": 1, "failed": 0},
        }

    def _ensure_index(self, name: str) -> _Index:
        if name not in self._indices:
            self._create_index(name, {})
        return self._indices[name]

    def _put_doc(self, name: str, doc_type: str, doc_id: str, source: Dict[str, Any]) -> Tuple[int, Dict[str, Any]]:
        index = self._ensure_index(name)
        existing = index.docs.get(doc_id)
        if existing is None:
            doc = _Doc(type=doc_type, source=source)
            index.docs[doc_id] = doc
            return 201, self._write_response(index, doc_type, doc_id, doc, "created")
        existing.source = source
        existing.type = doc_type
        existing.version += 1
        return 200, self._write_response(index, doc_type, doc_id, existing, "updated")

    def _get_doc(self, name: str, doc_type: str, doc_id: str) -> Tuple[int, Dict[str, Any]]:
        index = self._index(name)
        doc = index.docs.get(doc_id)
        if doc is None or doc.type != doc_type:
            return 404, {"_index": name, "_type": doc_type, "_id": doc_id, "found": False}
        return 200, {
            "_index": name,
            "_type": doc_type,
            "_id": doc_id,
            "_version": doc.version,
            "found": True,
            "_source": doc.source,
        }

    def _bulk(self, raw: bytes) -> Tuple[int, Dict[str, Any]]:
        lines = [line for line in raw.decode("utf-8").split("\n") if line.strip()]
        items: List[Dict[str, Any]] = []
        i = 0
        while i < len(lines):
            try:
                op, meta = _single(json.loads(lines[i]), "bulk")
            except ValueError as e:
                raise _EngineError(400, "illegal_argument_exception", f"Malformed action/metadata line [{i + 1}]: {e}")
            i += 1
            source: Dict[str, Any] = {}
            if op in ("index", "create", "update"):
                if i >= len(lines):
                    raise _EngineError(400, "action_request_validation_exception", "Validation Failed: 1: source is missing;")
                try:
                    source = json.loads(lines[i])
                except ValueError as e:
                    raise _EngineError(400, "mapper_parsing_exception", f"failed to parse source line [{i + 1}]: {e}")
                i += 1
            elif op != "delete":
                raise _EngineError(400, "illegal_argument_exception", f"Unknown bulk action [{op}]")
            if "_index" not in meta:
                raise _EngineError(400, "action_request_validation_exception", "Validation Failed: 1: index is missing;")
            items.append({op: self._bulk_item(op, meta, source)})

        errors = any("error" in info for item in items for info in item.values())
        return 200, {"took": 1, "errors": errors, "items": items}

    def _bulk_item(self, op: str, meta: Dict[str, Any], source: Dict[str, Any]) -> Dict[str, Any]:
        name = meta["_index"]
        doc_type = meta.get("_type", "_doc")
        doc_id = str(meta.get("_id") or uuid.uuid4().hex)
        index = self._ensure_index(name)
        existing = index.docs.get(doc_id)
        base = {"_index": name, "_type": doc_type, "_id": doc_id}

        def failure(status: int, error_type: str, reason: str) -> Dict[str, Any]:
            return {**base, "status": status, "error": {"type": error_type, "reason": reason, "index": name}}

        if op == "create":
            if existing is not None:
                return failure(
                    409,
                    "version_conflict_engine_exception",
                    f"[{doc_type}][{doc_id}]: version conflict, document already exists (current version [{existing.version}])",
                )
            status, body = self._put_doc(name, doc_type, doc_id, source)
            return {**body, "status": status}

        if op == "index":
            status, body = self._put_doc(name, doc_type, doc_id, source)
            return {**body, "status": status}

        if op == "delete":
            if existing is None:
                return {**base, "_version": 1, "result": "not_found", "status": 404}
            del index.docs[doc_id]
            return {**base, "_version": existing.version + 1, "result": "deleted", "status": 200}

        # update
        partial = source.get("doc")
        if existing is None:
            if source.get("doc_as_upsert") and partial is not None:
                upsert = partial
            elif "upsert" in source:
                upsert = source["upsert"]
            else:
                return failure(404, "document_missing_exception", f"[{doc_type}][{doc_id}]: document missing")
            status, body = self._put_doc(name, doc_type, doc_id, dict(upsert))
            return {**body, "status": status}

        merged = {**existing.source, **(partial or {})}
        if merged == existing.source:
            return {**self._write_response(index, doc_type, doc_id, existing, "noop"), "status": 200}
        existing.source = merged
        existing.version += 1
        return {**self._write_response(index, doc_type, doc_id, existing, "updated"), "status": 200}

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def _matching(self, names: str, doc_type: Optional[str], body: Dict[str, Any]) -> List[Tuple[_Index, str, _Doc]]:
        query = body.get("query") or {"match_all": {}}
        return [entry for entry in self._select(names, doc_type) if matches(entry[2].source, query)]

    @staticmethod
    def _project(source: Dict[str, Any], spec: Any) -> Optional[Dict[str, Any]]:
        if spec is None or spec is True:
            return source
        if spec is False:
            return None
        if isinstance(spec, dict):
            spec = spec.get("includes", spec.get("include", []))
        fields = [spec] if isinstance(spec, str) else list(spec)
        return {k: v for k, v in source.items() if k in fields}

    def _hit(self, entry: Tuple[_Index, str, _Doc], source_spec: Any) -> Dict[str, Any]:
        index, doc_id, doc = entry
        hit: Dict[str, Any] = {
            "_index": index.name,
            "_type": doc.type,
            "_id": doc_id,
            "_score": 1.0,
        }
        projected = self._project(doc.source, source_spec)
        if projected is not None:
            hit["_source"] = projected
        return hit

    @staticmethod
    def _sort_key(clause: Any) -> Tuple[Callable[[Dict[str, Any]], Any], bool]:
        if isinstance(clause, str):
            clause = {clause: {"order": "asc"}}
        name, spec = _single(clause, "sort")

        if name == "_geo_distance":
            order = spec.get("order", "asc")
            fields = [k for k in spec if k not in ("order", "unit", "distance_type", "mode")]
            center = _parse_location(spec[fields[0]])
            path = fields[0]

            def distance(source: Dict[str, Any]) -> Any:
                locations = _doc_locations(source, path)
                if not locations or center is None:
                    return None
                return min(_haversine_m(loc, center) for loc in locations)

            return distance, order == "desc"

        order = spec.get("order", "asc") if isinstance(spec, dict) else spec

        def value(source: Dict[str, Any]) -> Any:
            values = _values(source, name)
            if not values:
                return None
            v = values[0]
            return (0, float(v), "") if _is_number(v) else (1, 0.0, _as_text(v))

        return value, order == "desc"

    def _sorted(self, entries: List[Tuple[_Index, str, _Doc]], sort: Any) -> List[Tuple[_Index, str, _Doc]]:
        for clause in reversed(_clauses(sort)):
            key, descending = self._sort_key(clause)
            keyed = [(key(e[2].source), e) for e in entries]
            present = [pair for pair in keyed if pair[0] is not None]
            missing = [pair[1] for pair in keyed if pair[0] is None]
            present.sort(key=lambda pair: pair[0], reverse=descending)
            entries = [pair[1] for pair in present] + missing
        return entries

    def _search(
        self,
        names: str,
        doc_type: Optional[str],
        body: Dict[str, Any],
        params: Dict[str, str],
    ) -> Tuple[int, Dict[str, Any]]:
        entries = self._sorted(self._matching(names, doc_type, body), body.get("sort"))
        start = int(body.get("from", params.get("from", 0)))
        size = int(body.get("size", params.get("size", 10)))
        source_spec = body.get("_source")

        hits = [self._hit(e, source_spec) for e in entries[start:]]
        page, rest = hits[:size], hits[size:]

        response: Dict[str, Any] = {
            "took": 1,
            "timed_out": False,
            "_shards": _SHARDS,
            "hits": {
                "total": len(entries),
                "max_score": 1.0 if page else None,
                "hits": page,
            },
        }

        if "scroll" in params:
            scroll_id = uuid.uuid4().hex
            self._scrolls[scroll_id] = _Scroll(remaining=rest, size=max(size, 1), total=len(entries))
            response["_scroll_id"] = scroll_id

        aggs = body.get("aggs", body.get("aggregations"))
        if aggs:
            response["aggregations"] = self._aggregate([e[2].source for e in entries], aggs)

        if "suggest" in body:
            response["suggest"] = self._suggest(names, body["suggest"])

        return 200, response

    def _count(self, names: str, doc_type: Optional[str], body: Dict[str, Any]) -> Tuple[int, Dict[str, Any]]:
        return 200, {"count": len(self._matching(names, doc_type, body)), "_shards": _SHARDS}

    def _delete_by_query(self, names: str, doc_type: Optional[str], body: Dict[str, Any]) -> Tuple[int, Dict[str, Any]]:
        entries = self._matching(names, doc_type, body)
        for index, doc_id, _ in entries:
            del index.docs[doc_id]
        return 200, {
            "took": 1,
            "timed_out": False,
            "total": len(entries),
            "deleted": len(entries),
            "batches": 1,
            "version_conflicts": 0,
            "noops": 0,
            "failures": [],
        }

    # ------------------------------------------------------------------
    # Scroll
    # ------------------------------------------------------------------

    @staticmethod
    def _missing_scroll(scroll_id: Any) -> _EngineError:
        return _EngineError(404, "search_context_missing_exception", f"No search context found for id [{scroll_id}]")

    def _scroll(self, body: Dict[str, Any], params: Dict[str, str]) -> Tuple[int, Dict[str, Any]]:
        scroll_id = body.get("scroll_id", params.get("scroll_id"))
        state = self._scrolls.get(scroll_id) if isinstance(scroll_id, str) else None
        if state is None:
            raise self._missing_scroll(scroll_id)

        page, state.remaining = state.remaining[:state.size], state.remaining[state.size:]
        if not page:
            del self._scrolls[scroll_id]
        return 200, {
            "_scroll_id": scroll_id,
            "took": 1,
            "timed_out": False,
            "_shards": _SHARDS,
            "hits": {
                "total": state.total,
                "max_score": 1.0 if page else None,
                "hits": page,
            },
        }

    def _clear_scroll(self, body: Dict[str, Any]) -> Tuple[int, Dict[str, Any]]:
        ids = _clauses(body.get("scroll_id"))
        freed = 0
        for scroll_id in ids:
            if self._scrolls.pop(scroll_id, None) is not None:
                freed += 1
        return (200 if freed else 404), {"succeeded": True, "num_freed": freed}

    # ------------------------------------------------------------------
    # Aggregations and suggestions
    # ------------------------------------------------------------------

    def _aggregate(self, sources: List[Dict[str, Any]], aggs: Dict[str, Any]) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        for name, spec in aggs.items():
            if "terms" not in spec:
                kinds = [k for k in spec if k not in ("aggs", "aggregations")]
                raise _EngineError(400, "parsing_exception", f"Unsupported aggregation {kinds}")
            sub = spec.get("aggs", spec.get("aggregations"))
            out[name] = self._terms(sources, spec["terms"], sub)
        return out

    def _terms(self, sources: List[Dict[str, Any]], terms: Dict[str, Any], sub: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        include = _compile(terms["include"]) if terms.get("include") else None
        exclude = _compile(terms["exclude"]) if terms.get("exclude") else None

        grouped: Dict[Any, List[Dict[str, Any]]] = {}
        for source in sources:
            seen = set()
            for value in _values(source, terms["field"]):
                key = _as_text(value) if isinstance(value, bool) else value
                if key in seen:
                    continue
                seen.add(key)
                text = _as_text(key)
                if include is not None and not include.fullmatch(text):
                    continue
                if exclude is not None and exclude.fullmatch(text):
                    continue
                grouped.setdefault(key, []).append(source)

        order = terms.get("order") or {"_count": "desc"}
        ((order_by, direction),) = order.items() if isinstance(order, dict) else (("_count", "desc"),)

        def by_count(item: Tuple[Any, List[Any]]) -> Any:
            return (-len(item[1]) if direction == "desc" else len(item[1]), _as_text(item[0]))

        ordered = sorted(grouped.items(), key=by_count)
        if order_by == "_key":
            ordered = sorted(grouped.items(), key=lambda item: _as_text(item[0]), reverse=direction == "desc")

        size = int(terms.get("size", 10))
        shown, others = ordered[:size], ordered[size:]

        buckets = []
        for key, members in shown:
            bucket: Dict[str, Any] = {"key": key, "doc_count": len(members)}
            if sub:
                bucket.update(self._aggregate(members, sub))
            buckets.append(bucket)

        return {
            "doc_count_error_upper_bound": 0,
            "sum_other_doc_count": sum(len(members) for _, members in others),
            "buckets": buckets,
        }

    def _completion_contexts(self, names: str, field_name: str) -> Dict[str, str]:
        """Context name -> source path, from the completion field's mapping."""
        found: Dict[str, str] = {}
        indices = self._indices.values() if names in ("_all", "*") else [self._index(n) for n in names.split(",")]
        for index in indices:
            for mapping in index.mappings.values():
                spec = (mapping.get("properties") or {}).get(field_name) or {}
                for ctx in spec.get("contexts") or []:
                    if "path" in ctx:
                        found[ctx["name"]] = ctx["path"]
        return found

    def _suggest(self, names: str, suggest: Dict[str, Any]) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        for name, spec in suggest.items():
            if name == "text":
                continue
            completion = spec.get("completion")
            if completion is None:
                raise _EngineError(400, "parsing_exception", f"Unsupported suggester in [{name}]")
            prefix = spec.get("prefix", spec.get("text", suggest.get("text", "")))
            field_name = completion["field"]
            size = int(completion.get("size", 5))
            wanted: Dict[str, Iterable[Any]] = completion.get("contexts") or {}
            paths = self._completion_contexts(names, field_name)

            options: List[Dict[str, Any]] = []
            for index, doc_id, doc in self._select(names, None):
                value = doc.source.get(field_name)
                if value is None:
                    continue
                inputs = value.get("input", []) if isinstance(value, dict) else value
                doc_contexts = value.get("contexts", {}) if isinstance(value, dict) else {}

                if not self._contexts_match(doc.source, doc_contexts, paths, wanted):
                    continue

                for text in _flatten(inputs):
                    if _as_text(text).lower().startswith(prefix.lower()):
                        options.append({
                            "text": text,
                            "_index": index.name,
                            "_type": doc.type,
                            "_id": doc_id,
                            "_score": 1.0,
                            "_source": doc.source,
                        })

            out[name] = [{
                "text": prefix,
                "offset": 0,
                "length": len(prefix),
                "options": options[:size],
            }]
        return out

    @staticmethod
    def _contexts_match(
        source: Dict[str, Any],
        doc_contexts: Dict[str, Any],
        paths: Dict[str, str],
        wanted: Dict[str, Iterable[Any]],
    ) -> bool:
        for ctx_name, values in wanted.items():
            if ctx_name in doc_contexts:
                have = _flatten(doc_contexts[ctx_name])
            elif ctx_name in paths:
                have = _values(source, paths[ctx_name])
            else:
                return False
            allowed = {_as_text(v) for v in _flatten(values)}
            if not any(_as_text(h) in allowed for h in have):
                return False
        return True
