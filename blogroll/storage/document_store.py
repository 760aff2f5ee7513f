"""Document store over SQLite.

Each collection is a table of JSON documents (``id TEXT PRIMARY KEY, doc
TEXT``). Filters use a Mongo-style subset compiled to ``json_extract``
expressions:

    {"feed_url": url, "status": {"$ne": "deleted"}}
    {"published": {"$lt": cutoff}}
    {"mirror_feed_id": {"$nin": ids}, "$or": [{...}, {...}]}

Supported operators: equality, ``$ne``, ``$in``, ``$nin``, ``$lt``, ``$lte``,
``$gt``, ``$gte``, ``$exists`` and ``$or``. As in MongoDB, ``$ne`` and
``$nin`` also match documents where the field is missing.

All writes are single-document read-modify-write cycles serialized by one
store-wide lock. There are no multi-document transactions; callers that read
before writing hold ``reconcile_lock`` around the whole sequence.
"""

import asyncio
import json
import re
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import aiosqlite


Filter = Dict[str, Any]
Sort = Sequence[Tuple[str, int]]

_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_FIELD_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)*$")

_COMPARISONS = {"$lt": "<", "$lte": "<=", "$gt": ">", "$gte": ">="}


@dataclass
class UpdateResult:
    matched_count: int = 0
    modified_count: int = 0
    upserted_id: Optional[str] = None


def new_id() -> str:
    return uuid.uuid4().hex


def _check_name(name: str) -> str:
    if not _NAME_RE.match(name):
        raise ValueError(f"Invalid collection name: {name!r}")
    return name


def _json_path(field: str) -> str:
    if not _FIELD_RE.match(field):
        raise ValueError(f"Invalid field name: {field!r}")
    return "$." + field


def _expr(field: str) -> str:
    if field == "_id":
        return "id"
    return f"json_extract(doc, '{_json_path(field)}')"


def _param(value: Any) -> Any:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (dict, list, tuple)):
        raise ValueError(f"Cannot compare against a structured value: {value!r}")
    return value


def _is_operator_dict(value: Any) -> bool:
    return isinstance(value, dict) and bool(value) and all(k.startswith("$") for k in value)


def _compile_operator(field: str, op: str, value: Any) -> Tuple[str, List[Any]]:
    expr = _expr(field)

    if op == "$ne":
        if value is None:
            return f"{expr} IS NOT NULL", []
        return f"({expr} IS NULL OR {expr} != ?)", [_param(value)]

    if op in _COMPARISONS:
        return f"{expr} {_COMPARISONS[op]} ?", [_param(value)]

    if op in ("$in", "$nin"):
        values = list(value)
        has_null = any(v is None for v in values)
        params = [_param(v) for v in values if v is not None]
        placeholders = ",".join("?" * len(params))
        if op == "$in":
            parts = []
            if params:
                parts.append(f"{expr} IN ({placeholders})")
            if has_null:
                parts.append(f"{expr} IS NULL")
            return ("(" + " OR ".join(parts) + ")") if parts else "0", params
        if not params:
            return (f"{expr} IS NOT NULL" if has_null else "1"), []
        if has_null:
            return f"({expr} IS NOT NULL AND {expr} NOT IN ({placeholders}))", params
        return f"({expr} IS NULL OR {expr} NOT IN ({placeholders}))", params

    if op == "$exists":
        if field == "_id":
            return ("1" if value else "0"), []
        check = "IS NOT NULL" if value else "IS NULL"
        return f"json_type(doc, '{_json_path(field)}') {check}", []

    raise ValueError(f"Unsupported filter operator: {op}")


def compile_filter(filter: Optional[Filter]) -> Tuple[str, List[Any]]:
    """Compile a filter document into a SQL WHERE clause and parameters."""
    if not filter:
        return "1", []

    clauses: List[str] = []
    params: List[Any] = []

    for key, condition in filter.items():
        if key == "$or":
            parts = []
            for sub in condition:
                sql, sub_params = compile_filter(sub)
                parts.append(f"({sql})")
                params.extend(sub_params)
            clauses.append("(" + " OR ".join(parts) + ")" if parts else "0")
        elif _is_operator_dict(condition):
            for op, value in condition.items():
                sql, op_params = _compile_operator(key, op, value)
                clauses.append(sql)
                params.extend(op_params)
        elif condition is None:
            clauses.append(f"{_expr(key)} IS NULL")
        else:
            clauses.append(f"{_expr(key)} = ?")
            params.append(_param(condition))

    return " AND ".join(clauses), params


def _compile_sort(sort: Optional[Sort]) -> str:
    terms = [f"{_expr(field)} {'DESC' if direction < 0 else 'ASC'}" for field, direction in sort or ()]
    terms.append("rowid ASC")
    return ", ".join(terms)


def _insert_fields(filter: Filter) -> Dict[str, Any]:
    """Plain equality fields of a filter, copied into upserted documents."""
    return {
        key: value
        for key, value in filter.items()
        if not key.startswith("$") and not isinstance(value, dict)
    }


class Collection:
    """A named collection of JSON documents."""

    def __init__(self, store: "DocumentStore", name: str):
        self._store = store
        self.name = _check_name(name)

    @property
    def _db(self) -> aiosqlite.Connection:
        return self._store.connection

    async def _exists(self) -> bool:
        return await self._store.has_collection(self.name)

    async def _find_rows(
        self,
        filter: Optional[Filter],
        sort: Optional[Sort] = None,
        limit: Optional[int] = None,
        skip: int = 0,
    ) -> List[Tuple[str, Dict[str, Any]]]:
        if not await self._exists():
            return []

        where, params = compile_filter(filter)
        query = f'SELECT id, doc FROM "{self.name}" WHERE {where} ORDER BY {_compile_sort(sort)}'
        if limit is not None or skip:
            query += " LIMIT ? OFFSET ?"
            params = params + [limit if limit is not None else -1, skip]

        cursor = await self._db.execute(query, params)
        rows = await cursor.fetchall()
        await cursor.close()
        return [(row[0], json.loads(row[1])) for row in rows]

    async def _write(self, doc_id: str, doc: Dict[str, Any], insert: bool = False) -> None:
        payload = json.dumps(doc)
        if insert:
            await self._db.execute(
                f'INSERT INTO "{self.name}" (id, doc) VALUES (?, ?)', (doc_id, payload)
            )
        else:
            await self._db.execute(
                f'UPDATE "{self.name}" SET doc = ? WHERE id = ?', (payload, doc_id)
            )

    async def find(
        self,
        filter: Optional[Filter] = None,
        sort: Optional[Sort] = None,
        limit: Optional[int] = None,
        skip: int = 0,
    ) -> List[Dict[str, Any]]:
        """Return matching documents, optionally sorted and paginated."""
        return [doc for _, doc in await self._find_rows(filter, sort, limit, skip)]

    async def find_one(
        self, filter: Optional[Filter] = None, sort: Optional[Sort] = None
    ) -> Optional[Dict[str, Any]]:
        rows = await self._find_rows(filter, sort, limit=1)
        return rows[0][1] if rows else None

    async def count(self, filter: Optional[Filter] = None) -> int:
        if not await self._exists():
            return 0
        where, params = compile_filter(filter)
        cursor = await self._db.execute(f'SELECT COUNT(*) FROM "{self.name}" WHERE {where}', params)
        row = await cursor.fetchone()
        await cursor.close()
        return row[0]

    async def distinct_counts(
        self, field: str, filter: Optional[Filter] = None
    ) -> List[Tuple[Any, int]]:
        """Group matching documents by ``field``; returns (value, count) sorted by value."""
        if not await self._exists():
            return []
        expr = _expr(field)
        where, params = compile_filter(filter)
        cursor = await self._db.execute(
            f'SELECT {expr} AS value, COUNT(*) FROM "{self.name}" WHERE {where} '
            f"GROUP BY value ORDER BY value",
            params,
        )
        rows = await cursor.fetchall()
        await cursor.close()
        return [(row[0], row[1]) for row in rows]

    async def insert_one(self, doc: Dict[str, Any]) -> str:
        """Insert a document, assigning ``_id`` when missing. Returns the id."""
        async with self._store.write_lock:
            await self._store.ensure_collection(self.name)
            doc = dict(doc)
            doc_id = doc.get("_id") or new_id()
            doc["_id"] = doc_id
            await self._write(doc_id, doc, insert=True)
            await self._db.commit()
            return doc_id

    async def update_one(
        self,
        filter: Filter,
        set_fields: Optional[Dict[str, Any]] = None,
        set_on_insert: Optional[Dict[str, Any]] = None,
        upsert: bool = False,
    ) -> UpdateResult:
        """Update the first matching document, or insert one when ``upsert``.

        ``set_fields`` is applied on update and insert; ``set_on_insert`` only
        on insert. An upserted document also receives the filter's plain
        equality fields.
        """
        set_fields = set_fields or {}
        async with self._store.write_lock:
            rows = await self._find_rows(filter, limit=1)
            if rows:
                doc_id, doc = rows[0]
                updated = {**doc, **set_fields}
                if updated == doc:
                    return UpdateResult(matched_count=1)
                await self._write(doc_id, updated)
                await self._db.commit()
                return UpdateResult(matched_count=1, modified_count=1)

            if not upsert:
                return UpdateResult()

            await self._store.ensure_collection(self.name)
            doc = _insert_fields(filter)
            doc.update(set_on_insert or {})
            doc.update(set_fields)
            doc_id = doc.get("_id") or new_id()
            doc["_id"] = doc_id
            await self._write(doc_id, doc, insert=True)
            await self._db.commit()
            return UpdateResult(upserted_id=doc_id)

    async def update_many(self, filter: Filter, set_fields: Dict[str, Any]) -> UpdateResult:
        async with self._store.write_lock:
            rows = await self._find_rows(filter)
            modified = 0
            for doc_id, doc in rows:
                updated = {**doc, **set_fields}
                if updated != doc:
                    await self._write(doc_id, updated)
                    modified += 1
            if modified:
                await self._db.commit()
            return UpdateResult(matched_count=len(rows), modified_count=modified)

    async def delete_many(self, filter: Optional[Filter] = None) -> int:
        """Delete matching documents. Returns the number deleted."""
        async with self._store.write_lock:
            if not await self._exists():
                return 0
            where, params = compile_filter(filter)
            cursor = await self._db.execute(f'DELETE FROM "{self.name}" WHERE {where}', params)
            deleted = cursor.rowcount
            await cursor.close()
            await self._db.commit()
            return deleted

    async def delete_one(self, filter: Filter) -> int:
        async with self._store.write_lock:
            rows = await self._find_rows(filter, limit=1)
            if not rows:
                return 0
            await self._db.execute(f'DELETE FROM "{self.name}" WHERE id = ?', (rows[0][0],))
            await self._db.commit()
            return 1


class DocumentStore:
    """Collection-style access to an aiosqlite connection."""

    def __init__(self, connection: aiosqlite.Connection):
        self.connection = connection
        self.write_lock = asyncio.Lock()
        # Held across multi-step check-then-write reconciliations; never taken inside write_lock.
        self.reconcile_lock = asyncio.Lock()
        self._existing: set = set()

    @classmethod
    async def open(cls, path: Union[str, Path]) -> "DocumentStore":
        """Open (creating if needed) a store at ``path`` or ``:memory:``."""
        if str(path) != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)
        connection = await aiosqlite.connect(str(path))
        return cls(connection)

    def collection(self, name: str) -> Collection:
        return Collection(self, name)

    def __getitem__(self, name: str) -> Collection:
        return self.collection(name)

    async def has_collection(self, name: str) -> bool:
        if name in self._existing:
            return True
        cursor = await self.connection.execute(
            "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?", (name,)
        )
        row = await cursor.fetchone()
        await cursor.close()
        if row is not None:
            self._existing.add(name)
        return row is not None

    async def ensure_collection(self, name: str) -> None:
        _check_name(name)
        if name in self._existing:
            return
        await self.connection.execute(
            f'CREATE TABLE IF NOT EXISTS "{name}" (id TEXT PRIMARY KEY, doc TEXT NOT NULL)'
        )
        await self.connection.commit()
        self._existing.add(name)

    async def create_index(self, name: str, fields: Sequence[str]) -> None:
        """Create an expression index on ``fields`` of collection ``name``."""
        await self.ensure_collection(name)
        index_name = f"idx_{name}_" + "_".join(f.replace(".", "_") for f in fields)
        columns = ", ".join(_expr(f) for f in fields)
        await self.connection.execute(
            f'CREATE INDEX IF NOT EXISTS "{index_name}" ON "{name}" ({columns})'
        )
        await self.connection.commit()

    async def close(self) -> None:
        await self.connection.close()
