"""Typed filter rows and the criteria list sent to ``{resource}/filter``.

Provides:
- ``FieldType`` / ``Operator`` — field kinds and the operators they accept
- ``FieldMeta`` / ``FilterMeta`` — per-resource field metadata
- ``FilterCriterion`` / ``FilterRequest`` — the wire shape
- ``FilterCriteriaBuilder`` — an editable, ordered list of filter rows

The builder never coerces values (a field type owns its own parsing) and
never adds access restrictions. Restrictions are merged by the caller with
:func:`portalaccess.permissions.scopes.merge_criteria`.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Iterable, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..exceptions import InvalidFilterError


class FieldType(str, Enum):
    """Kinds of filterable fields."""

    STRING = "string"
    NUMBER = "number"
    DATE = "date"
    DATETIME = "datetime"
    BOOLEAN = "boolean"
    ENUM = "enum"


class Operator(str, Enum):
    """Comparison operators understood by the record store."""

    LIKE = "LIKE"
    EQUAL = "EQUAL"
    STARTS_WITH = "STARTS_WITH"
    ENDS_WITH = "ENDS_WITH"
    IN = "IN"
    GT = "GT"
    GTE = "GTE"
    LT = "LT"
    LTE = "LTE"
    BETWEEN = "BETWEEN"
    BEFORE = "BEFORE"
    AFTER = "AFTER"


# Operators offered when field metadata does not override them
DEFAULT_OPERATORS: dict[FieldType, tuple[Operator, ...]] = {
    FieldType.STRING: (Operator.LIKE, Operator.EQUAL, Operator.STARTS_WITH, Operator.ENDS_WITH, Operator.IN),
    FieldType.NUMBER: (
        Operator.EQUAL,
        Operator.GT,
        Operator.GTE,
        Operator.LT,
        Operator.LTE,
        Operator.BETWEEN,
        Operator.IN,
    ),
    FieldType.DATE: (Operator.EQUAL, Operator.BEFORE, Operator.AFTER, Operator.BETWEEN),
    FieldType.DATETIME: (Operator.EQUAL, Operator.BEFORE, Operator.AFTER, Operator.BETWEEN),
    FieldType.BOOLEAN: (Operator.EQUAL,),
    FieldType.ENUM: (Operator.EQUAL, Operator.IN),
}


def _enum_value(v: Any) -> Any:
    return v.value if isinstance(v, Enum) else v


# ── Field metadata ─────────────────────────────────────


class EnumOption(BaseModel):
    """One selectable value of an enum field."""

    value: str
    label: Optional[str] = None

    @property
    def display(self) -> str:
        return self.label or self.value


class FieldMeta(BaseModel):
    """Metadata of one filterable field."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str
    label: Optional[str] = None
    type: FieldType = FieldType.STRING
    sortable: bool = True
    filterable: bool = True
    enum_values: list[EnumOption] = Field(default_factory=list, alias="enumValues")
    operators: Optional[list[Operator]] = None

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().lower() or FieldType.STRING
        return FieldType.STRING if v is None else v

    @field_validator("enum_values", mode="before")
    @classmethod
    def normalize_enum_values(cls, v: Any) -> Any:
        if v is None:
            return []
        return [{"value": str(opt)} if not isinstance(opt, (dict, EnumOption)) else opt for opt in v]

    def allowed_operators(self) -> tuple[Operator, ...]:
        """Operators for this field: the metadata override, or the type default."""
        if self.operators:
            return tuple(self.operators)
        return DEFAULT_OPERATORS[self.type]

    def default_operator(self) -> Operator:
        allowed = self.allowed_operators()
        return Operator.EQUAL if Operator.EQUAL in allowed else allowed[0]


class FilterMeta(BaseModel):
    """Filterable fields of one resource, as served by ``{resource}/meta``."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    fields: list[FieldMeta] = Field(default_factory=list)
    default_page_size: Optional[int] = Field(default=None, alias="defaultPageSize")
    sortable: Optional[list[str]] = None

    @classmethod
    def normalize(cls, raw: Mapping[str, Any] | None) -> "FilterMeta":
        """Build metadata from a loosely shaped payload.

        Accepts ``fields`` or ``columns``; a column's name is taken from
        ``name``, ``field``, ``accessorKey``, ``key`` or ``header`` and made
        unique. Type defaults to string.
        """
        if not raw:
            return cls()

        cols = raw.get("fields") or raw.get("columns") or []
        seen: set[str] = set()
        fields = []
        for idx, col in enumerate(cols):
            base = next(
                (col[k] for k in ("name", "field", "accessorKey", "key", "header") if col.get(k) is not None),
                None,
            )
            base = str(base).strip() if base is not None else ""
            base = base or f"col_{idx}"
            name, n = base, idx
            while name in seen:
                name = f"{base}__{n}"
                n += 1
            seen.add(name)

            fields.append(
                FieldMeta(
                    name=name,
                    label=col.get("label") or col.get("header") or name,
                    type=col.get("type") or FieldType.STRING,
                    sortable=col.get("sortable", True),
                    filterable=col.get("filterable", True),
                    enumValues=col.get("enumValues") or col.get("values") or [],
                    operators=col.get("operators") or None,
                )
            )

        return cls(
            fields=fields,
            defaultPageSize=raw.get("defaultPageSize"),
            sortable=raw.get("sortable"),
        )

    def field(self, name: str) -> FieldMeta | None:
        return next((f for f in self.fields if f.name == name), None)


# ── Wire shape ─────────────────────────────────────────


class FilterCriterion(BaseModel):
    """One clause of a filter request.

    ``value2`` is only set for range operators; ``data_type`` lets the record
    store convert values (e.g. ``"UUID"``).
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    field: str
    operator: str
    value: Any = None
    value2: Any = None
    data_type: Optional[str] = Field(default=None, alias="dataType")

    @field_validator("operator", mode="before")
    @classmethod
    def normalize_operator(cls, v: Any) -> Any:
        return _enum_value(v)

    def to_wire(self) -> dict[str, Any]:
        wire: dict[str, Any] = {"field": self.field, "operator": self.operator, "value": self.value}
        if self.value2 is not None:
            wire["value2"] = self.value2
        if self.data_type is not None:
            wire["dataType"] = self.data_type
        return wire


class FilterRequest(BaseModel):
    """Body of ``POST {resource}/filter``."""

    criteria: list[FilterCriterion] = Field(default_factory=list)

    def to_wire(self) -> dict[str, Any]:
        return {"criteria": [c.to_wire() for c in self.criteria]}


# ── Rows ───────────────────────────────────────────────


@dataclass(frozen=True)
class FilterRow:
    """A user-entered filter row. Any part may still be missing."""

    field: Optional[str] = None
    operator: Optional[str] = None
    value: Any = None
    value2: Any = None
    data_type: Optional[str] = None


def parse_in_values(raw: Any) -> list[Any]:
    """Split an ``IN`` value into discrete values.

    Strings are split on commas and trimmed; empty entries are dropped.
    Sequences (e.g. a multi-select) pass through as a list.
    """
    if raw is None:
        return []
    if isinstance(raw, str):
        return [part.strip() for part in raw.split(",") if part.strip()]
    if isinstance(raw, (list, tuple, set, frozenset)):
        return list(raw)
    return [raw]


def _row_from_mapping(row: Mapping[str, Any]) -> FilterRow:
    return FilterRow(
        field=row.get("field") or row.get("key"),
        operator=_enum_value(row.get("operator") or row.get("op")),
        value=row.get("value"),
        value2=row.get("value2"),
        data_type=row.get("dataType") or row.get("data_type"),
    )


def build_filter_request(rows: Iterable[FilterRow | Mapping[str, Any]] | None) -> FilterRequest:
    """Turn rows into a FilterRequest.

    Rows missing a field or an operator are dropped. Values are passed
    through unmodified. Mappings may spell keys ``field``/``key`` and
    ``operator``/``op``.
    """
    criteria = []
    for row in rows or ():
        if isinstance(row, Mapping):
            row = _row_from_mapping(row)
        if not row.field or not row.operator:
            continue
        criteria.append(
            FilterCriterion(
                field=row.field,
                operator=row.operator,
                value=row.value,
                value2=row.value2,
                dataType=row.data_type,
            )
        )
    return FilterRequest(criteria=criteria)


class FilterCriteriaBuilder:
    """Ordered, editable list of filter rows for one resource.

    Example::

        builder = FilterCriteriaBuilder(meta)
        i = builder.add_row("age", Operator.BETWEEN)
        builder.update_row(i, value=18, value2=65)
        builder.validate()
        request = builder.build()
    """

    def __init__(
        self,
        meta: FilterMeta | Mapping[str, Any] | None = None,
        rows: Iterable[FilterRow | Mapping[str, Any]] = (),
    ) -> None:
        if meta is None or isinstance(meta, FilterMeta):
            self.meta = meta or FilterMeta()
        else:
            self.meta = FilterMeta.normalize(meta)
        self._rows: list[FilterRow] = [_row_from_mapping(r) if isinstance(r, Mapping) else r for r in rows]

    @property
    def rows(self) -> tuple[FilterRow, ...]:
        return tuple(self._rows)

    def __len__(self) -> int:
        return len(self._rows)

    def _field_meta(self, name: Optional[str]) -> FieldMeta | None:
        return self.meta.field(name) if name else None

    def _check_operator(self, field_name: Optional[str], operator: Optional[str]) -> None:
        fmeta = self._field_meta(field_name)
        if fmeta is None or operator is None:
            return
        if operator not in {op.value for op in fmeta.allowed_operators()}:
            raise InvalidFilterError(
                f"Operator {operator} is not allowed for field '{fmeta.name}' ({fmeta.type.value})",
                field=fmeta.name,
                operator=operator,
            )

    def add_row(
        self,
        field: Optional[str] = None,
        operator: Operator | str | None = None,
        value: Any = None,
        value2: Any = None,
    ) -> int:
        """Append a row and return its index.

        Without a field, the first field of the metadata is used; without an
        operator, the field's default operator is used.
        """
        if field is None and self.meta.fields:
            field = self.meta.fields[0].name
        operator = _enum_value(operator)
        fmeta = self._field_meta(field)
        if operator is None and fmeta is not None:
            operator = fmeta.default_operator().value
        self._check_operator(field, operator)
        if operator == Operator.IN.value and value is not None:
            value = parse_in_values(value)
        self._rows.append(FilterRow(field=field, operator=operator, value=value, value2=value2))
        return len(self._rows) - 1

    def update_row(self, index: int, **patch: Any) -> FilterRow:
        """Replace parts of a row (``field``, ``operator``, ``value``, ``value2``, ``data_type``)."""
        unknown = set(patch) - {"field", "operator", "value", "value2", "data_type"}
        if unknown:
            raise InvalidFilterError(f"Unknown filter row attributes: {sorted(unknown)}")
        if "operator" in patch:
            patch["operator"] = _enum_value(patch["operator"])

        row = replace(self._rows[index], **patch)
        self._check_operator(row.field, row.operator)
        if row.operator == Operator.IN.value and isinstance(row.value, str):
            row = replace(row, value=parse_in_values(row.value))
        self._rows[index] = row
        return row

    def remove_row(self, index: int) -> None:
        del self._rows[index]

    def clear(self) -> None:
        self._rows.clear()

    def problems(self) -> list[str]:
        """Describe every row that would not make a meaningful criterion."""
        found = []
        for i, row in enumerate(self._rows):
            if not row.field or not row.operator:
                found.append(f"row {i}: field and operator are required")
                continue
            try:
                self._check_operator(row.field, row.operator)
            except InvalidFilterError as e:
                found.append(f"row {i}: {e.message}")
                continue
            if row.operator == Operator.BETWEEN.value and (row.value in (None, "") or row.value2 in (None, "")):
                found.append(f"row {i}: BETWEEN requires both value and value2")
            elif row.operator == Operator.IN.value and not parse_in_values(row.value):
                found.append(f"row {i}: IN requires at least one value")
        return found

    def validate(self) -> None:
        """Raise InvalidFilterError if any row is incomplete or inconsistent."""
        found = self.problems()
        if found:
            raise InvalidFilterError("; ".join(found), problems=found)

    def build(self) -> FilterRequest:
        return build_filter_request(self._rows)


__all__ = [
    "DEFAULT_OPERATORS",
    "EnumOption",
    "FieldMeta",
    "FieldType",
    "FilterCriteriaBuilder",
    "FilterCriterion",
    "FilterMeta",
    "FilterRequest",
    "FilterRow",
    "Operator",
    "build_filter_request",
    "parse_in_values",
]
