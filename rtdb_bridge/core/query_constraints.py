"""Query Constraints: validates a caller's constraint mapping into ordered descriptors.

Invariants:
    - Unknown keys reject the whole set; no partial application
    - orderByKey / orderByPriority / orderByValue must be present with a null value
    - orderByChild is a non-empty string, limits are integers > 0 (bools rejected)
    - Range constraints carry a scalar "value" (str, bool, number, null) and an optional
      string "key"; an explicit null key is rejected
    - Output preserves the caller's insertion order
    - At most one orderBy, one limit, one starting point (startAt/startAfter/equalTo)
      and one ending point (endAt/endBefore/equalTo) per set

Design Decisions:
    - Pydantic model (extra="forbid") does the shape checks; parse_query_constraints maps
      pydantic failures onto ValidationError naming the offending constraint
    - Descriptors are backend-neutral; each adapter translates them to its own wire form
"""

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Annotated

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictFloat,
    StrictInt,
    StrictStr,
    model_validator,
)
from pydantic import ValidationError as PydanticValidationError

from rtdb_bridge.core.errors import ValidationError


ORDER_FLAGS = frozenset({"orderByKey", "orderByPriority", "orderByValue"})
LIMITS = frozenset({"limitToFirst", "limitToLast"})
RANGES = frozenset({"endAt", "endBefore", "equalTo", "startAfter", "startAt"})

_EXCLUSIVE = (
    (ORDER_FLAGS | {"orderByChild"}, "You can't combine multiple orderBy constraints!"),
    (LIMITS, "Limit was already set (by another limitToFirst or limitToLast constraint)!"),
    (
        frozenset({"startAt", "startAfter", "equalTo"}),
        "Starting point was already set (by another startAt, startAfter or equalTo constraint)!",
    ),
    (
        frozenset({"endAt", "endBefore", "equalTo"}),
        "Ending point was already set (by another endAt, endBefore or equalTo constraint)!",
    ),
)

ScalarValue = StrictStr | StrictBool | StrictInt | Annotated[
    StrictFloat, Field(allow_inf_nan=False)
] | None


@dataclass(frozen=True)
class QueryConstraint:
    """One validated constraint: camelCase name plus its positional arguments."""
    name: str
    args: tuple = ()


class RangeBound(BaseModel):
    """Argument of startAt/startAfter/endAt/endBefore/equalTo."""
    model_config = ConfigDict(extra="forbid", frozen=True)

    value: ScalarValue
    key: StrictStr | None = None

    @model_validator(mode="before")
    @classmethod
    def reject_null_key(cls, data):
        if isinstance(data, Mapping) and "key" in data and data["key"] is None:
            raise ValueError('"key" must be a string')
        return data


class QueryConstraintSet(BaseModel):
    """Whole constraint mapping; accepts camelCase names or snake_case field names."""
    model_config = ConfigDict(extra="forbid", populate_by_name=True, frozen=True)

    order_by_key: None = Field(None, alias="orderByKey")
    order_by_priority: None = Field(None, alias="orderByPriority")
    order_by_value: None = Field(None, alias="orderByValue")
    order_by_child: Annotated[StrictStr, Field(min_length=1)] | None = Field(
        None, alias="orderByChild",
    )
    limit_to_first: Annotated[StrictInt, Field(gt=0)] | None = Field(
        None, alias="limitToFirst",
    )
    limit_to_last: Annotated[StrictInt, Field(gt=0)] | None = Field(
        None, alias="limitToLast",
    )
    end_at: RangeBound | None = Field(None, alias="endAt")
    end_before: RangeBound | None = Field(None, alias="endBefore")
    equal_to: RangeBound | None = Field(None, alias="equalTo")
    start_after: RangeBound | None = Field(None, alias="startAfter")
    start_at: RangeBound | None = Field(None, alias="startAt")


# camelCase constraint name by either spelling
_CANONICAL: dict[str, str] = {}
# pydantic field name by camelCase constraint name
_FIELD_BY_NAME: dict[str, str] = {}
for _field_name, _info in QueryConstraintSet.model_fields.items():
    _CANONICAL[_field_name] = _info.alias
    _CANONICAL[_info.alias] = _info.alias
    _FIELD_BY_NAME[_info.alias] = _field_name


def _shape_message(name: str) -> str:
    if name in ORDER_FLAGS:
        return f'The value of the "{name}" constraint must be null!'
    if name in LIMITS:
        return f'The value of the "{name}" constraint must be an integer > 0!'
    if name == "orderByChild":
        return f'The value of the "{name}" constraint must be a non-empty string!'
    return (
        f'The value of the "{name}" constraint must be an object containing "value" '
        f'(boolean, number, string or null) and optionally "key" (string)!'
    )


def _to_validation_error(error: PydanticValidationError) -> ValidationError:
    first = error.errors()[0]
    loc = first.get("loc") or ("constraints",)
    raw = str(loc[0])
    name = _CANONICAL.get(raw)
    if first.get("type") == "extra_forbidden" or name is None:
        return ValidationError(f'Query constraint received: "{raw}" is invalid!', raw)
    return ValidationError(_shape_message(name), name)


def _check_exclusive(names: list[str]) -> None:
    for group, message in _EXCLUSIVE:
        present = [name for name in names if name in group]
        if len(present) > 1:
            raise ValidationError(f'Query constraint "{present[1]}": {message}', present[1])


def parse_query_constraints(constraints: object) -> tuple[QueryConstraint, ...]:
    """Validate a constraint mapping. None means no constraints."""
    if constraints is None:
        return ()
    if not isinstance(constraints, Mapping):
        raise ValidationError("Query Constraint must be an Object!", "constraints")

    for raw in constraints:
        if not isinstance(raw, str) or raw not in _CANONICAL:
            raise ValidationError(f'Query constraint received: "{raw}" is invalid!', str(raw))
    _check_exclusive([_CANONICAL[raw] for raw in constraints])

    try:
        model = QueryConstraintSet.model_validate(dict(constraints))
    except PydanticValidationError as e:
        raise _to_validation_error(e) from None

    parsed: list[QueryConstraint] = []
    for raw in constraints:
        name = _CANONICAL[raw]
        value = getattr(model, _FIELD_BY_NAME[name])

        if name in ORDER_FLAGS:
            parsed.append(QueryConstraint(name))
            continue

        if value is None:
            raise ValidationError(_shape_message(name), name)

        if name in RANGES:
            args = (value.value,) if value.key is None else (value.value, value.key)
            parsed.append(QueryConstraint(name, args))
        else:
            parsed.append(QueryConstraint(name, (value,)))

    return tuple(parsed)


@dataclass(frozen=True)
class OrderSpec:
    """How results of a query are ordered: by key, value, priority or a child path."""
    by: str = "key"
    child_path: str | None = None


def order_spec(constraints: tuple[QueryConstraint, ...]) -> OrderSpec:
    """Ordering implied by a parsed constraint tuple (key order when none is given)."""
    for constraint in constraints:
        if constraint.name == "orderByKey":
            return OrderSpec("key")
        if constraint.name == "orderByValue":
            return OrderSpec("value")
        if constraint.name == "orderByPriority":
            return OrderSpec("priority")
        if constraint.name == "orderByChild":
            return OrderSpec("child", constraint.args[0])
    return OrderSpec()
