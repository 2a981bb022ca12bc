import uuid
from datetime import datetime
from typing import Annotated, Any, Iterable, List, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from basket.errors import ErrorCode, InvalidInputError


# ---------------------------------------------------------------------------
# Shopping list actions
# ---------------------------------------------------------------------------


class _ActionBase(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    name: str = Field(min_length=1)


class AddAction(_ActionBase):
    """Create the item, or add ``amount`` to an existing item of the same name."""

    action: Literal["add"] = "add"
    amount: int = Field(ge=1, strict=True)


class UpdateAction(_ActionBase):
    """Set the amount of an existing item."""

    action: Literal["update"] = "update"
    amount: int = Field(ge=1, strict=True)


class DeleteAction(_ActionBase):
    action: Literal["delete"] = "delete"


class CompleteAction(_ActionBase):
    """Toggle the completed flag of an existing item."""

    action: Literal["complete"] = "complete"


ShoppingListAction = Annotated[
    Union[AddAction, UpdateAction, DeleteAction, CompleteAction],
    Field(discriminator="action"),
]

_action_adapter: TypeAdapter[ShoppingListAction] = TypeAdapter(ShoppingListAction)


def validate_action(raw: Any) -> ShoppingListAction:
    """
    Turn a raw candidate (dict or model) into a typed action.

    Raises InvalidInputError with AMOUNT_REQUIRED when an add/update action is
    missing a usable amount, and INVALID_ACTION for any other shape problem.
    delete/complete ignore a supplied amount.
    """
    if isinstance(raw, BaseModel) and not isinstance(raw, _ActionBase):
        raw = raw.model_dump(exclude_none=True)
    try:
        return _action_adapter.validate_python(raw)
    except PydanticValidationError as e:
        errors = e.errors()
        # AMOUNT_REQUIRED only when the amount is the sole problem
        if all(err["loc"] and err["loc"][-1] == "amount" for err in errors):
            action = raw.get("action") if isinstance(raw, dict) else None
            raise InvalidInputError(
                ErrorCode.AMOUNT_REQUIRED,
                f"Amount must be at least 1 for {action or 'this'} action",
            ) from e
        first = errors[0]
        location = ".".join(str(part) for part in first["loc"]) or "action"
        raise InvalidInputError(
            ErrorCode.INVALID_ACTION, f"Invalid action ({location}): {first['msg']}"
        ) from e


def validate_actions(raws: Iterable[Any]) -> List[ShoppingListAction]:
    return [validate_action(raw) for raw in raws]


# ---------------------------------------------------------------------------
# Item request / response bodies
# ---------------------------------------------------------------------------


class ShoppingListItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    amount: int
    is_completed: bool
    group_id: uuid.UUID
    created_by_id: uuid.UUID
    created_at: datetime
    updated_at: datetime


class ExecuteActionsRequest(BaseModel):
    # Validated per action by validate_actions so the error codes stay specific
    actions: List[dict]


class AddItemRequest(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    amount: int = Field(default=1, ge=1)


class UpdateItemRequest(BaseModel):
    amount: int = Field(ge=1)
