"""
Tests for the action schema in models/shopping.py and request bodies.
No I/O, no mocking needed.
"""

import pytest
from pydantic import ValidationError

from basket.errors import ErrorCode, InvalidInputError
from basket.models.chat import AssistantRequest, ModelAction
from basket.models.group import CreateGroupRequest
from basket.models.shopping import (
    AddAction,
    AddItemRequest,
    CompleteAction,
    DeleteAction,
    UpdateAction,
    validate_action,
    validate_actions,
)


# ---------------------------------------------------------------------------
# validate_action
# ---------------------------------------------------------------------------


class TestValidateAction:
    def test_add_with_amount(self):
        action = validate_action({"action": "add", "name": "milk", "amount": 2})
        assert action == AddAction(name="milk", amount=2)

    def test_update_with_amount(self):
        action = validate_action({"action": "update", "name": "milk", "amount": 5})
        assert isinstance(action, UpdateAction)
        assert action.amount == 5

    def test_delete_ignores_amount(self):
        action = validate_action({"action": "delete", "name": "bread", "amount": 4})
        assert action == DeleteAction(name="bread")
        assert not hasattr(action, "amount")

    def test_complete_without_amount(self):
        assert validate_action({"action": "complete", "name": "eggs"}) == CompleteAction(name="eggs")

    def test_name_whitespace_stripped(self):
        assert validate_action({"action": "delete", "name": "  bread "}).name == "bread"

    def test_model_action_is_accepted(self):
        raw = ModelAction(action="complete", name="eggs", amount=None)
        assert validate_action(raw) == CompleteAction(name="eggs")

    def test_typed_action_passes_through(self):
        action = AddAction(name="milk", amount=1)
        assert validate_action(action) == action

    @pytest.mark.parametrize("action", ["add", "update"])
    def test_missing_amount_is_amount_required(self, action):
        with pytest.raises(InvalidInputError) as exc:
            validate_action({"action": action, "name": "milk"})
        assert exc.value.code == ErrorCode.AMOUNT_REQUIRED
        assert exc.value.message == f"Amount must be at least 1 for {action} action"

    @pytest.mark.parametrize("amount", [0, -3])
    def test_non_positive_amount_is_amount_required(self, amount):
        with pytest.raises(InvalidInputError) as exc:
            validate_action({"action": "add", "name": "milk", "amount": amount})
        assert exc.value.code == ErrorCode.AMOUNT_REQUIRED

    @pytest.mark.parametrize("amount", [True, "2", 2.5])
    def test_non_integer_amount_is_amount_required(self, amount):
        with pytest.raises(InvalidInputError) as exc:
            validate_action({"action": "add", "name": "milk", "amount": amount})
        assert exc.value.code == ErrorCode.AMOUNT_REQUIRED

    def test_unknown_action_is_invalid(self):
        with pytest.raises(InvalidInputError) as exc:
            validate_action({"action": "buy", "name": "milk", "amount": 1})
        assert exc.value.code == ErrorCode.INVALID_ACTION

    def test_empty_name_is_invalid(self):
        with pytest.raises(InvalidInputError) as exc:
            validate_action({"action": "delete", "name": "   "})
        assert exc.value.code == ErrorCode.INVALID_ACTION

    def test_missing_name_is_invalid(self):
        with pytest.raises(InvalidInputError) as exc:
            validate_action({"action": "complete"})
        assert exc.value.code == ErrorCode.INVALID_ACTION

    @pytest.mark.parametrize("action", ["add", "update"])
    def test_missing_name_and_amount_is_invalid(self, action):
        with pytest.raises(InvalidInputError) as exc:
            validate_action({"action": action})
        assert exc.value.code == ErrorCode.INVALID_ACTION

    def test_non_dict_is_invalid(self):
        with pytest.raises(InvalidInputError) as exc:
            validate_action("add milk")
        assert exc.value.code == ErrorCode.INVALID_ACTION
        assert exc.value.status_code == 400


class TestValidateActions:
    def test_keeps_order(self):
        actions = validate_actions(
            [
                {"action": "add", "name": "milk", "amount": 2},
                {"action": "delete", "name": "bread"},
            ]
        )
        assert [a.action for a in actions] == ["add", "delete"]

    def test_one_bad_action_rejects_all(self):
        with pytest.raises(InvalidInputError):
            validate_actions(
                [
                    {"action": "add", "name": "milk", "amount": 2},
                    {"action": "update", "name": "bread"},
                ]
            )


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------


class TestRequestBodies:
    def test_add_item_defaults_amount_to_one(self):
        assert AddItemRequest(name="milk").amount == 1

    def test_group_name_length_limit(self):
        with pytest.raises(ValidationError):
            CreateGroupRequest(name="x" * 51)

    def test_group_description_length_limit(self):
        with pytest.raises(ValidationError):
            CreateGroupRequest(name="Flat", description="x" * 201)

    def test_assistant_prompt_required(self):
        with pytest.raises(ValidationError):
            AssistantRequest(prompt="")
