"""
Tests for build_assistant_prompt() in services/chat_prompts.py.

Items are plain ShoppingListItem instances that never touch a session.
"""

from basket.db.models import ShoppingListItem
from basket.models.chat import ChatMessage, MessageRole
from basket.services.chat_prompts import (
    ASSISTANT_BASE_PROMPT,
    EMPTY_LIST_SENTINEL,
    build_assistant_prompt,
    render_current_items,
    render_recent_messages,
)


def _item(name: str, amount: int, completed: bool = False) -> ShoppingListItem:
    return ShoppingListItem(name=name, amount=amount, is_completed=completed)


class TestRenderCurrentItems:
    def test_empty_list_uses_sentinel(self):
        assert render_current_items([]) == "Current shopping list is empty."

    def test_lines_keep_casing_and_mark_completed(self):
        text = render_current_items([_item("Milk", 2), _item("bread", 1, completed=True)])
        assert text == "Current shopping list:\n- Milk: 2\n- bread: 1 (completed)"


class TestRenderRecentMessages:
    def test_no_history_renders_nothing(self):
        assert render_recent_messages([]) == ""

    def test_role_labels(self):
        text = render_recent_messages(
            [
                ChatMessage(role=MessageRole.USER, content="add milk"),
                ChatMessage(role=MessageRole.ASSISTANT, content="Added milk."),
            ]
        )
        assert text == "Recent conversation:\nUser: add milk\nAssistant: Added milk."


class TestBuildAssistantPrompt:
    def test_layout_order(self):
        prompt = build_assistant_prompt(
            [_item("milk", 2)],
            [ChatMessage(role=MessageRole.USER, content="hi")],
            "add 3 eggs",
        )
        assert prompt.startswith(ASSISTANT_BASE_PROMPT)
        assert prompt.index("Current shopping list:") < prompt.index("Recent conversation:")
        assert prompt.endswith("Current user prompt: add 3 eggs")

    def test_history_section_omitted_when_empty(self):
        prompt = build_assistant_prompt([], None, "add milk")
        assert "Recent conversation:" not in prompt
        assert EMPTY_LIST_SENTINEL in prompt

    def test_deterministic(self):
        items = [_item("milk", 2), _item("eggs", 12, completed=True)]
        history = [ChatMessage(role=MessageRole.USER, content="hello")]
        first = build_assistant_prompt(items, history, "remove 2 eggs")
        second = build_assistant_prompt(items, history, "remove 2 eggs")
        assert first == second
