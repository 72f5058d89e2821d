"""
Inline keyboard builders and the callback_data vocabulary they use.

callback_data is one of:
- "kind:<kind>"     top-level menu selection
- "opt:<value>"     single-select answer option (value is the literal option text)
- "action:<name>"   control action (done, send, add_more, cancel, retry)
"""

from app.constants.statuses import KIND_ACHIEVEMENT, KIND_COMPETITION
from app.services.messaging.message_composer import render_message

CALLBACK_KIND_PREFIX = "kind:"
CALLBACK_OPTION_PREFIX = "opt:"
CALLBACK_ACTION_PREFIX = "action:"

# Control actions (commands map to start/cancel too)
ACTION_START = "start"
ACTION_CANCEL = "cancel"
ACTION_DONE = "done"
ACTION_SEND = "send"
ACTION_ADD_MORE = "add_more"
ACTION_RETRY = "retry"

COMMANDS = {
    "/start": ACTION_START,
    "/cancel": ACTION_CANCEL,
}

# Copy keys for button labels; typed label text is accepted like a button press
ACTION_LABEL_KEYS = {
    ACTION_DONE: "button_done",
    ACTION_SEND: "button_send",
    ACTION_ADD_MORE: "button_add_more",
    ACTION_CANCEL: "button_cancel",
    ACTION_RETRY: "button_retry",
}

KIND_LABEL_KEYS = {
    KIND_COMPETITION: "button_kind_competition",
    KIND_ACHIEVEMENT: "button_kind_achievement",
}


def _button(label: str, callback_data: str) -> dict:
    return {"text": label, "callback_data": callback_data}


def _action_button(action: str) -> dict:
    return _button(render_message(ACTION_LABEL_KEYS[action]), f"{CALLBACK_ACTION_PREFIX}{action}")


def menu_keyboard() -> dict:
    """Top-level menu: one button per submission kind."""
    return {
        "inline_keyboard": [
            [_button(render_message(label_key), f"{CALLBACK_KIND_PREFIX}{kind}")]
            for kind, label_key in KIND_LABEL_KEYS.items()
        ]
    }


def options_keyboard(options: tuple[str, ...] | list[str]) -> dict:
    """Single-select answer buttons, one per row."""
    return {
        "inline_keyboard": [
            [_button(option, f"{CALLBACK_OPTION_PREFIX}{option}")] for option in options
        ]
    }


def photos_keyboard() -> dict:
    return {"inline_keyboard": [[_action_button(ACTION_DONE)], [_action_button(ACTION_CANCEL)]]}


def confirm_keyboard() -> dict:
    return {
        "inline_keyboard": [
            [_action_button(ACTION_SEND)],
            [_action_button(ACTION_ADD_MORE)],
            [_action_button(ACTION_CANCEL)],
        ]
    }


def retry_keyboard() -> dict:
    return {"inline_keyboard": [[_action_button(ACTION_RETRY)], [_action_button(ACTION_CANCEL)]]}


def action_for_label(text: str) -> str | None:
    """Map typed text (command or button label) to a control action."""
    if text in COMMANDS:
        return COMMANDS[text]
    for action, label_key in ACTION_LABEL_KEYS.items():
        if text == render_message(label_key):
            return action
    return None


def kind_for_label(text: str) -> str | None:
    """Map typed text equal to a menu button label to a submission kind."""
    for kind, label_key in KIND_LABEL_KEYS.items():
        if text == render_message(label_key):
            return kind
    return None
