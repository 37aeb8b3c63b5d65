from __future__ import annotations

import copy
import datetime as dt
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Sequence

from .errors import ExternalServiceError, MissingFieldError
from .google_api import FormsClient
from .models import ActionEvent, ActionKind, normalise_email


logger = logging.getLogger(__name__)

RACE_ITEM_TITLE = "Race Dates"
EMAIL_QUESTION = "email"
NAME_QUESTION = "name"
ACTION_QUESTION = "action"

_FRACTION_RE = re.compile(r"\.(\d{6})\d+")


def parse_timestamp(value: str) -> dt.datetime:
    """Parse an RFC 3339 timestamp as returned by the Forms API."""

    text = _FRACTION_RE.sub(r".\1", value.strip())
    try:
        parsed = dt.datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError as exc:
        raise MissingFieldError(f"Invalid response timestamp '{value}'") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=dt.UTC)
    return parsed


def format_timestamp(value: dt.datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=dt.UTC)
    return value.astimezone(dt.UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


@dataclass
class FormLayout:
    """Question ids of a signup form and the location of its race choice item."""

    form_code: str
    title: str = ""
    question_ids: Dict[str, str] = field(default_factory=dict)
    race_item: Dict[str, Any] | None = None
    race_item_index: int = -1

    @classmethod
    def from_form(cls, form_code: str, form: Dict[str, Any]) -> "FormLayout":
        info = form.get("info") if isinstance(form.get("info"), dict) else {}
        layout = cls(form_code=form_code, title=str(info.get("title") or ""))
        for index, item in enumerate(form.get("items") or []):
            if not isinstance(item, dict):
                continue
            title = str(item.get("title") or "")
            question = (item.get("questionItem") or {}).get("question") or {}
            question_id = question.get("questionId")
            if question_id:
                layout.question_ids[title.strip().lower()] = str(question_id)
            if title == RACE_ITEM_TITLE:
                layout.race_item = item
                layout.race_item_index = index
        return layout

    def question_id(self, title: str) -> str:
        try:
            return self.question_ids[title]
        except KeyError:
            raise MissingFieldError(f"Form {self.form_code} has no '{title}' question") from None

    def require_race_item(self) -> Dict[str, Any]:
        if self.race_item is None:
            raise MissingFieldError(f"Unable to find '{RACE_ITEM_TITLE}' item in form {self.form_code}")
        return self.race_item

    def race_question_id(self) -> str:
        question = (self.require_race_item().get("questionItem") or {}).get("question") or {}
        question_id = question.get("questionId")
        if not question_id:
            raise MissingFieldError(f"'{RACE_ITEM_TITLE}' item in form {self.form_code} is not a question")
        return str(question_id)


def _text_answers(response: Dict[str, Any], question_id: str) -> List[str]:
    answers = response.get("answers") if isinstance(response.get("answers"), dict) else {}
    answer = answers.get(question_id) or {}
    text_answers = (answer.get("textAnswers") or {}).get("answers") or []
    return [str(item.get("value")) for item in text_answers if isinstance(item, dict) and item.get("value") is not None]


def _first_answer(response: Dict[str, Any], layout: FormLayout, title: str) -> str:
    values = _text_answers(response, layout.question_id(title))
    if not values or not values[0].strip():
        response_id = response.get("responseId") or "?"
        raise MissingFieldError(f"Response {response_id} on form {layout.form_code} has no {title} answer")
    return values[0]


def decode_responses(layout: FormLayout, responses: Iterable[Dict[str, Any]]) -> List[ActionEvent]:
    """Decode form responses into action events ordered by submission time.

    Responses with equal timestamps keep their input order. Each selected race
    option of a response becomes its own event.
    """

    stamped = [(parse_timestamp(str(item.get("createTime") or "")), item) for item in responses]
    stamped.sort(key=lambda pair: pair[0])

    events: List[ActionEvent] = []
    for timestamp, response in stamped:
        email = normalise_email(_first_answer(response, layout, EMAIL_QUESTION))
        name = _first_answer(response, layout, NAME_QUESTION).strip()
        action = ActionKind.parse(_first_answer(response, layout, ACTION_QUESTION))
        response_id = str(response.get("responseId") or "")

        for fragment in _text_answers(response, layout.race_question_id()):
            events.append(
                ActionEvent(
                    user_email=email,
                    user_name=name,
                    race_fragment=fragment,
                    action=action,
                    timestamp=timestamp,
                    response_id=response_id,
                )
            )
    return events


class FormActionSource:
    """Reads signup/cancel actions from a form and publishes its race options."""

    def __init__(self, forms: FormsClient) -> None:
        self.forms = forms
        self._layouts: Dict[str, FormLayout] = {}

    def layout(self, form_code: str) -> FormLayout:
        layout = self._layouts.get(form_code)
        if layout is None:
            layout = FormLayout.from_form(form_code, self.forms.get_form(form_code))
            self._layouts[form_code] = layout
        return layout

    def list_actions_since(self, form_code: str, since: dt.datetime) -> List[ActionEvent]:
        layout = self.layout(form_code)
        responses = self.forms.list_responses(form_code, f"timestamp > {format_timestamp(since)}")
        events = decode_responses(layout, responses)
        logger.info("Decoded %d actions from %d responses on form %s", len(events), len(responses), form_code)
        return events

    def publish_options(self, form_code: str, labels: Sequence[str]) -> None:
        layout = self.layout(form_code)
        layout.race_question_id()
        item = copy.deepcopy(layout.require_race_item())
        question = item.setdefault("questionItem", {}).setdefault("question", {})
        choice = question.setdefault("choiceQuestion", {})
        choice["options"] = [{"value": label} for label in labels]

        try:
            self.forms.batch_update(
                form_code,
                [
                    {
                        "updateItem": {
                            "item": item,
                            "updateMask": "questionItem",
                            "location": {"index": layout.race_item_index},
                        }
                    }
                ],
            )
        except ExternalServiceError as exc:
            raise ExternalServiceError(f"Unable to update form {form_code}: {exc}", status_code=exc.status_code) from exc

        layout.race_item = item
        logger.info("Updated Races on Form %s: %s", form_code, layout.title)
