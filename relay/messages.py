"""
Управляющие сообщения: разбор и проверка входящего JSON.
"""

import json
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

# Описание сессии/кандидата пересылается как есть, не разбирается
Descriptor = Union[str, dict]

# Старые клиенты шлют {"type": "broadcaster"} / {"type": "listener"}
ALIASES = {
    "broadcaster": "register-broadcaster",
    "listener": "register-listener",
}


class MalformedMessage(ValueError):
    pass


class _Message(BaseModel):
    # Лишние поля клиента пересылаются адресату как есть
    model_config = ConfigDict(extra="allow", frozen=True)


class RegisterBroadcaster(_Message):
    type: Literal["register-broadcaster"]
    token: Optional[str] = None


class RegisterListener(_Message):
    type: Literal["register-listener"]


class Offer(_Message):
    type: Literal["offer"]
    target: str = Field(min_length=1)
    sdp: Descriptor


class Answer(_Message):
    type: Literal["answer"]
    sdp: Descriptor


class Candidate(_Message):
    type: Literal["candidate"]
    candidate: Optional[Descriptor]
    target: Optional[str] = None


ControlMessage = Annotated[
    Union[RegisterBroadcaster, RegisterListener, Offer, Answer, Candidate],
    Field(discriminator="type"),
]

_adapter = TypeAdapter(ControlMessage)


def parse_message(raw: Union[str, bytes]) -> ControlMessage:
    """
    Разбирает текстовый кадр в модель сообщения.

    :param raw: UTF-8 JSON
    :return: Одна из моделей ControlMessage
    :raises MalformedMessage: неразборчивый JSON, неизвестный type, неполные поля
    """
    try:
        data = json.loads(raw)
    except (ValueError, UnicodeDecodeError, RecursionError) as exc:
        raise MalformedMessage(f"bad json: {exc}") from exc
    if not isinstance(data, dict):
        raise MalformedMessage("message is not an object")
    kind = data.get("type")
    if isinstance(kind, str) and kind in ALIASES:
        data = {**data, "type": ALIASES[kind]}
    try:
        return _adapter.validate_python(data)
    except (ValidationError, RecursionError) as exc:
        raise MalformedMessage(str(exc)) from exc
