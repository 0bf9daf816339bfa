"""
Утилитарные функции (идентификаторы слушателей, адрес клиента).
"""

import secrets
import time
from typing import Container


def new_identity(taken: Container[str] = ()) -> str:
    """
    Генерирует идентификатор слушателя вида <миллисекунды hex>-<8 hex>.

    :param taken: Уже выданные идентификаторы (для исключения коллизий)
    :return: Строковый идентификатор
    """
    while True:
        identity = f"{int(time.time() * 1000):x}-{secrets.token_hex(4)}"
        if identity not in taken:
            return identity


def origin_address(websocket, trust_forwarded: bool = False) -> str:
    """
    Адрес клиента для проверки политики доступа.

    :param websocket: Соединение websockets
    :param trust_forwarded: Брать первый адрес из X-Forwarded-For (за прокси)
    :return: IP-адрес строкой или пустая строка
    """
    if trust_forwarded:
        request = getattr(websocket, "request", None)
        forwarded = request.headers.get("X-Forwarded-For") if request is not None else None
        if forwarded:
            return forwarded.split(",")[0].strip()
    addr = websocket.remote_address
    return addr[0] if addr else ""
