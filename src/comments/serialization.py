"""JSON encoding of comment trees.

Threads can nest as deep as they have comments. Recursive encoders (pydantic,
orjson on nested containers) stop at a fixed depth, so the tree is walked
with an explicit stack here and only the flat fields of each comment are
handed to orjson.
"""

from collections.abc import Sequence
from dataclasses import fields
from typing import Any

import orjson
from fastapi.responses import Response

from .models import CommentView


_FLAT_FIELDS = tuple(f.name for f in fields(CommentView) if f.name != "children")


def _flat(view: CommentView) -> bytes:
    """``{...}`` of a view without its children, closing brace removed."""
    data = {name: getattr(view, name) for name in _FLAT_FIELDS}
    return orjson.dumps(data, option=orjson.OPT_UTC_Z)[:-1]


def _push_list(stack: list[Any], views: Sequence[CommentView]) -> None:
    stack.append(b"]")
    for position, view in enumerate(reversed(views)):
        if position:
            stack.append(b",")
        stack.append(view)


def _encode(out: bytearray, stack: list[Any]) -> bytes:
    while stack:
        item = stack.pop()
        if isinstance(item, bytes):
            out += item
            continue
        out += _flat(item)
        out += b',"children":['
        stack.append(b"}")
        _push_list(stack, item.children)
    return bytes(out)


def encode_thread(root: CommentView) -> bytes:
    """Encode one comment with its reply tree."""
    return _encode(bytearray(), [root])


def encode_forest(views: Sequence[CommentView]) -> bytes:
    """Encode a list of comments with their reply trees."""
    stack: list[Any] = []
    _push_list(stack, views)
    return _encode(bytearray(b"["), stack)


class ThreadResponse(Response):
    """JSON response for a comment tree or a list of them, at any depth."""

    media_type = "application/json"

    def render(self, content: CommentView | Sequence[CommentView]) -> bytes:
        if isinstance(content, CommentView):
            return encode_thread(content)
        return encode_forest(content)
