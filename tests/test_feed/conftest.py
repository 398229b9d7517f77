"""Shared helpers for feed tests: canned upstream responses."""

from collections.abc import Callable

import httpx

API_URL = "https://api.bilibili.com/x/space/arc/search"

# 2026-03-01T12:00:00Z
BASE_EPOCH = 1772366400


def video_payload(uid: str, count: int, start: int = 0, author: str | None = None) -> dict:
    """A successful video-list envelope with `count` videos, newest last."""
    return {
        "code": 0,
        "message": "0",
        "data": {
            "list": {
                "vlist": [
                    {
                        "title": f"{uid} video {i}",
                        "author": author or f"author {uid}",
                        "aid": 1000 + i,
                        "bvid": f"BV{uid}x{i}",
                        "pic": f"//i0.hdslb.com/{uid}_{i}.jpg",
                        "created": BASE_EPOCH + (start + i) * 60,
                    }
                    for i in range(count)
                ]
            }
        },
    }


def error_payload(code: int = -352, message: str = "risk control") -> dict:
    return {"code": code, "message": message, "data": None}


def api_handler(responses: dict[str, httpx.Response | Exception]) -> Callable:
    """respx side effect dispatching on the `mid` query parameter."""

    def handler(request: httpx.Request) -> httpx.Response:
        outcome = responses[request.url.params["mid"]]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    return handler

