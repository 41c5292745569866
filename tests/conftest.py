"""
Shared fixtures: a scripted fake transport and small generated page images.
"""

import io
import json
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Union

import pytest
from PIL import Image

from examlens.client import ExamClient
from examlens.config import Provider, ProviderConfig
from examlens.pipeline.images import PreparedImage

Reply = Union[str, BaseException, Callable[[str, str], str]]


class FakeTransport:
    """
    Replays scripted replies keyed by model name and records every call.
    A reply may be a string, an exception instance (raised), or a callable(model, prompt).
    """

    def __init__(self, replies: Optional[dict] = None, default: Optional[Reply] = None):
        self.replies = dict(replies or {})
        self.default = default
        self.calls: List[dict] = []

    async def complete(
        self,
        model: str,
        prompt: str,
        images: Sequence[PreparedImage] = (),
        *,
        system: Optional[str] = None,
    ) -> str:
        self.calls.append(
            {"model": model, "prompt": prompt, "images": list(images), "system": system}
        )
        reply = self.replies.get(model, self.default)
        if reply is None:
            raise AssertionError(f"no scripted reply for {model}")
        if isinstance(reply, BaseException):
            raise reply
        if callable(reply):
            return reply(model, prompt)
        return reply

    @property
    def models_called(self) -> List[str]:
        return [c["model"] for c in self.calls]


@pytest.fixture
def config() -> ProviderConfig:
    return ProviderConfig(provider=Provider.GEMINI, credential="test-key-123456")


@pytest.fixture
def make_client(config):
    """
    Build an ExamClient wired to a FakeTransport. Returns (client, transport).
    """

    def _make(replies=None, default=None, cfg: ProviderConfig = None):
        transport = FakeTransport(replies, default)
        client = ExamClient(cfg or config, transport_factory=lambda _cfg: transport)
        return client, transport

    return _make


def make_png(width: int, height: int, color=(200, 200, 200)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def page_image(tmp_path: Path) -> Path:
    p = tmp_path / "page1.png"
    p.write_bytes(make_png(400, 600))
    return p


@pytest.fixture
def page_images(tmp_path: Path) -> List[Path]:
    out = []
    for n in range(1, 4):
        p = tmp_path / f"page{n}.png"
        p.write_bytes(make_png(300 + n * 10, 400, color=(n * 40, 100, 100)))
        out.append(p)
    return out


def grading_payload(pages: int = 1, total_max_score: float = 100) -> dict:
    return {
        "total_score": 15 * pages,
        "total_max_score": total_max_score,
        "pages": [
            {
                "image_url": f"page_{n}",
                "page_score": 15,
                "questions": [
                    {
                        "id": 1,
                        "status": "correct",
                        "score_obtained": 10,
                        "score_max": 10,
                        "deduction": 0,
                        "box_2d": [100, 100, 200, 50],
                        "analysis": "",
                    },
                    {
                        "id": 2,
                        "status": "partial",
                        "score_obtained": 5,
                        "score_max": 10,
                        "deduction": 5,
                        "box_2d": [100, 300, 400, 80],
                        "analysis": "Second step drops a sign.",
                        "error_type": "calculation",
                    },
                ],
            }
            for n in range(1, pages + 1)
        ],
        "summary_tags": ["careless"],
    }


def grading_reply(pages: int = 1, total_max_score: float = 100) -> str:
    return "Here is the result:\n```json\n" + json.dumps(grading_payload(pages, total_max_score)) + "\n```\nThanks!"
