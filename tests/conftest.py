from types import SimpleNamespace

import httpx
import pytest

from creative_engine.config import Settings
from creative_engine.rate_limit import MemorySlidingWindow, RateLimiter
from creative_engine.services import build_services


class FakeClock:
    """Time that only moves when ``sleep`` is awaited"""

    def __init__(self, start: float = 0.0):
        self.now = start
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def remote_file(name, state="ACTIVE", mime_type=None):
    return SimpleNamespace(
        name=name,
        uri=f"https://generativelanguage.googleapis.com/v1beta/{name}" if name else None,
        state=SimpleNamespace(name=state),
        mime_type=mime_type,
    )


def text_response(text, prompt_tokens=100, output_tokens=50):
    """A generate_content response with one candidate holding ``text``"""
    parts = [SimpleNamespace(text=text)] if text is not None else []
    return SimpleNamespace(
        candidates=[SimpleNamespace(content=SimpleNamespace(parts=parts))],
        text=text,
        usage_metadata=SimpleNamespace(
            prompt_token_count=prompt_tokens,
            candidates_token_count=output_tokens,
            total_token_count=prompt_tokens + output_tokens,
        ),
    )


class FakeFiles:
    def __init__(self, upload_state="ACTIVE", states=("ACTIVE",)):
        self.upload_state = upload_state
        self.states = list(states)
        self.uploads = []
        self.get_calls = []

    async def upload(self, file, config):
        self.uploads.append((file.read(), config["mime_type"]))
        return remote_file(f"files/upload-{len(self.uploads)}", self.upload_state)

    async def get(self, name):
        self.get_calls.append(name)
        state = self.states.pop(0) if len(self.states) > 1 else self.states[0]
        if isinstance(state, Exception):
            raise state
        return remote_file(name, state)


class FakeModels:
    """Answers generate_content calls from a queue; the last answer repeats"""

    def __init__(self, answers=("ok",)):
        self.answers = list(answers)
        self.calls = []

    async def generate_content(self, model, contents):
        self.calls.append({"model": model, "contents": contents})
        answer = self.answers.pop(0) if len(self.answers) > 1 else self.answers[0]
        if isinstance(answer, Exception):
            raise answer
        if isinstance(answer, str) or answer is None:
            return text_response(answer)
        return answer

    def prompt(self, index=-1) -> str:
        """Text of the last part sent in call ``index``"""
        return self.calls[index]["contents"][0].parts[-1].text


class FakeGenAI:
    def __init__(self, answers=("ok",), upload_state="ACTIVE", states=("ACTIVE",)):
        self.files = FakeFiles(upload_state=upload_state, states=states)
        self.models = FakeModels(answers)
        self.aio = SimpleNamespace(files=self.files, models=self.models)


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def settings():
    return Settings(
        google_api_key="test-google-key",
        scrapecreators_api_key="test-sc-key",
        firecrawl_api_key="fc-test",
        asset_poll_interval=0.0,
        asset_poll_timeout=1.0,
    )


@pytest.fixture
def make_services(settings):
    """Build Services around a fake Gemini client and an httpx mock transport"""

    def _make(genai=None, handler=None, rate_limiter=None, **overrides):
        genai = genai or FakeGenAI()
        transport = httpx.MockTransport(handler or (lambda request: httpx.Response(404)))
        http = httpx.AsyncClient(transport=transport)
        services = build_services(
            settings.model_copy(update=overrides),
            genai_client=genai,
            http=http,
            rate_limiter=rate_limiter or RateLimiter(MemorySlidingWindow(), settings.rate_limits),
        )
        return services

    return _make


PNG_1PX = (
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mP8z8BQDwAEhQGAhKmMIQAAAABJRU5ErkJggg=="
)


@pytest.fixture
def png_data_url():
    return f"data:image/png;base64,{PNG_1PX}"
