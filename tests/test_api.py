import json

import httpx
import pytest
from fastapi.testclient import TestClient

from creative_engine.config import RateLimitRule
from creative_engine.rate_limit import MemorySlidingWindow, RateLimiter
from main import app, get_services

from conftest import FakeGenAI

AD_URL = "https://www.facebook.com/ads/library/?id=869163755461256"
TIKTOK_URL = "https://www.tiktok.com/@honeyshop/video/7300000000000000000"


def ad_library_handler(ad=None, status=200):
    ad = ad if ad is not None else {
        "ad_archive_id": "869163755461256",
        "snapshot": {"videos": [{"video_sd_url": "https://video.cdn.example/ad.mp4"}]},
    }

    def handler(request):
        if request.url.host == "api.scrapecreators.com":
            if status != 200:
                return httpx.Response(status, json={"message": "upstream says no"})
            return httpx.Response(200, json=ad)
        if request.url.host == "video.cdn.example":
            return httpx.Response(200, content=b"\x00\x00\x00\x18ftypmp4")
        return httpx.Response(404)

    return handler


@pytest.fixture
def client_for(make_services):
    def _client(**kwargs):
        services = make_services(**kwargs)
        app.dependency_overrides[get_services] = lambda: services
        return TestClient(app), services

    yield _client
    app.dependency_overrides.clear()


class TestAnalyze:
    def test_production_without_product_service(self, client_for):
        genai = FakeGenAI(answers=["Handheld shot of a woman pouring honey, golden light, quick cuts."])
        client, _ = client_for(genai=genai, handler=ad_library_handler())

        response = client.post("/analyze", json={"url": AD_URL, "type": "production"})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["adId"] == "869163755461256"
        assert body["adaptedPrompt"] is None
        assert body["geminiAnalysis"]["text"].startswith("Handheld shot")
        assert body["geminiAnalysis"]["fileUri"].endswith("files/upload-1")
        assert body["usage"]["totalTokenCount"] == 150
        assert response.headers["X-RateLimit-Limit"] == "10"
        assert response.headers["X-RateLimit-Remaining"] == "9"
        assert genai.files.uploads[0][1] == "video/mp4"

    def test_scrapecreators_out_of_credits(self, client_for):
        client, _ = client_for(handler=ad_library_handler(status=402))

        response = client.post("/analyze", json={"url": AD_URL, "type": "production"})

        assert response.status_code == 402
        assert response.json()["error"] == "No credits in ScrapeCreators"

    def test_ad_without_video(self, client_for):
        client, _ = client_for(handler=ad_library_handler(ad={"snapshot": {"images": []}}))

        response = client.post("/analyze", json={"url": AD_URL, "type": "psychological"})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is False
        assert body["geminiAnalysis"] is None
        assert body["message"]

    def test_stage_two_adapts_to_product(self, client_for, png_data_url):
        genai = FakeGenAI(answers=["reference prompt", "adapted\nprompt for the honey jar"])
        client, _ = client_for(genai=genai, handler=ad_library_handler())

        response = client.post("/analyze", json={
            "url": AD_URL,
            "type": "production",
            "productService": "Raw Spanish honey",
            "productImage": png_data_url,
        })

        body = response.json()
        assert body["adaptedPrompt"] == "adapted prompt for the honey jar"
        assert body["usage"]["totalTokenCount"] == 300
        assert "Raw Spanish honey" in genai.models.prompt(1)
        assert len(genai.files.uploads) == 2

    def test_stage_two_failure_keeps_stage_one(self, client_for):
        genai = FakeGenAI(answers=["storytelling analysis", RuntimeError("model overloaded")])
        client, _ = client_for(genai=genai, handler=ad_library_handler())

        response = client.post("/analyze", json={
            "url": AD_URL, "type": "storytelling", "productService": "Raw Spanish honey",
        })

        assert response.status_code == 200
        body = response.json()
        assert body["geminiAnalysis"]["text"] == "storytelling analysis"
        assert body["adaptedPrompt"] is None

    def test_empty_analysis(self, client_for):
        client, _ = client_for(genai=FakeGenAI(answers=[None]), handler=ad_library_handler())

        response = client.post("/analyze", json={"url": AD_URL, "type": "production"})

        assert response.status_code == 500
        assert response.json()["error"] == "Could not extract analysis text from Gemini response"

    def test_invalid_type(self, client_for):
        client, _ = client_for()
        response = client.post("/analyze", json={"url": AD_URL, "type": "vibes"})
        assert response.status_code == 400


class TestViralScripts:
    def test_script_is_one_paragraph(self, client_for):
        def handler(request):
            assert request.url.path == "/v1/tiktok/video/transcript"
            return httpx.Response(200, json={"transcript": "WEBVTT\n\n00:00:00.000 --> 00:00:01.500\nYou won't believe this"})

        genai = FakeGenAI(answers=["Stop scrolling.\nThis honey fixed my mornings.\n\nTry it for 7 days."])
        client, _ = client_for(genai=genai, handler=handler)

        response = client.post("/generate-viral-script", json={
            "videoUrl": TIKTOK_URL,
            "productDescription": "Raw Spanish honey",
        })

        assert response.status_code == 200
        body = response.json()
        assert "\n" not in body["script"]
        assert body["script"] == "Stop scrolling. This honey fixed my mornings. Try it for 7 days."
        assert body["transcript"] == "You won't believe this"
        assert "Raw Spanish honey" in genai.models.prompt()

    def test_legacy_video_prompt(self, client_for):
        client, _ = client_for(genai=FakeGenAI(answers=["A script."]))
        response = client.post("/generate-viral-script", json={"videoPrompt": "girl unboxing", "duration": 1})
        assert response.json()["script"] == "A script."

    def test_bad_duration_is_rejected_before_fetching(self, client_for):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={"transcript": "hello"})

        client, _ = client_for(handler=handler)
        response = client.post("/generate-viral-script", json={"videoUrl": TIKTOK_URL, "duration": 0})

        assert response.status_code == 400
        assert requests == []

    def test_adapt_rejects_other_durations(self, client_for):
        client, _ = client_for()

        response = client.post("/adapt-viral-script", json={"originalScript": "Hook. Body.", "duration": 25})

        assert response.status_code == 400
        assert response.json() == {"error": "Duration must be 15, 20, or 30 seconds", "details": None}

    def test_adapt(self, client_for):
        client, _ = client_for(genai=FakeGenAI(answers=["Short\nversion."]))
        response = client.post("/adapt-viral-script", json={"originalScript": "Hook. Body.", "duration": 15})
        assert response.json()["script"] == "Short version."


class TestProductVideo:
    def test_video_prompt_is_capped(self, client_for, png_data_url):
        long_prompt = " ".join(["slow dolly in on the glistening jar"] * 60)
        answer = f"**NANO_BANANA_PROMPT:**\nStudio shot of a honey jar.\n\n**VIDEO_ANIMATION_PROMPT:**\n{long_prompt}"
        genai = FakeGenAI(answers=[answer, long_prompt])
        client, _ = client_for(genai=genai)

        response = client.post("/generate-product-video", json={
            "productImage": png_data_url,
            "actionDescription": "the lid twists off and honey drips",
        })

        assert response.status_code == 200
        body = response.json()
        assert body["nanoBananaPrompt"] == "Studio shot of a honey jar."
        assert len(body["videoPrompt"]) <= 999
        assert long_prompt.startswith(body["videoPrompt"])
        assert len(genai.models.calls) == 2

    def test_malformed_answer(self, client_for, png_data_url):
        client, _ = client_for(genai=FakeGenAI(answers=["just some text without headers"]))

        response = client.post("/generate-product-video", json={
            "productImage": png_data_url,
            "actionDescription": "spin",
        })

        assert response.status_code == 500
        assert "VIDEO_ANIMATION_PROMPT" in response.json()["details"]


class TestStaticAd:
    def test_two_stage_prompt(self, client_for, png_data_url):
        analysis = (
            "**COPYWRITING ANALYSIS:**\n- Word Count: 5\n- Rhetorical Figure: Hyperbole\n"
            "- Tone: Bold\n- Style: Direct\n\n**REFERENCE AD PROMPT:**\nA gym poster with a red banner."
        )
        genai = FakeGenAI(answers=[analysis, "A honey poster with an amber banner."])
        client, _ = client_for(genai=genai)

        response = client.post("/generate-static-ad-prompt", json={
            "staticAdImage": png_data_url,
            "productImage": png_data_url,
            "copywriting": json.dumps({"summary": "Raw honey", "branding": {"colors": {"primary": "#FFAA00"}}}),
            "isUrlScraped": True,
        })

        assert response.status_code == 200
        body = response.json()
        assert body["prompt"] == "A honey poster with an amber banner."
        assert body["debug"]["copywritingProfile"]["wordCount"] == 5
        assert body["debug"]["scrapedBranding"]["colors"] == {"primary": "#FFAA00"}
        assert body["usage"]["total"]["totalTokenCount"] == 300
        assert "A gym poster with a red banner." in genai.models.prompt(1)
        assert "Raw honey" in genai.models.prompt(1)

    def test_non_object_branding_is_ignored(self, client_for, png_data_url):
        genai = FakeGenAI(answers=["**REFERENCE AD PROMPT:**\nA gym poster.", "A honey poster."])
        client, _ = client_for(genai=genai)

        response = client.post("/generate-static-ad-prompt", json={
            "staticAdImage": png_data_url,
            "productImage": png_data_url,
            "copywriting": json.dumps({"summary": "Honey", "branding": "warm gold"}),
            "isUrlScraped": True,
        })

        assert response.status_code == 200
        assert response.json()["debug"]["scrapedBranding"] is None
        assert "Honey" in genai.models.prompt(1)

    def test_requires_both_images(self, client_for, png_data_url):
        client, _ = client_for()
        response = client.post("/generate-static-ad-prompt", json={"staticAdImage": png_data_url})
        assert response.status_code == 400


class TestEnhancePrompt:
    def test_enhance(self, client_for):
        genai = FakeGenAI(answers=["A woman in her sunlit kitchen\nlifts the jar."])
        client, _ = client_for(genai=genai)

        response = client.post("/enhance-prompt", json={
            "actionText": "woman lifts honey jar",
            "composition": "Everyday Life",
            "lighting": "Morning light",
            "duration": 1,
        })

        body = response.json()
        assert body["enhancedText"] == "A woman in her sunlit kitchen lifts the jar."
        assert body["compositions"] == ["Everyday Life"]
        assert "DURATION CONSTRAINT" not in genai.models.prompt()

    def test_empty_answer_echoes_action(self, client_for):
        client, _ = client_for(genai=FakeGenAI(answers=[None]))
        response = client.post("/enhance-prompt", json={
            "actionText": "woman lifts honey jar", "compositions": ["Wide"], "lighting": "Soft",
        })
        assert response.json()["enhancedText"] == "woman lifts honey jar"

    def test_requires_lighting(self, client_for):
        client, _ = client_for()
        response = client.post("/enhance-prompt", json={"actionText": "x", "compositions": ["Wide"]})
        assert response.status_code == 400


class TestHttpSurface:
    def test_rate_limit_rejection(self, client_for):
        def handler(request):
            return httpx.Response(200, json={"data": {"summary": "Raw honey"}})

        limiter = RateLimiter(MemorySlidingWindow(), {"scrapeUrl": RateLimitRule(limit=1)})
        client, _ = client_for(handler=handler, rate_limiter=limiter)
        headers = {"x-forwarded-for": "203.0.113.9"}

        assert client.post("/scrape-url", json={"url": "https://honey.example"}, headers=headers).status_code == 200
        response = client.post("/scrape-url", json={"url": "https://honey.example"}, headers=headers)

        assert response.status_code == 429
        body = response.json()
        assert body["error"] == "Rate limit exceeded"
        assert body["limit"] == 1
        assert body["remaining"] == 0
        assert response.headers["X-RateLimit-Remaining"] == "0"
        assert int(response.headers["Retry-After"]) > 0

    def test_malformed_body_is_400(self, client_for):
        client, _ = client_for()
        response = client.post("/adapt-viral-script", json={"originalScript": "x", "duration": "half a minute"})
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid request body"

    def test_access_gate(self, client_for):
        client, _ = client_for(api_key="secret")

        denied = client.post("/adapt-viral-script", json={"originalScript": "x", "duration": 15})
        allowed = client.post(
            "/adapt-viral-script",
            json={"originalScript": "x", "duration": 15},
            headers={"X-API-Key": "secret"},
        )

        assert denied.status_code == 401
        assert denied.json()["error"] == "Invalid or missing API key"
        assert allowed.status_code == 200

    def test_health(self, client_for):
        client, _ = client_for()
        assert client.get("/health").json() == {
            "status": "ok", "service": "ad-creative-engine", "rateLimitBackend": "memory",
        }
