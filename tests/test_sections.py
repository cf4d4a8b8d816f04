import pytest

from creative_engine.errors import MalformedModelOutput
from creative_engine.prompts import NANO_BANANA_MARKER, VIDEO_ANIMATION_MARKER
from creative_engine.sections import decode_sections, parse_copywriting_profile


class TestDecodeSections:
    def test_bold_headers(self):
        text = (
            "**NANO_BANANA_PROMPT:**\nA jar of honey on marble.\n\n"
            "**VIDEO_ANIMATION_PROMPT:**\nSlow dolly in on the jar."
        )
        sections = decode_sections(text, [NANO_BANANA_MARKER, VIDEO_ANIMATION_MARKER])
        assert sections == {
            NANO_BANANA_MARKER: "A jar of honey on marble.",
            VIDEO_ANIMATION_MARKER: "Slow dolly in on the jar.",
        }

    def test_header_variants(self):
        text = "## NANO_BANANA_PROMPT:\nimage\n**VIDEO_ANIMATION_PROMPT**: video"
        sections = decode_sections(text, [NANO_BANANA_MARKER, VIDEO_ANIMATION_MARKER])
        assert sections[NANO_BANANA_MARKER] == "image"
        assert sections[VIDEO_ANIMATION_MARKER] == "video"

    def test_missing_required_marker(self):
        with pytest.raises(MalformedModelOutput) as exc:
            decode_sections("**NANO_BANANA_PROMPT:**\nimage only", [NANO_BANANA_MARKER, VIDEO_ANIMATION_MARKER])
        assert exc.value.missing == [VIDEO_ANIMATION_MARKER]
        assert exc.value.status_code == 500

    def test_optional_markers(self):
        assert decode_sections("no headers at all", ["A", "B"], required=()) == {}


def test_parse_copywriting_profile():
    block = "- Word Count: 7 words\n- Rhetorical Figure: Hyperbole\n- Tone: **Playful**\n- Style: Humor"
    profile = parse_copywriting_profile(block)
    assert profile.word_count == 7
    assert profile.rhetorical_figure == "Hyperbole"
    assert profile.tone == "Playful"
    assert profile.to_dict()["styleCategory"] == "Humor"
