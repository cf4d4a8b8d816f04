"""
Prompt templates.

Every builder here is a pure function of its arguments: same input, same
string, and nothing at module level is ever mutated. Parameter objects are
frozen dataclasses so they can be reused across calls.
"""

import json
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence, Tuple

# Duration value the UI sends for its "Default" button: no duration guidance
DEFAULT_DURATION = 1

ANALYSIS_TYPES = ("psychological", "storytelling", "production")


# --- AD ANALYSIS ---

ANALYSIS_PROMPTS: Dict[str, str] = {
    "psychological": (
        "You are an expert Meta Ads psychologist. Analyze this Facebook/Instagram ad focusing on "
        "psychological triggers. Provide a concise but powerful analysis covering: "
        "1) **Emotional Journey** - second-by-second emotional arc (curiosity, fear, desire, urgency), "
        "2) **Psychological Triggers** - Cialdini principles (social proof, scarcity, authority), cognitive "
        "biases (loss aversion, FOMO, anchoring), "
        "3) **Hook Analysis** (first 3s) - pattern interrupt strength, scroll-stop potential, "
        "4) **Desire Architecture** - problem-agitation-solution flow, pain points, aspirations, "
        "5) **Subconscious Elements** - music tempo/mood, color psychology, editing pace, visual hierarchy to CTA, "
        "6) **Target Audience** - psychographic profile, pain points, desires, identity signals, "
        "7) **Decision Triggers** - System 1 vs System 2 ratio, impulse vs considered purchase, "
        "8) **Friction Reduction** - removed friction points (pricing clarity, social proof, risk reversal), "
        "9) **Key Scenes** - psychological purpose of major frames, "
        "10) **Replication Blueprint** - critical elements for AI video recreation (Sora/Veo), timing "
        "recommendations. Be concise, use timestamps, explain WHY each element works. Format with clear "
        "sections and bold headers."
    ),
    "storytelling": (
        "You are an expert narrative designer. Analyze this Facebook/Instagram ad through a storytelling "
        "lens. Provide a concise but powerful analysis covering: "
        "1) **Narrative Structure** - story framework (Hero's Journey, Before/After, Problem/Solution, "
        "Testimonial, Day-in-life), three-act structure with timestamps, inciting incident, "
        "2) **Character** - protagonist type, relatability triggers, transformation arc, antagonist/obstacle, "
        "3) **Conflict & Stakes** - core tension, emotional stakes, urgency, peak dramatic moment, "
        "4) **Story Beats** - major beats with timestamps, rhythm, information reveal strategy, "
        "5) **Voice** - narrative voice, dialogue authenticity, memorable phrases, text overlay contribution, "
        "6) **Visual Storytelling** - symbolic imagery, color grading shifts, camera angles, motifs, transitions, "
        "7) **Themes** - underlying message, universal truths, cultural context, "
        "8) **Emotional Arc** - emotional journey, cathartic moments, vulnerability usage, "
        "9) **Authenticity** - polished vs raw balance, production quality role, "
        "10) **Story-to-CTA** - narrative-to-CTA bridge, earned vs forced CTA, organic product integration, "
        "11) **Replication Blueprint** - shot list with narrative purpose, essential beats, timing per act, "
        "non-negotiable vs adaptable elements. Be concise, use timestamps, explain WHY each choice works. "
        "Format with clear sections and bold headers."
    ),
    "production": (
        "You are an expert AI video generator prompter. Analyze the visual aspects of this video and provide "
        "a detailed prompt to get the exact same video: include the actions, the lighting, the hyper-realism, "
        "the scenes, the cuts, everything that comes into place. The output must be only the detailed prompt, "
        "optimized for AI video generation, in one paragraph."
    ),
}


def build_analysis_prompt(analysis_type: str) -> str:
    return ANALYSIS_PROMPTS[analysis_type]


def build_adaptation_prompt(analysis_type: str, analysis: str, product_service: str, has_product_image: bool) -> str:
    """Stage 2 of /analyze: carry the reference ad's blueprint over to the user's product"""
    image_line = (
        "- An image of the new product is attached. Describe it exactly as it appears (shape, colors, "
        "materials, packaging, branding).\n"
        if has_product_image else ""
    )
    source_label = {
        "production": "Reference video prompt",
        "psychological": "Psychological analysis of the reference ad",
        "storytelling": "Storytelling analysis of the reference ad",
    }[analysis_type]

    return f"""You are an expert AI video prompt engineer adapting a winning ad to a new product or service.

**{source_label}:**
{analysis}

**New product/service:**
{product_service}

**Your Task:**
Write ONE detailed prompt for an AI video generator (Sora/Veo) that recreates the reference ad's structure, pacing, camera work, lighting and emotional beats, but features the new product/service instead of the original one.
- Keep every element that makes the reference work (hook timing, shot order, transitions, tone).
- Replace product references, usage scenes and setting details so they fit the new product/service naturally.
{image_line}- Do not invent claims about the product that are not implied by its description.

**Output:**
Provide ONLY the adapted prompt as a single continuous paragraph, with no headers, explanations or line breaks."""


# --- ENHANCE PROMPT ---

@dataclass(frozen=True)
class EnhancementParams:
    """Options for /enhance-prompt. Each optional field adds one clause."""
    action_text: str
    compositions: Tuple[str, ...] = ()
    lighting: Optional[str] = None
    duration: Optional[int] = None
    main_style: str = "Hyperrealistic UGC, Mobile Aesthetic"
    product_focus: str = "Authenticity and Emotional Connection"
    first_scene_action: Optional[str] = None
    scene_index: Optional[int] = None
    total_scenes: int = 1

    @property
    def effective_duration(self) -> Optional[int]:
        if self.duration is None or self.duration == DEFAULT_DURATION or self.duration <= 0:
            return None
        return self.duration


def conciseness_tier(total_scenes: int) -> Optional[Tuple[str, str]]:
    """(label, word target) for multi-scene prompts; None for a single scene"""
    if total_scenes <= 1:
        return None
    if total_scenes <= 3:
        return ("Be concise but comprehensive. Use efficient, high-impact language and avoid redundancy.",
                "~100-120 words")
    if total_scenes <= 5:
        return ("Be significantly more concise. Use compact, dense descriptions and prioritize essential elements.",
                "~70-90 words")
    return ("Be extremely concise. Use maximum density and keep only critical visual and narrative elements.",
            "~50-70 words")


def _consistency_clause(params: EnhancementParams) -> str:
    if not params.first_scene_action or params.scene_index is None:
        return ""
    return f"""

**CRITICAL CONSISTENCY RULES (MANDATORY):**
1. **SAME PERSON**: Keep the exact same person as in the first scene (appearance, age, gender, clothing). Do NOT change their characteristics unless the action text says so.
2. **SAME LOCATION**: Keep the first scene's location (e.g. "in a car", "in a kitchen") UNLESS the current action text explicitly moves elsewhere.
3. **CONTEXT FROM FIRST SCENE**:
   - First scene action: "{params.first_scene_action}"
   - Carry over the person description, location, environment and key visual elements from it.

**Current Scene Index**: {params.scene_index + 1} of {params.total_scenes}"""


def _composition_clause(compositions: Sequence[str]) -> str:
    if len(compositions) < 2:
        return ""
    numbered = "\n".join(f"{i}. {comp}" for i, comp in enumerate(compositions, start=1))
    return f"""

**CRITICAL COMPOSITION DISTRIBUTION TASK:**
Several camera compositions were selected. Distribute them across the action according to its logical flow.

Available compositions:
{numbered}

Read the action text, identify its moments or phases within the same continuous scene, and assign the most fitting composition to each. For example, "person grabs the product and then consumes it" could use "Everyday Life" for the grab and "Product in Real Use" for the consumption. Transition seamlessly between compositions and make it clear through the description which composition applies to which part of the action."""


def _duration_clause(duration: Optional[int]) -> str:
    if duration is None:
        return ""
    return f"""

**CRITICAL DURATION CONSTRAINT:**
This scene lasts **{duration} seconds**. Adjust density and pacing to it:
- Short (1-3 seconds): one single, impactful moment with tight, essential description.
- Medium (4-10 seconds): 2-3 key moments with natural transitions.
- Long (11+ seconds): richer storytelling, several actions, nuanced movements and environment.
The action must realistically unfold within {duration} seconds: neither rushed nor stretched."""


def _conciseness_clause(params: EnhancementParams) -> str:
    tier = conciseness_tier(params.total_scenes)
    if tier is None:
        return ""
    guidance, target = tier
    scene_number = (params.scene_index or 0) + 1
    return f"""

**CRITICAL CONCISENESS REQUIREMENT:**
This is scene {scene_number} of {params.total_scenes}. {guidance} Target: {target} per scene. Keep all the power and authenticity requirements, expressed with maximum efficiency."""


def _framing_clause(compositions: Sequence[str]) -> str:
    close_up = any("ugc close" in c.lower() or "close-up" in c.lower() for c in compositions)
    if close_up:
        return """

**UGC CLOSE-UP MODE (ACTIVE):**
Frame the product or person in extreme close-up: shallow depth of field, sharp focus on textures, natural shaky mobile movements, as if someone zooms in with their iPhone to show details."""
    return """

**UGC SCENE COMPOSITION (NO CLOSE-UP):**
Show product and person together in a natural wide-to-medium shot that keeps the whole scene in frame, like a casual mobile recording from the AI avatar's own iPhone. Do not isolate the product or person in close-up."""


def build_enhancement_prompt(params: EnhancementParams) -> str:
    """
    Clause order is fixed: consistency, composition distribution, duration,
    conciseness, UGC framing.
    """
    compositions = list(params.compositions)
    composition_list = ", ".join(compositions)
    duration = params.effective_duration
    duration_line = f"\n- Scene Duration: {duration} seconds" if duration else ""
    lighting = params.lighting or "Natural ambient light"

    clauses = (
        _consistency_clause(params)
        + _composition_clause(compositions)
        + _duration_clause(duration)
        + _conciseness_clause(params)
        + _framing_clause(compositions)
    )

    return f"""Act as a *Senior Prompt Engineer specializing in AI Hyperrealism and User-Generated Content (UGC)*. Transform the basic action idea and user parameters into a single, high-density text prompt, ready for copy-pasting.

**Main Task:** Enhance, enrich and condense the [ACTION TEXT TO ENHANCE], fluently incorporating all [CAMERA AND LIGHTING DETAILS] and the following:
- Main style: {params.main_style}
- Product Focus: {params.product_focus}{clauses}

The output must be a single continuous paragraph without line breaks, interweaving action, product focus, composition and visual aesthetics. The video must look **100% authentic**, as if recorded by a real person on their phone: spontaneity, natural handheld movement (slight shake, imperfect zoom, quick pan), subtle mobile grain, genuine ambient lighting, no professional artifice, non-POV.

[ACTION TEXT TO ENHANCE]: {params.action_text}

[CAMERA AND LIGHTING DETAILS TO INCORPORATE]:
- Camera composition(s): {composition_list}
- Lighting/Ambience: {lighting}{duration_line}

Respond ONLY with the enhanced text as a single continuous paragraph, without line breaks, explanations or special formatting."""


# --- VIRAL SCRIPTS ---

def build_viral_script_prompt(
    source_text: str,
    product_description: Optional[str] = None,
    duration: Optional[int] = None,
    from_transcript: bool = True,
) -> str:
    source_label = "Transcript of the reference viral video" if from_transcript else "Video description"
    effective = None if duration in (None, DEFAULT_DURATION) else duration
    duration_line = (
        f"The script must be optimized for a {effective}-second video. Keep it concise and impactful."
        if effective else
        "Optimize the script length automatically for maximum engagement."
    )
    product_block = f"\n\n**Product to sell:**\n{product_description}" if product_description else ""

    return f"""You are an expert viral script writer specializing in UGC (User-Generated Content) marketing. Your scripts make viewers stop scrolling and want to buy the product.

**{source_label}:**
{source_text}{product_block}

**Your Task:**
Write a new UGC script that reuses the reference's proven structure and energy for the product above. It flows through four beats:
1. HOOK - the scroll stopper: a bold statement, provocative question or impossible premise that triggers curiosity, shock, desire or urgency.
2. PROMISE - a high-stakes commitment that keeps people watching ("I'll show you the results in 7 days").
3. BODY - fast, engaging product story: benefits, demonstration, comparison or testimonial that builds desire.
4. PAYOFF - deliver on the promise, show the result, and create urgency to buy.

**Requirements:**
- {duration_line}
- Natural, conversational, authentic: a real person sharing their experience, not a sales pitch.
- **CRITICAL FORMATTING**: output the script as a SINGLE, CONTINUOUS PARAGRAPH with no line breaks, no section labels, no bullet points and no markdown.

**Output:**
Provide ONLY the spoken script text as one flowing paragraph."""


def build_script_adaptation_prompt(original_script: str, duration: int) -> str:
    return f"""You are an expert at adapting viral video scripts to specific durations while keeping the core storytelling, hooks and energy.

**Original Script:**
{original_script}

**Target Duration:**
{duration} seconds

**Your Task:**
Adapt the original script to exactly {duration} seconds of spoken content:
1. **Maintain the core structure** - same hooks, key messages and storytelling flow
2. **Preserve the energy and tone** - match the original's pace and emotional impact
3. **Optimize for duration** - condense or drop less critical parts, keep every essential element
4. **Keep it natural** - organic and conversational, never rushed or cut off
5. **Maintain conversion elements** - hooks, promises, calls-to-action and emotional triggers

Do not add new content. **CRITICAL FORMATTING**: the script must be a SINGLE, CONTINUOUS PARAGRAPH with no line breaks, bullet points or special formatting.

**Output:**
Provide ONLY the adapted script as a single continuous paragraph optimized for {duration} seconds."""


# --- PRODUCT VIDEO ---

NANO_BANANA_MARKER = "NANO_BANANA_PROMPT"
VIDEO_ANIMATION_MARKER = "VIDEO_ANIMATION_PROMPT"


def build_product_video_prompt(action_description: str, max_chars: int = 999) -> str:
    return f"""You are an expert AI prompt engineer specializing in professional product video animations.

**Context:**
- Product: analyze the provided product image carefully
- User's Request: "{action_description}"

**CRITICAL INSTRUCTION:**
Follow EXACTLY what the user requested. Enhance it with professional cinematography and technical details (camera movement, lighting, physics) but keep the core action, pacing and style: quick cuts stay quick, slow movements stay slow, requested close-ups stay close-ups. Do not add actions the user did not ask for.

**Your Task:** generate TWO prompts.

1. **Nano Banana Pro Prompt**: a detailed, cinematic prompt for a high-quality reference image of the product that will be the base of the animation. Exact product appearance, colors, materials, textures; studio-quality composition; framing, background, lighting and camera angle chosen to support the requested action.

2. **Video Animation Prompt**: an extremely detailed description of the animation.
   - MUST be EXACTLY ONE continuous paragraph (no line breaks, no bullet points)
   - MUST be UNDER {max_chars} characters including spaces
   - Faithfully follow "{action_description}" and its sequence, pacing and cuts
   - Dense, efficient language: camera moves (dolly, pan, zoom, orbit), lighting, physics, depth of field, motion blur, color grading
   - Every word must count; verify the character count before finalizing

**Output Format:**
Respond EXACTLY in this format, using these section headers:

**{NANO_BANANA_MARKER}:**
[the Nano Banana Pro prompt]

**{VIDEO_ANIMATION_MARKER}:**
[the video animation prompt: one paragraph, under {max_chars} characters]"""


def build_length_optimization_prompt(text: str, max_chars: int = 999) -> str:
    return f"""Optimize this prompt to be UNDER {max_chars} characters while keeping ALL essential details and precision. Make it ONE continuous paragraph with maximum information density.

**Current Prompt ({len(text)} characters):**
{text}

**Requirements:**
- EXACTLY ONE paragraph (no line breaks)
- UNDER {max_chars} characters (strictly enforced)
- Keep every essential technical detail (camera movement, lighting, physics, cinematography)
- Keep the core action and pacing
- Dense, efficient language: every word must count

**Output:**
Provide ONLY the optimized prompt as a single continuous paragraph, under {max_chars} characters."""


# --- STATIC ADS ---

COPYWRITING_MARKER = "COPYWRITING ANALYSIS"
REFERENCE_PROMPT_MARKER = "REFERENCE AD PROMPT"


def build_static_ad_analysis_prompt() -> str:
    return f"""You are an expert prompt engineer for AI image generation. Analyze the provided static ad image and generate a COMPREHENSIVE, DETAILED prompt that would recreate this EXACT image.

1. **Identify Copywriting Characteristics** (for later adaptation):
   - EXACT number of words in the main headline/copywriting text
   - Rhetorical figure used (metaphor, personification, hyperbole, analogy, slogan, motivational, aspirational, etc.)
   - Tone (friendly, professional, playful, serious, etc.)
   - Style category (short and persuasive, humor, ironic, direct, emotional, etc.)

2. **Generate a DETAILED Prompt** recreating EVERY visual element: composition and layout, exact colors (hex codes if visible), typography and text placement, background, product presentation, person/character, lighting and effects, buttons/CTAs, overall mood.

Format your response EXACTLY as:
**{COPYWRITING_MARKER}:**
- Word Count: [exact number]
- Rhetorical Figure: [primary figure]
- Tone: [tone]
- Style: [style category]

**{REFERENCE_PROMPT_MARKER}:**
[the complete, extremely detailed prompt that would reproduce this ad]"""


@dataclass(frozen=True)
class CopywritingProfile:
    word_count: Optional[int] = None
    rhetorical_figure: Optional[str] = None
    tone: Optional[str] = None
    style: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "wordCount": self.word_count,
            "rhetoricalFigure": self.rhetorical_figure,
            "tone": self.tone,
            "styleCategory": self.style,
        }


def _branding_clause(branding: Optional[Dict[str, Any]]) -> str:
    if not branding:
        return "- Use the reference colors and typography, adapting product-specific elements"

    colors = []
    raw_colors = branding.get("colors") or {}
    if not isinstance(raw_colors, dict):
        raw_colors = dict(enumerate(raw_colors)) if isinstance(raw_colors, list) else {"primary": raw_colors}
    for key, value in raw_colors.items():
        if isinstance(value, str):
            colors.append(f"{key}: {value}")
        elif isinstance(value, dict) and value.get("value"):
            colors.append(f"{key}: {value['value']}")
        else:
            colors.append(f"{key}: {json.dumps(value, sort_keys=True)}")

    typography = branding.get("typography") or {}
    raw_fonts = branding.get("fonts") or []
    fonts = [
        f.get("family") or f.get("name") if isinstance(f, dict) else str(f)
        for f in (raw_fonts if isinstance(raw_fonts, list) else [raw_fonts])
    ]
    font_families = typography.get("fontFamilies") or ", ".join(f for f in fonts if f)

    lines = ["**Brand Integration:**", "Use these branding elements from the product page:"]
    if colors:
        lines.append(f"- Product Brand Colors: {', '.join(colors)} (use them for product elements and accents)")
    if font_families:
        if not isinstance(font_families, str):
            font_families = json.dumps(font_families, sort_keys=True)
        lines.append(f"- Product Brand Typography: {font_families} (use for product text or headlines if it fits)")
    if typography.get("fontSizes"):
        lines.append(f"- Brand Font Sizes: {json.dumps(typography['fontSizes'], sort_keys=True)}")
    lines.append("Keep the reference ad's overall design structure and composition.")
    return "\n".join(lines)


def _copywriting_clause(
    profile: Optional[CopywritingProfile],
    copywriting: Optional[str],
    scraped_summary: Optional[str],
) -> str:
    profile = profile or CopywritingProfile()
    figure = profile.rhetorical_figure or "match reference"
    tone = profile.tone or "professional"
    style = profile.style or "persuasive"
    words = profile.word_count or 10

    if scraped_summary:
        return f"""**Copywriting Creation (CRITICAL):**
Using the scraped product page information below, create copywriting that:
- Uses the same rhetorical figure: "{figure}"
- Keeps the same tone: "{tone}"
- Matches the same style: "{style}"
- Word count: {words} words (target {max(words - 2, 1)} to {words + 2})

**Scraped Product Page Data:**
{scraped_summary}"""

    if copywriting:
        return f'**Copywriting:**\nUse this exact copywriting in the prompt: "{copywriting}"'

    return f"""**Copywriting:**
Create copywriting matching the reference style:
- Rhetorical figure: {figure}
- Tone: {tone}
- Style: {style}
- Word count: {words} words"""


def build_static_ad_adaptation_prompt(
    reference_prompt: str,
    profile: Optional[CopywritingProfile] = None,
    copywriting: Optional[str] = None,
    scraped_summary: Optional[str] = None,
    branding: Optional[Dict[str, Any]] = None,
    max_chars: int = 999,
) -> str:
    words = (profile.word_count if profile else None) or 10
    scraped_line = "\n3. Scraped product page information (summary and branding)" if scraped_summary else ""

    return f"""You are an expert prompt engineer. You have been given:
1. A DETAILED prompt that recreates the reference static ad design
2. An image of a NEW product that replaces the product in the reference ad{scraped_line}

**Reference Ad Prompt (base structure - keep ALL design elements):**
{reference_prompt}

**Your Task:**
Adapt the reference prompt into a NEW prompt for the product in the provided image.

1. **Analyze Product Context:** identify product type, category, audience and industry. If the reference theme does not fit (e.g. gym ad but the new product is lipstick), adapt background, setting and person styling to the product's category while keeping the EXACT same composition and layout.

2. **Maintain ALL design elements:** composition, layout and positions, visual effects, person presentation style, buttons/CTAs, typography placement.

3. **Adapt Colors and Typography:**
{_branding_clause(branding)}
- Keep the reference palette for background and overall design

4. **Replace product references** with the NEW product: same angles, lighting, shadows, arrangement and number of instances as in the reference.

5. **Create Copywriting:**
{_copywriting_clause(profile, copywriting, scraped_summary)}

**Output:**
Provide ONLY the final prompt, ready for Nano Banana Pro or a similar image generator, including the new copywriting ({words} words). It MUST be a single paragraph UNDER {max_chars} characters. No explanations or additional text."""
