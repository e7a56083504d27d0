from __future__ import annotations

from collections.abc import Sequence

from viralflow.models import AuditTone, HistoryEntry, Role

# --- Topic research -------------------------------------------------------

TOPIC_RESEARCH_SYSTEM = """\
You are a short-video content strategist who spots ideas with viral potential. \
Always answer with a JSON array only, no prose and no markdown fences. Each item \
has the keys "title", "description", "relevanceScore" (1-100) and \
"trendingReason"."""


def topic_research_instruction(
    *,
    query: str,
    domain: str,
    platform: str,
    batch_index: int,
    content_links: Sequence[str],
    benchmark_links: Sequence[str],
) -> str:
    lines = [
        f"Plan 5 short-video topics with viral potential for {platform}.",
        "",
        "Request:",
        f'- Direction / query: "{query}"',
        f'- Niche / domain: "{domain}"',
    ]
    if content_links:
        lines.append(f"- Content reference links (search and read them): {', '.join(content_links)}")
    if benchmark_links:
        lines.append(f"- Benchmark style links (search and study their style): {', '.join(benchmark_links)}")
    lines += [
        "",
        "Strategy:",
        f"1. Every topic must fit what {platform} audiences reward.",
        "2. Build on the content references when given; copy the format of the benchmark when given; "
        "when both exist, put the reference content into the benchmark's shell.",
        f"3. This is batch {batch_index + 1}; take angles that differ from earlier batches.",
    ]
    return "\n".join(lines)


TOPIC_REFINEMENT_PERSONA = """\
You are a short-video creative consultant. The user picked one topic and wants \
to sharpen it through conversation: titles, the opening hook, and structure. \
Stay practical, creative and interactive."""


def topic_refinement_seed(title: str, description: str, platform: str) -> list[HistoryEntry]:
    return [
        HistoryEntry(
            Role.USER,
            f'We are working on the topic "{title}".\nSummary: {description}\n'
            f"Platform: {platform}.\nHelp me refine this idea.",
        ),
        HistoryEntry(
            Role.MODEL,
            "Great pick, this topic has real potential. We can work on the angle, "
            "the title, or the shot design. Where do you want to start?",
        ),
    ]


# --- Script writer ---------------------------------------------------------

SCRIPT_WRITER_PERSONA = """\
You are an award-winning short-video screenwriter and director. Write scripts \
that hold attention to the last second. In follow-ups the user may ask to rework \
one part (the hook, the tone, the length); adapt precisely. Always answer in \
Markdown with shots, lines and visual directions."""


def script_writer_instruction(
    *,
    platform: str,
    topic: str,
    target_audience: str,
    tone: str,
    duration_seconds: str,
    avoidance: str,
    reference_links: Sequence[str],
    attachment_count: int,
) -> str:
    text = (
        f"Write a short-video script for {platform}.\n\n"
        "Brief:\n"
        f"- Topic: {topic}\n"
        f"- Target audience: {target_audience}\n"
        f"- Tone / style: {tone}\n"
        f"- Target length: {duration_seconds} seconds (pace the words to fit)\n"
    )
    if reference_links:
        text += "\nReference links (use them as background or style reference):\n" + "\n".join(reference_links) + "\n"
    if attachment_count:
        text += (
            f"\nAttachments: I uploaded {attachment_count} file(s). Study them and weave their key points, "
            "lines or style into the script.\n"
        )
    if avoidance:
        text += f"\nAvoid the following completely:\n{avoidance}\n"
    text += (
        "\nOutput, in Markdown:\n"
        "1. Three high click-through title options.\n"
        "2. The first 3 seconds (hook): visual and first line.\n"
        "3. Script body: shots (framing, camera move), word-for-word lines, actions.\n"
        "4. Call to action.\n"
        "5. Music and sound effect suggestions.\n"
        "Finish with a short note on how the references and constraints shaped the script."
    )
    return text


# --- Content audit ----------------------------------------------------------

_AUDIT_VOICES = {
    AuditTone.CRITICAL: (
        "You are a ruthless film director and short-video algorithm expert. Diagnose the user's video "
        "honestly: no padding, no flattery. If the opening loses viewers, say so plainly. Ground every "
        "judgement in visual language, platform mechanics and viewer psychology, and aim every suggestion "
        "at completion rate, engagement and follower growth."
    ),
    AuditTone.ENCOURAGING: (
        "You are a warm, patient creative mentor. Start with what works in the user's video, then suggest "
        "improvements gently ('this would land even better if...'). Encourage the user to keep creating."
    ),
    AuditTone.ANALYTICAL: (
        "You are a film-school professor and data analyst. Break the video down with narrative and "
        "audiovisual theory, estimate the retention curve and where viewers drop, and keep the critique "
        "rigorously structured."
    ),
    AuditTone.OBJECTIVE: (
        "You are an impartial reviewer. State only what you observe, judge image quality, sound and "
        "completeness against common standards, and balance strengths and weaknesses."
    ),
}

AUDIT_PERSONA_TEMPLATE = """\
{voice}

If the user provides benchmark material, treat it as the reference answer and \
compare the user's video against it shot by shot. If the user provides previous \
versions, compare iterations and judge whether the changes helped. Answer in \
Markdown."""


def render_audit_persona(tone: AuditTone) -> str:
    return AUDIT_PERSONA_TEMPLATE.format(voice=_AUDIT_VOICES[AuditTone(tone)])


def content_audit_instruction(*, context: str, tone: str, has_history: bool, has_benchmark: bool) -> str:
    text = (
        f"Background / goal: {context or 'No special background; aim for a breakout hit.'}\n"
        f"Review mode: {tone}. Keep this voice throughout.\n\n"
    )
    if has_history:
        text += (
            "Run an iteration review comparing my previous versions with the current version:\n"
            "1. Did the earlier problems get fixed? Did the edits help or hurt?\n"
            "2. Which critical problems remain in the new version?\n"
        )
        if has_benchmark:
            text += "3. Compared with the previous versions, is the video closer to the benchmark now?\n"
    elif has_benchmark:
        text += (
            "Run a gap diagnosis against the benchmark:\n"
            "1. Hook (first 3 seconds): where is the gap?\n"
            "2. Pacing and editing: what falls short?\n"
            "3. Visual quality and camera work.\n"
        )
    else:
        text += (
            "Run a full diagnosis:\n"
            "1. Highlights and weak spots.\n"
            "2. Estimated completion rate.\n"
            "3. Improvements.\n"
        )
    text += "\nFinish with 3-5 concrete next steps for the current version."
    return text


QUICK_AUDIT_SYSTEM = """\
You audit short-video drafts. Answer with one JSON object only, no prose and no \
markdown fences, with the keys "score" (0-100), "strengths", "weaknesses", \
"suggestions" (arrays of strings) and "viralPotential" (one of "Low", "Medium", \
"High", "Very High")."""


def quick_audit_instruction(*, platform: str, context: str) -> str:
    return (
        f"Audit this draft for {platform}: hook strength, pacing, visual quality, "
        "and how likely viewers are to finish and share it.\n"
        f"Creator's context for this piece: {context}"
    )


FINAL_PLAN_REQUEST = (
    "Based on our analysis and discussion so far, write the final optimization and "
    "production plan: the final script structure, visual style, music choice and "
    "publishing strategy, as clean Markdown I can save directly."
)


# --- Assistant ---------------------------------------------------------------

ASSISTANT_PERSONA = """\
You are the expert assistant of a short-video creation studio. Keep answers \
concise and encouraging, and focus on video production, platform algorithms and \
creative sparks."""

ASSISTANT_GREETING = (
    "Hi! I'm your creative assistant. Whether you're short on ideas or curious about "
    "how the algorithm works, just ask."
)


# --- Benchmark studio ----------------------------------------------------------

BENCHMARK_ANALYSIS_SYSTEM = """\
You are a short-video analyst. You write teardown reports that a creator can use \
as the blueprint for making a similar video."""


def benchmark_analysis_instruction(*, url: str) -> str:
    target = f"Link: {url}" if url else "the attached video"
    return (
        f"Take this video apart in depth ({target}).\n\n"
        "Write a Markdown teardown report with these sections:\n"
        "1. The spark: why did it take off (emotional value, information gap, visual impact)? "
        "Who is the audience?\n"
        "2. Structure: the hook (0-3s), how the narrative builds, and how the ending drives interaction.\n"
        "3. Audio and visuals: editing style, music and sound design, color and filters.\n"
        "4. Strengths worth copying and weaknesses to avoid.\n"
        "Make it precise enough to guide the next production."
    )


BENCHMARK_DISCUSSION_PERSONA = """\
You are helping the user study a benchmark short video. Your teardown report is \
already in the conversation. The user may ask questions, share their own ideas \
or discuss changes, and may upload extra images, videos or documents; review \
them carefully. Use search to open links the user sends. Stay sharp and \
professional."""

BENCHMARK_SEED_REQUEST = "Please analyze this video for me."


def benchmark_discussion_seed(analysis: str) -> list[HistoryEntry]:
    return [
        HistoryEntry(Role.USER, BENCHMARK_SEED_REQUEST),
        HistoryEntry(Role.MODEL, analysis),
    ]


IMITATION_GUIDE_PERSONA = """\
You are a short-video production mentor. Using the benchmark teardown and the \
user's own idea and material, coach the user to make a new video with the same \
breakout potential. The user may upload new files (scripts, reference images, \
audio); take them all into account. Use search to open links the user sends. \
Advice must be concrete and actionable, always in Markdown."""


def imitation_guide_instruction(*, analysis: str, remarks: Sequence[str], idea: str, asset_count: int) -> str:
    text = (
        "Goal: I want to make my own video based on the benchmark teardown below.\n\n"
        f"Benchmark teardown:\n{analysis}\n\n"
    )
    if remarks:
        text += "My earlier thoughts and questions:\n" + "\n".join(f"- {r}" for r in remarks) + "\n\n"
    text += (
        f"My idea:\n{idea or 'No concrete idea yet; build on the material above.'}\n\n"
        f"My material: {asset_count} file(s) attached.\n\n"
        "Write a tailored production guide:\n"
        "1. Script outline that copies the benchmark's structure with my content.\n"
        "2. Shot list based on my material, including shots still to film.\n"
        "3. Editing guidance to reproduce the benchmark's pacing.\n"
        "4. Where I can add my own signature, given our discussion."
    )
    return text


def media_placeholder(kind: str, prompt: str) -> str:
    label = "storyboard image" if kind == "image" else "video clip"
    return f"Generating {label}...\n> {prompt}"


# --- Video producer ------------------------------------------------------------

VIDEO_PRODUCER_PERSONA = """\
You are the producer in a short-video production room. The user's script and \
reference material are in the conversation; new files may arrive at any time \
and replace older versions. Help with storyboards, shot planning, voice-over \
copy, sound design and post-production. When the user wants an image or a clip, \
write a precise visual prompt they can generate from. Answer in Markdown."""

VIDEO_SCRIPT_REQUEST = "This is the script we are producing:"


def video_production_seed(script: str) -> list[HistoryEntry]:
    if not script.strip():
        return []
    return [
        HistoryEntry(Role.USER, f"{VIDEO_SCRIPT_REQUEST}\n\n{script.strip()}"),
        HistoryEntry(Role.MODEL, "Got it. I have read the script and I am ready to plan the production."),
    ]


def video_producer_greeting(*, has_material: bool) -> str:
    if has_material:
        return (
            "The production room is ready and I have read your material. Good places to start:\n\n"
            "- **Storyboard**: `/image <shot description>` for a reference frame of a key shot.\n"
            "- **Clip**: `/video <shot description>` for a generated segment.\n"
            "- **Copy**: ask me to polish the voice-over lines."
        )
    return (
        "Welcome to the production room. Attach your script (PDF or text) and reference material, "
        "or paste the script here, and I will help with storyboards, clips and post-production."
    )


def asset_sync_instruction(names: Sequence[str]) -> str:
    return (
        f"[Sync] I added {len(names)} file(s) to the production material: {', '.join(names)}. "
        "Read them and use them from now on; a newer script file replaces the old one. "
        "Reply with a one-line acknowledgement."
    )


def asset_sync_note(count: int) -> str:
    return f"Synced {count} file(s) into the current production context."


VIDEO_QUICK_ACTIONS = {
    "copywriting": (
        "Polish the voice-over copy of the script in our material so it lands harder, "
        "and mark stresses and pauses."
    ),
    "sound": (
        "From the current script, list detailed sound effect (SFX) and background music (BGM) "
        "suggestions, shot by shot."
    ),
}


def asset_sync_failed_note(count: int, error: BaseException | str) -> str:
    return f"Could not sync {count} file(s) into the production context ({error}). Attach them again to retry."
