"""Script text normalization.

Pure functions that reshape free-form model output into the wire format:
one title, `name: text` turns separated by exactly one blank line, and a single
closing line spoken by the second character. The pipeline order matters:
band cut (overflow allowed) -> speaker colons -> blank lines -> closing line,
then the strict band pass in finalize_body once all model calls are done.
"""

import re
from typing import Iterable, List, Optional, Tuple

from manzai.features.script.length_band import LengthBand

CLOSING_PHRASE = "もういいよ！"
TITLE_PLACEHOLDER = "（タイトル未設定）"
SENTENCE_ENDINGS = ("。", "！", "？", "…", "♪", "!", "?")

# Speaker names longer than this are treated as prose, not a turn prefix.
MAX_SPEAKER_NAME = 20

_SPEAKER_PREFIX_RE = re.compile(rf"^\s*([^\n:：]{{1,{MAX_SPEAKER_NAME}}}?)\s*[:：](?!\d)[ \t　]*")
_TURN_RE = re.compile(rf"^[^\n:：]{{1,{MAX_SPEAKER_NAME}}}:\s")
_CODE_FENCE_RE = re.compile(r"```[\s\S]*?```")
_MD_HEADING_RE = re.compile(r"^#{1,6}\s.*$", re.MULTILINE)
_HEADING_PREFIX_RE = re.compile(r"^#{1,6}\s*")
_TITLE_LABEL_RE = re.compile(r"^(?:【\s*(?:タイトル|題名|title)\s*】\s*[:：]?|(?:タイトル|題名|title)\s*[:：])\s*", re.IGNORECASE)
_BRACKETED_LINE_RE = re.compile(r"^【[^】\n]*】$")
_BLANK_SPLIT_RE = re.compile(r"\n[ \t]*\n")

_OPENING_BRACKETS = "【「『"
_CLOSING_BRACKETS = "】」』"


def is_turn_line(line: str) -> bool:
    """True for a canonical `name: text` line."""
    return bool(_TURN_RE.match(line.strip()))


def has_turn_lines(text: str) -> bool:
    return any(is_turn_line(line) for line in (text or "").split("\n"))


def _speaker_of(line: str) -> Optional[str]:
    match = _SPEAKER_PREFIX_RE.match(line)
    return match.group(1).strip() if match else None


def _starts_with_speaker(line: str, speaker_names: Iterable[str]) -> bool:
    name = _speaker_of(line)
    return bool(name) and name in set(speaker_names)


def clean_title(raw: str) -> str:
    """Strip heading markers, labels and decorative brackets from a title line."""
    for line in (raw or "").replace("\r\n", "\n").split("\n"):
        title = line.strip()
        previous = None
        while title != previous:
            previous = title
            title = _HEADING_PREFIX_RE.sub("", title).strip()
            title = title.strip("*").strip()
            title = _TITLE_LABEL_RE.sub("", title).strip()
            title = title.lstrip(_OPENING_BRACKETS).rstrip(_CLOSING_BRACKETS).strip()
        if title:
            return title
    return ""


def split_title_and_body(text: str, speaker_names: Optional[Iterable[str]] = None) -> Tuple[str, str]:
    """Split raw model output into (title, body).

    The first blank-line-delimited block is the title candidate. Without such a
    block the whole text is body and the title is empty. When speaker names are
    given, a first block that opens with a dialogue turn is body, and turn lines
    glued under the title line are moved back into the body.
    """
    if not text or not text.strip():
        return "", ""
    s = text.replace("\r\n", "\n").strip()
    parts = _BLANK_SPLIT_RE.split(s, maxsplit=1)
    if len(parts) < 2:
        return "", s

    head, rest = parts[0], parts[1].strip()
    names = list(speaker_names or [])
    head_lines = [line for line in head.split("\n") if line.strip()]
    if names and head_lines and _starts_with_speaker(head_lines[0], names):
        return "", s

    title = clean_title(head)
    if names and len(head_lines) > 1:
        spill = head_lines[1:]
        if any(_starts_with_speaker(line, names) for line in spill):
            rest = "\n".join(spill) + "\n\n" + rest
    return title, rest.strip()


def _looks_like_heading(line: str) -> bool:
    stripped = line.strip()
    if not stripped or is_turn_line(stripped):
        return False
    return (
        stripped.startswith("#")
        or bool(_BRACKETED_LINE_RE.match(stripped))
        or bool(_TITLE_LABEL_RE.match(stripped))
    )


def enforce_single_title(title: str, body: str) -> str:
    """Drop a duplicated title or heading from the first body line, once."""
    lines = (body or "").split("\n")
    first_idx = next((i for i, line in enumerate(lines) if line.strip()), None)
    if first_idx is None:
        return ""
    first = lines[first_idx]
    duplicate = bool(title) and clean_title(first) == clean_title(title) and not is_turn_line(first)
    if duplicate or _looks_like_heading(first):
        lines = lines[first_idx + 1:]
    return "\n".join(lines).lstrip()


def normalize_speaker_colons(text: str) -> str:
    """Rewrite `name：` / `name :` line prefixes to `name: `."""
    out = []
    for line in (text or "").split("\n"):
        match = _SPEAKER_PREFIX_RE.match(line)
        if match:
            line = f"{match.group(1).strip()}: {line[match.end():]}"
        out.append(line)
    return "\n".join(out)


def ensure_blank_line_between_turns(text: str) -> str:
    """Exactly one blank line between adjacent turns, never two in a row."""
    compressed: List[str] = []
    for line in (text or "").split("\n"):
        if not line.strip():
            if compressed and compressed[-1] == "":
                continue
            compressed.append("")
            continue
        compressed.append(line)

    out: List[str] = []
    for i, cur in enumerate(compressed):
        out.append(cur)
        nxt = compressed[i + 1] if i + 1 < len(compressed) else None
        if nxt is not None and is_turn_line(cur) and is_turn_line(nxt):
            out.append("")
    return re.sub(r"\n{3,}", "\n\n", "\n".join(out))


def _closing_line_re(phrase: str) -> "re.Pattern[str]":
    core = re.escape(phrase.rstrip("!！"))
    return re.compile(rf"^\s*(?:[^\n:：]{{1,{MAX_SPEAKER_NAME}}}[:：]\s*)?{core}[!！。．.\s]*$")


def strip_closing_lines(text: str, phrase: str = CLOSING_PHRASE) -> str:
    """Remove every trailing closing-phrase line (and blank lines around them)."""
    pattern = _closing_line_re(phrase)
    lines = (text or "").rstrip().split("\n")
    while lines and (not lines[-1].strip() or pattern.match(lines[-1])):
        lines.pop()
    return "\n".join(lines).rstrip()


def closing_line(tsukkomi_name: str, phrase: str = CLOSING_PHRASE) -> str:
    return f"{tsukkomi_name}: {phrase}"


def ensure_closing_line(text: str, tsukkomi_name: str = "B", phrase: str = CLOSING_PHRASE) -> str:
    """End the script with exactly one canonical closing line."""
    body = strip_closing_lines(text, phrase)
    outro = closing_line(tsukkomi_name, phrase)
    return f"{body}\n\n{outro}" if body else outro


def _ends_with_sentence_mark(text: str) -> bool:
    return text.endswith(SENTENCE_ENDINGS)


def enforce_band(text: str, min_len: int, max_len: int, allow_overflow: bool = False) -> str:
    """Trim to the band ceiling at a sentence boundary; punctuate short text.

    Under the floor only a closing punctuation mark is added; real length
    deficiency is handled by the continuation stage.
    """
    if not text:
        return ""
    t = _CODE_FENCE_RE.sub("", text.strip())
    t = _MD_HEADING_RE.sub("", t).strip()

    if not allow_overflow and len(t) > max_len:
        window = t[:max_len]
        punct_cut = max(window.rfind(mark) for mark in SENTENCE_ENDINGS)
        if punct_cut >= 0:
            punct_cut += 1
        cut = max(punct_cut, window.rfind("\n"))
        if cut < max_len * 0.9:
            cut = max_len
        t = t[:cut].rstrip()
        if not _ends_with_sentence_mark(t):
            t = t[:max_len - 1].rstrip() + "。"

    if t and len(t) < min_len and not _ends_with_sentence_mark(t):
        t += "。"
    return t


def normalize_body(body: str, band: LengthBand, tsukkomi_name: str) -> str:
    """Post-call normalization, overflow allowed (intermediate drafts)."""
    body = enforce_band(body, band.min_len, band.max_len, allow_overflow=True)
    body = normalize_speaker_colons(body)
    body = ensure_blank_line_between_turns(body)
    body = ensure_closing_line(body, tsukkomi_name)
    return body


def prepare_draft(raw: str, band: LengthBand, tsukkomi_name: str, speaker_names: Optional[Iterable[str]] = None) -> Tuple[str, str]:
    """Split raw model output and normalize the body. Returns (title, body)."""
    title, body = split_title_and_body(raw, speaker_names)
    body = enforce_single_title(title, body)
    if not body.strip():
        return title, ""
    return title, normalize_body(body, band, tsukkomi_name)


def finalize_body(body: str, band: LengthBand, tsukkomi_name: str) -> str:
    """Strict band pass that keeps the closing line intact.

    The ceiling is applied to the dialogue before the closing line so a cut
    never removes the mandatory last line.
    """
    dialogue = strip_closing_lines(normalize_speaker_colons(body or ""))
    dialogue = ensure_blank_line_between_turns(dialogue)
    reserve = len(closing_line(tsukkomi_name)) + 2
    dialogue = enforce_band(
        dialogue,
        max(0, band.min_len - reserve),
        max(1, band.max_len - reserve),
        allow_overflow=False,
    )
    dialogue = ensure_blank_line_between_turns(dialogue)
    dialogue = strip_closing_lines(dialogue)
    return ensure_closing_line(dialogue, tsukkomi_name)
