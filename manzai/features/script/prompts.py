"""Prompt construction for manzai script generation.

Builds the instruction text for the initial generation call and the follow-up
continuation, verification and title calls. Nothing here talks to a model.
"""

import random
import re
from typing import Iterable, List, Optional, Sequence

from manzai.features.script.length_band import TolerancePolicy, clamp_target_length
from manzai.features.script.normalizer import CLOSING_PHRASE, closing_line, strip_closing_lines
from manzai.features.techniques.catalog import (
    TechniqueCategory,
    TechniqueSelection,
    build_guideline,
    describe,
    labelize,
)
from manzai.models.script import GenerationRequest, PromptPlan

DEFAULT_THEME = "身近な題材"
DEFAULT_GENRE = "一般"
DEFAULT_CHARACTERS = ["A", "B"]
MAX_CHARACTERS = 4

MUST_HAVE_TECHNIQUE = "比喩ツッコミ"
FALLBACK_TECHNIQUE_POOL = (
    "風刺",
    "皮肉",
    "意外性と納得感",
    "勘違い→訂正",
    "言い間違い→すれ違い",
    "立場逆転",
    "具体例の誇張",
)
BASE_STRUCTURE = ["フリ", "伏線回収", "最後のオチ"]
BANNED_META_WORDS = ("比喩", "皮肉", "風刺")

SYSTEM_PROMPT = "あなたは実力派の漫才師コンビです。舞台で即使える台本だけを出力してください。解説・メタ記述は禁止。"
CONTINUATION_SYSTEM_PROMPT = "あなたは実力派の漫才師コンビです。本文の“続き”だけを出力してください。"
VERIFICATION_SYSTEM_PROMPT = "あなたは漫才台本の校閲者です。指示どおり「OK」か修正後の本文だけを出力してください。"
TITLE_SYSTEM_PROMPT = "あなたは漫才の構成作家です。タイトルだけを1行で出力してください。"

VERIFICATION_OK = "OK"

_NAME_SPLIT_RE = re.compile(r"[、,]")

_module_rng = random.Random()


def parse_characters(value) -> List[str]:
    """Accept a comma / 、 separated string or a list; keep at most four names."""
    if isinstance(value, (list, tuple)):
        raw = [str(item) for item in value if item is not None]
    else:
        raw = _NAME_SPLIT_RE.split(str(value or "").strip())
    names = [name.strip() for name in raw if name and name.strip()]
    return names[:MAX_CHARACTERS] or list(DEFAULT_CHARACTERS)


def build_generation_request(
    *,
    theme=None,
    genre=None,
    characters=None,
    length=None,
    techniques: Optional[TechniqueSelection] = None,
    user_id: Optional[str] = None,
    default_length: int = 350,
    max_length: int = 2000,
) -> GenerationRequest:
    return GenerationRequest(
        theme=str(theme or "").strip() or DEFAULT_THEME,
        genre=str(genre or "").strip() or DEFAULT_GENRE,
        characters=parse_characters(characters),
        target_length=clamp_target_length(length, default=default_length, maximum=max_length),
        techniques=techniques or TechniqueSelection(),
        user_id=(user_id or None),
    )


def pick_fallback_techniques(rng: Optional[random.Random] = None) -> List[str]:
    """Mandatory technique plus one to three random extras from the pool."""
    source = rng or _module_rng
    extra_count = source.randint(1, 3)
    return [MUST_HAVE_TECHNIQUE, *source.sample(list(FALLBACK_TECHNIQUE_POOL), extra_count)]


def build_prompt(
    request: GenerationRequest,
    tolerance: TolerancePolicy,
    rng: Optional[random.Random] = None,
) -> PromptPlan:
    band = tolerance.band(request.target_length)
    names = request.characters
    tsukkomi_name = request.tsukkomi_name
    selection = request.techniques

    structure_meta = list(BASE_STRUCTURE)
    if not selection.is_empty():
        guideline = build_guideline(selection)
        labels = labelize(selection)
        techniques_for_meta = labels[TechniqueCategory.BOKE.value] + labels[TechniqueCategory.TSUKKOMI.value]
        structure_meta += labels[TechniqueCategory.GENERAL.value]
        required = [desc for category in TechniqueCategory for desc in describe(category, selection.ids(category))]
    else:
        techniques_for_meta = pick_fallback_techniques(rng)
        guideline = "【採用する技法】\n" + "\n".join(f"- {t}" for t in techniques_for_meta)
        required = list(techniques_for_meta)

    prompt = "\n".join([
        "あなたは実力派の漫才師コンビです。「採用する技法」を必ず使い、日本語の漫才台本を作成してください。",
        "",
        f"■題材: {request.theme}",
        f"■ジャンル: {request.genre}",
        f"■登場人物: {'、'.join(names)}",
        f"■目標文字数: {band.min_len}〜{band.max_len}文字（必ずこの範囲内に収める）",
        "",
        "■必須の構成",
        "- 1) フリ（導入）：ボケやオチを成立させるための「前提」「状況設定」「観客との共通認識づくり」を設定する。",
        "- 2) 伏線回収：フリ（導入）の段階で提示された情報・言葉・構図を、後半で再登場させて「意外な形で再接続」させる。",
        "- 3) 最後は明確な“オチ”：全てのズレ・やり取りを収束させる表現、言葉を使う。",
        "",
        "■必ず使用する技法（名称を本文に書かない）",
        "- 下記の各技法は **すべて** 本文中で最低1回以上、観客に伝わる具体的な台詞や展開として **必ず** 用いること（未使用は不可）。",
        "- 出力前に **自己チェック** を行い、未使用の技法がある場合は **本文を追記** して満たしてから出力を終えること。",
        "- 技法名や“この技法を使う”といったメタ表現は本文に **絶対に書かない**。",
        guideline,
        "",
        "■分量・形式の厳守",
        f"- 会話の行数は 少なくとも {band.min_lines} 行以上（1台詞あたり 25〜40 文字目安）。",
        "- 各台詞は「名前: セリフ」の形式（半角コロン＋半角スペース : を使う）。",
        "- 各台詞の間には必ず空行を1つ入れる（Aの行とBの行の間を1行空ける）。",
        "- 出力は本文のみ（解説・メタ記述や途中での打ち切りを禁止）。",
        f"- 最後は必ず {tsukkomi_name}: {CLOSING_PHRASE.rstrip('！')} の一行で締める（この行は文字数に含める）。",
        "- " + "".join(f"「{word}」" for word in BANNED_META_WORDS) + "と直接本文に書かない。",
        "- 「緊張感のある状態」とそれが「緩和する状態」を必ず作る。",
        "■見出し・書式",
        "- 最初の1行に【タイトル】を入れ、その直後に本文（漫才）を続ける",
        "- タイトルと本文の間には必ず空行を1つ入れる",
        "■その他",
        "- 人間にとって「意外性」があるが「納得感」のある表現を使う。",
        "- 登場人物の個性を反映する。",
        "- 観客がしっかり笑える表現にする。",
    ])

    return PromptPlan(
        prompt=prompt,
        techniques_for_meta=techniques_for_meta,
        structure_meta=structure_meta,
        required_techniques=required,
        band=band,
        characters=list(names),
        tsukkomi_name=tsukkomi_name,
    )


def initial_messages(plan: PromptPlan) -> List[dict]:
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": plan.prompt},
    ]


def continuation_messages(body: str, remaining_chars: int, tsukkomi_name: str) -> List[dict]:
    seed = strip_closing_lines(body)
    prompt = "\n".join([
        "以下は途中まで書かれた漫才の本文です。これを“そのまま続けてください”。",
        "・タイトルは出さない",
        "・これまでの台詞やネタの反復はしない",
        f"・少なくとも {remaining_chars} 文字以上、自然に展開し、最後は {closing_line(tsukkomi_name)} で締める",
        "・各行は「名前: セリフ」の形式（半角コロン＋スペース）",
        "・台詞同士の間には必ず空行を1つ挟む",
        "",
        "【これまでの本文】",
        seed,
    ])
    return [
        {"role": "system", "content": CONTINUATION_SYSTEM_PROMPT},
        {"role": "user", "content": prompt},
    ]


def banned_terms_for(plan: PromptPlan) -> List[str]:
    """Words that must not appear verbatim in the script body."""
    terms: List[str] = list(BANNED_META_WORDS)
    for label in plan.techniques_for_meta + plan.structure_meta[len(BASE_STRUCTURE):]:
        if label not in terms:
            terms.append(label)
    return terms


def find_banned_terms(body: str, terms: Iterable[str]) -> List[str]:
    return [term for term in terms if term and term in (body or "")]


def verification_messages(body: str, plan: PromptPlan, found_terms: Sequence[str] = ()) -> List[dict]:
    band = plan.band
    checklist = [
        "■チェックリスト",
        "- 次の技法をすべて最低1回、具体的な台詞や展開として使っている:",
        *[f"  - {t}" for t in plan.required_techniques],
        "- 次の語を本文に書いていない: " + "、".join(banned_terms_for(plan)),
        f"- 本文の文字数が {band.min_len}〜{band.max_len} 文字に収まっている",
        "- 各台詞は「名前: セリフ」の形式（半角コロン＋半角スペース）で、台詞の間に空行が1つだけある",
        f"- 最後の行が {closing_line(plan.tsukkomi_name)} である",
    ]
    if found_terms:
        checklist.append("（自動検出: 本文に禁止語 " + "、".join(found_terms) + " が含まれています。必ず言い換えてください）")

    prompt = "\n".join([
        "以下の漫才台本をチェックリストに照らして確認してください。",
        f"すべて満たしていれば「{VERIFICATION_OK}」とだけ出力してください。",
        "満たしていない項目があれば、修正した本文全体だけを出力してください（タイトル・解説は不要）。",
        "",
        *checklist,
        "",
        "【本文】",
        body,
    ])
    return [
        {"role": "system", "content": VERIFICATION_SYSTEM_PROMPT},
        {"role": "user", "content": prompt},
    ]


def title_messages(body: str, theme: str) -> List[dict]:
    prompt = "\n".join([
        f"次の漫才（題材: {theme}）に、観客の興味を引く短いタイトルを1つ付けてください。",
        "・出力はタイトルのみ（括弧・記号・説明は不要）",
        "",
        "【本文】",
        body,
    ])
    return [
        {"role": "system", "content": TITLE_SYSTEM_PROMPT},
        {"role": "user", "content": prompt},
    ]


def is_verification_ok(reply: str) -> bool:
    cleaned = (reply or "").strip().strip("「」。.!！ ").upper()
    return cleaned == VERIFICATION_OK or not cleaned
