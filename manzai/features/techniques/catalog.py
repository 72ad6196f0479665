"""Rhetorical technique catalog for manzai scripts.

Three fixed categories: boke (setup), tsukkomi (reaction) and general
(overall structure). Unknown identifiers are dropped silently so clients
holding stale identifiers keep working.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional


class TechniqueCategory(str, Enum):
    """Supported technique categories (request field names)."""
    BOKE = "boke"
    TSUKKOMI = "tsukkomi"
    GENERAL = "general"


BOKE_DEFS: Dict[str, str] = {
    "IIMACHIGAI": "言い間違い／聞き間違い：音韻のズレで意外性を生むボケ（例：「カニ食べ行こう」→「紙食べ行こう？」）。",
    "HIYU": "比喩ボケ：比喩で誇張してのボケ",
    "GYAKUSETSU": "逆説ボケ：一見正論に聞こえるが論理が破綻しているボケ。",
    "GIJI_RONRI": "擬似論理ボケ：論理風だが中身がズレているボケ。",
    "TSUKKOMI_BOKE": "ツッコミボケ：ツッコミの発言が次のボケの伏線になるボケ。",
    "RENSA": "ボケの連鎖：ボケが次のボケを誘発するように連続させ、加速感を生むボケ。",
    "KOTOBA_ASOBI": "言葉遊び：ダジャレ・韻などで言語的にふざける。",
}

TSUKKOMI_DEFS: Dict[str, str] = {
    "ODOROKI_GIMON": "驚き・疑問ツッコミ：観客の代弁として即時の驚き・疑問でのツッコミ。",
    "AKIRE_REISEI": "呆れ・冷静ツッコミ：感情を抑えた冷静な態度でのツッコミ。",
    "OKORI": "怒りツッコミ：怒ったような言い方でのツッコミ。",
    "KYOKAN": "共感ツッコミ：相手の感情に一度共感してから、ツッコミをする。",
    "META": "メタツッコミ：漫才の形式・構造そのものを指摘するツッコミ。",
}

GENERAL_DEFS: Dict[str, str] = {
    "SANDAN_OCHI": "三段オチ：1・2をフリ、3で意外なオチ。",
    "GYAKUHARI": "逆張り構成：期待・常識を外して予想を逆手に取る。",
    "TENKAI_HAKAI": "展開破壊：築いた流れを意図的に壊し異質な要素を挿入。",
    "KANCHIGAI_TEISEI": "勘違い→訂正：ボケの勘違いをツッコミが訂正する構成。",
    "SURECHIGAI": "すれ違い：互いの前提が噛み合わずズレ続けて笑いを生む。",
    "TACHIBA_GYAKUTEN": "立場逆転：途中または終盤で役割・地位がひっくり返る。",
}

CATALOG: Dict[TechniqueCategory, Dict[str, str]] = {
    TechniqueCategory.BOKE: BOKE_DEFS,
    TechniqueCategory.TSUKKOMI: TSUKKOMI_DEFS,
    TechniqueCategory.GENERAL: GENERAL_DEFS,
}

SECTION_HEADINGS: Dict[TechniqueCategory, str] = {
    TechniqueCategory.BOKE: "【ボケ技法】",
    TechniqueCategory.TSUKKOMI: "【ツッコミ技法】",
    TechniqueCategory.GENERAL: "【全般の構成技法】",
}

LABEL_SEPARATOR = "："


@dataclass(frozen=True)
class TechniqueSelection:
    """Technique identifiers requested by the client, per category."""
    boke: List[str] = field(default_factory=list)
    tsukkomi: List[str] = field(default_factory=list)
    general: List[str] = field(default_factory=list)

    def ids(self, category: TechniqueCategory) -> List[str]:
        return list(getattr(self, category.value))

    def is_empty(self) -> bool:
        return not (self.boke or self.tsukkomi or self.general)


def describe(category: TechniqueCategory, ids: Optional[Iterable[str]]) -> List[str]:
    """Return catalog descriptions for recognized ids, in request order."""
    table = CATALOG[category]
    return [table[key] for key in (ids or []) if isinstance(key, str) and key in table]


def label_of(description: str) -> str:
    return description.split(LABEL_SEPARATOR, 1)[0]


def labelize(selection: TechniqueSelection) -> Dict[str, List[str]]:
    """Short labels of the recognized techniques, keyed by category value."""
    return {
        category.value: [label_of(desc) for desc in describe(category, selection.ids(category))]
        for category in TechniqueCategory
    }


def build_guideline(selection: TechniqueSelection) -> str:
    """Bullet list of selected technique descriptions grouped by category."""
    parts: List[str] = []
    for category in TechniqueCategory:
        lines = [f"- {desc}" for desc in describe(category, selection.ids(category))]
        if lines:
            parts.append(SECTION_HEADINGS[category])
            parts.extend(lines)
    return "\n".join(parts)

