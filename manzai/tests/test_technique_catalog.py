from manzai.features.techniques.catalog import (
    BOKE_DEFS,
    TechniqueCategory,
    TechniqueSelection,
    build_guideline,
    describe,
    labelize,
)


def test_describe_drops_unknown_ids_and_keeps_order():
    result = describe(TechniqueCategory.BOKE, ["RENSA", "NOPE", "HIYU"])
    assert result == [BOKE_DEFS["RENSA"], BOKE_DEFS["HIYU"]]


def test_describe_handles_missing_input():
    assert describe(TechniqueCategory.GENERAL, None) == []


def test_guideline_groups_sections():
    selection = TechniqueSelection(boke=["HIYU"], tsukkomi=["META"], general=["SANDAN_OCHI"])
    guideline = build_guideline(selection)

    lines = guideline.split("\n")
    assert lines[0] == "【ボケ技法】"
    assert lines[1] == "- 比喩ボケ：比喩で誇張してのボケ"
    assert "【ツッコミ技法】" in lines
    assert "【全般の構成技法】" in lines
    assert lines.index("【ボケ技法】") < lines.index("【ツッコミ技法】") < lines.index("【全般の構成技法】")


def test_guideline_skips_empty_sections():
    guideline = build_guideline(TechniqueSelection(tsukkomi=["OKORI", "UNKNOWN"]))
    assert "【ボケ技法】" not in guideline
    assert "【全般の構成技法】" not in guideline
    assert guideline.count("\n- ") == 1


def test_labelize_uses_text_before_separator():
    labels = labelize(TechniqueSelection(boke=["IIMACHIGAI"], general=["SURECHIGAI"]))
    assert labels["boke"] == ["言い間違い／聞き間違い"]
    assert labels["tsukkomi"] == []
    assert labels["general"] == ["すれ違い"]


def test_selection_is_empty():
    assert TechniqueSelection().is_empty()
    assert not TechniqueSelection(general=["GYAKUHARI"]).is_empty()


def test_selection_with_only_unknown_ids_is_not_empty():
    selection = TechniqueSelection(boke=["NOPE"])

    assert not selection.is_empty()
    assert build_guideline(selection) == ""
