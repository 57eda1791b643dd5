# ===============================================
# tests/test_fallback.py
# ===============================================

from replygen.citations import markers_in
from replygen.fallback import DEFAULT_TEMPLATE, fallback_reply, select_template


def test_topic_matching():
    assert select_template("Nipah virus polymerase structures").topic == "virology"
    assert select_template("ecDNA amplicons drive resistance").topic == "circular-nucleic-acids"
    assert select_template("Our Nextflow pipeline for RNAseq").topic == "bioinformatics"


def test_keywords_count_towards_the_match():
    assert select_template("Big news today", ["chromatin", "enhancer"]).topic == "molecular-biology"


def test_unmatched_post_uses_default():
    assert select_template("Quarterly sales were strong") is DEFAULT_TEMPLATE


def test_selection_is_deterministic():
    post = "Nipah virus and circular RNA"
    assert select_template(post) is select_template(post)


def test_fallback_result_shape():
    result = fallback_reply("Nipah virus polymerase", ["nipah"])
    assert result.is_fallback is True
    assert result.quality is None
    assert result.tier == "fallback"
    assert result.keywords == ["nipah"]
    assert [r.marker for r in result.references] == [1]
    assert set(markers_in(result.reply)) == {1}
