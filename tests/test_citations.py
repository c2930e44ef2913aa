"""Tests for article extraction, verification and inline annotation."""
import pytest

from lexdraft.models.domain import ArticleCitation, ResearchResult
from lexdraft.services.citations import (
    UNVERIFIED_MARKER,
    VERIFIED_MARKER,
    annotate_citations,
    extract_citations,
    process_citations,
    strip_markers,
    verify_citations,
)
from tests.conftest import FakeResearch, make_results


def test_case_and_spacing_variants_share_one_citation():
    citations = extract_citations("Conforme o Art. 5 e também o art.5, além do ART 5.")
    assert [c.article for c in citations] == ["Art. 5"]
    assert citations[0].key == "art. 5"


def test_extraction_keeps_first_seen_order():
    text = "art. 927 do Código Civil; Art. 300 do CPC; art. 927 do CC; Art. 5º da CF"
    assert [c.article for c in extract_citations(text)] == [
        "Art. 927 do CC",
        "Art. 300 do CPC",
        "Art. 5 do CF",
    ]


@pytest.mark.parametrize(
    "text, key",
    [
        ("artigo 186 do Código Civil", "art. 186 cc"),
        ("arts. 186 do codigo civil", "art. 186 cc"),
        ("Art. 1.228 do CC", "art. 1228 cc"),
        ("art. 1228 do CC", "art. 1228 cc"),
        ("art. 311-A do CPP", "art. 311-a cpp"),
        ("art. 6º do Código de Defesa do Consumidor", "art. 6 cdc"),
        ("art. 482, da CLT", "art. 482 clt"),
    ],
)
def test_statute_normalization(text, key):
    assert [c.key for c in extract_citations(text)] == [key]


def test_text_without_articles_has_no_citations():
    assert extract_citations("A parte autora requer a procedência.") == []


def test_extraction_is_idempotent_after_annotation():
    text = "Aplica-se o art. 18 do CDC e o Art. 5."
    citations = [
        ArticleCitation(c.article, c.key, confirmed=True, reference="https://planalto.gov.br")
        for c in extract_citations(text)
    ]
    annotated = annotate_citations(text, citations)

    assert [c.key for c in extract_citations(annotated)] == [c.key for c in citations]
    assert annotate_citations(annotated, citations) == annotated
    assert strip_markers(annotated) == text


def test_annotation_places_marker_after_each_occurrence():
    citations = [
        ArticleCitation("Art. 18 do CDC", "art. 18 cdc", confirmed=True),
        ArticleCitation("Art. 5", "art. 5", confirmed=False),
    ]
    annotated = annotate_citations("art. 18 do CDC; Art. 5; art. 18 do CDC.", citations)
    assert annotated == (
        f"art. 18 do CDC {VERIFIED_MARKER}; Art. 5 {UNVERIFIED_MARKER}; "
        f"art. 18 do CDC {VERIFIED_MARKER}."
    )


def test_annotation_skips_unknown_citations():
    assert annotate_citations("art. 7 da CLT", []) == "art. 7 da CLT"


@pytest.mark.asyncio
async def test_verification_confirms_with_first_result_url():
    research = FakeResearch(make_results(2))
    verified = await verify_citations(extract_citations("art. 319 do CPC"), research)

    assert verified[0].confirmed is True
    assert verified[0].reference == "https://stj.jus.br/acordao/1"
    query, domains, max_results = research.queries[0]
    assert query == "Art. 319 do CPC texto vigente legislação brasileira"
    assert "planalto.gov.br" in domains
    assert max_results == 3


@pytest.mark.asyncio
async def test_zero_results_leave_citation_unconfirmed():
    verified = await verify_citations(extract_citations("Art. 5"), FakeResearch([]))
    assert verified == [ArticleCitation("Art. 5", "art. 5", confirmed=False, reference=None)]


@pytest.mark.asyncio
async def test_gateway_errors_degrade_to_unconfirmed():
    research = FakeResearch(make_results(1))
    research.fail = True
    verified = await verify_citations(extract_citations("art. 5 e art. 6"), research)
    assert [c.confirmed for c in verified] == [False, False]


@pytest.mark.asyncio
async def test_process_citations_queries_each_article_once():
    research = FakeResearch([ResearchResult(title="Lei", url="https://planalto.gov.br/l8078")])
    annotated, citations = await process_citations(
        "art. 18 do CDC, Art. 18 do CDC e art. 6 do CDC", research
    )
    assert len(research.queries) == 2
    assert [c.article for c in citations] == ["Art. 18 do CDC", "Art. 6 do CDC"]
    assert annotated.count(VERIFIED_MARKER) == 3


def test_suffix_after_ordinal_is_part_of_the_citation():
    citations = extract_citations("Nos termos do art. 1º-A da lei e do art. 1º do CPC.")
    assert [c.key for c in citations] == ["art. 1-a", "art. 1 cpc"]
    assert citations[0].article == "Art. 1-A"


def test_marker_follows_the_whole_citation():
    text = "Nos termos do art. 1º-A da lei, e do art. 10520."
    citations = [
        ArticleCitation("Art. 1-A", "art. 1-a", confirmed=True),
        ArticleCitation("Art. 10520", "art. 10520", confirmed=False),
    ]
    assert annotate_citations(text, citations) == (
        f"Nos termos do art. 1º-A {VERIFIED_MARKER} da lei, "
        f"e do art. 10520 {UNVERIFIED_MARKER}."
    )


def test_long_article_numbers_are_read_in_full():
    assert [c.key for c in extract_citations("art. 10520 e art. 1.052")] == [
        "art. 10520",
        "art. 1052",
    ]
