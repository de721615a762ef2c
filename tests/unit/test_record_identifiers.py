from __future__ import annotations

from citetally.services.citations.identifiers import (
    arxiv_id_from_extra,
    identifier_for_record,
    identifier_from_values,
    normalize_doi,
)
from tests.unit.fakes import FakeRecord


def test_normalize_doi_strips_resolver_prefix_and_punctuation() -> None:
    assert normalize_doi("https://doi.org/10.1000/ABC.123).") == "10.1000/abc.123"
    assert normalize_doi("doi:10.1/abc") == "10.1/abc"
    assert normalize_doi("not a doi") is None
    assert normalize_doi(None) is None


def test_arxiv_id_from_extra_handles_old_and_new_style() -> None:
    assert arxiv_id_from_extra("Note\narXiv: 2101.00001\n") == "2101.00001"
    assert arxiv_id_from_extra("arXiv:hep-th/9901001") == "hep-th/9901001"
    assert arxiv_id_from_extra("nothing here") is None


def test_doi_takes_precedence_over_arxiv() -> None:
    identifier = identifier_from_values(doi="10.1000/xyz", extra="arXiv: 2101.00001")

    assert identifier is not None
    assert identifier.type == "doi"
    assert identifier.id == "10.1000/xyz"


def test_identifier_for_record_falls_back_to_arxiv() -> None:
    record = FakeRecord(1, extra="arXiv: 2101.00001")

    identifier = identifier_for_record(record)

    assert identifier is not None
    assert identifier.type == "arxiv"
    assert identifier.is_arxiv_doi is False


def test_arxiv_minted_doi_is_flagged() -> None:
    identifier = identifier_from_values(doi="10.48550/arXiv.2101.00001", extra="")

    assert identifier is not None
    assert identifier.is_arxiv_doi is True


def test_record_without_identifier() -> None:
    assert identifier_for_record(FakeRecord(1, extra="just a note")) is None
